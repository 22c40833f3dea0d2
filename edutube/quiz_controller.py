"""
Quiz session controller for the EduTube Quiz Bot.
Coordinates question generation, playback tracking, scheduling and scoring for one session.
"""
import logging
import re
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .config_manager import ConfigManager
from .models import QuizItem, Score, SessionState
from .playback_tracker import PlaybackError, PlaybackTracker
from .question_provider import MissingCredentialError, QuestionProvider, QuestionProviderError
from .quiz_engine import QuizEngine, format_timestamp
from .video_widget import VideoWidget, WatchAlongPlayer

VIDEO_ID_LENGTH = 11
VIDEO_URL_PATTERN = re.compile(r"^.*(youtu\.be/|v/|u/\w/|embed/|watch\?v=|&v=)([^#&?]*).*")


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class InvalidUrlError(QuizControllerError):
    """Raised when no video identifier can be found in a URL."""
    pass


class SessionConflictError(QuizControllerError):
    """Raised when starting a quiz while another one is running."""
    pass


class SessionNotFoundError(QuizControllerError):
    """Raised when operating on a session that is not playing."""
    pass


class QuestionDeliveryError(QuizControllerError):
    """Raised by a presentation hook that could not show a question."""
    pass


def extract_video_id(url: str) -> str:
    """
    Extract the 11-character video identifier from a YouTube URL.

    Supports watch?v=, &v=, youtu.be/, embed/, v/ and u/<x>/ forms.

    Args:
        url: Any YouTube URL shape

    Returns:
        The video identifier

    Raises:
        InvalidUrlError: If no valid identifier is found
    """
    match = VIDEO_URL_PATTERN.match((url or "").strip())
    if match and len(match.group(2)) == VIDEO_ID_LENGTH:
        return match.group(2)
    raise InvalidUrlError("Please enter a valid YouTube URL")


def _default_widget_factory(duration_seconds: float) -> VideoWidget:
    return WatchAlongPlayer(duration=duration_seconds)


class QuizController:
    """
    Orchestrates one quiz session from setup to restart.

    The controller owns all mutable session state. The playback tracker feeds
    it time updates; it asks the quiz engine which question is due, requests
    the pause, and hands the question to the presentation layer through the
    on_question_due hook. Outcomes come back through on_question_complete.
    """

    def __init__(
        self,
        question_provider: QuestionProvider,
        config_manager: ConfigManager,
        widget_factory: Optional[Callable[[float], VideoWidget]] = None,
        channel_id: Optional[int] = None
    ):
        """
        Initialize the quiz controller.

        Args:
            question_provider: Generates quiz items
            config_manager: Source of playback and scheduling settings
            widget_factory: Builds a video widget from an estimated duration in seconds
            channel_id: Discord channel this session belongs to, used for logging
        """
        self.logger = logging.getLogger(__name__)
        self.question_provider = question_provider
        self.config_manager = config_manager
        self.channel_id = channel_id
        self._widget_factory = widget_factory or _default_widget_factory

        settings = config_manager.get_quiz_settings()
        self.quiz_engine = QuizEngine(settings.match_window)

        self.state = SessionState.SETUP
        self.questions: List[QuizItem] = []
        self.answered_ids: Set[str] = set()
        self.score = Score()
        self.active_question: Optional[QuizItem] = None
        self.pause_requested = False
        self.playback_time = 0.0
        self.video_id: Optional[str] = None
        self.topic: Optional[str] = None
        self.duration_minutes = settings.duration_minutes
        self.video_duration: Optional[float] = None
        self.start_time: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.player_error: Optional[PlaybackError] = None
        self._tracker: Optional[PlaybackTracker] = None

        # Presentation hooks, set by the surface that renders the session
        self.on_question_due: Optional[Callable[[QuizItem], Awaitable[Any]]] = None
        self.on_finished: Optional[Callable[[], Awaitable[Any]]] = None
        self.on_player_error: Optional[Callable[[PlaybackError], Awaitable[Any]]] = None

    async def generate(
        self,
        video_url: str,
        topic: str,
        transcript: str = "",
        duration_minutes: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Generate a quiz for a video and move to PLAYING.

        On failure the session stays in SETUP, the question set is untouched
        and the error is kept in last_error.

        Args:
            video_url: YouTube URL in any supported shape
            topic: Video topic or theme
            transcript: Optional transcript or summary
            duration_minutes: Estimated video length, defaults to the configured value

        Returns:
            Dictionary with operation results and error information
        """
        try:
            if self.state is not SessionState.SETUP:
                raise SessionConflictError(f"Session is {self.state.value}")

            video_id = extract_video_id(video_url)

            if not topic or not topic.strip():
                raise ValueError("Please enter a topic for the video")

            if duration_minutes is None:
                duration_minutes = self.config_manager.get_duration_minutes()

        except (QuizControllerError, ValueError) as e:
            return self._handle_session_error(e, "generate")

        self.last_error = None
        self.state = SessionState.GENERATING
        self.logger.info(
            f"Generating quiz for video {video_id} in channel {self.channel_id}",
            extra={
                'event_type': 'session_generating',
                'channel_id': self.channel_id,
                'video_id': video_id,
                'timestamp': time.time()
            }
        )

        try:
            items = await self.question_provider.generate_questions(
                topic, transcript or "", duration_minutes
            )
        except Exception as e:
            self.state = SessionState.SETUP
            return self._handle_session_error(e, "generate")

        self.questions = self.quiz_engine.enforce_spacing(
            self.quiz_engine.sort_questions(items), duration_minutes * 60
        )
        self.answered_ids = set()
        self.score = Score()
        self.active_question = None
        self.pause_requested = False
        self.playback_time = 0.0
        self.video_id = video_id
        self.topic = topic.strip()
        self.duration_minutes = duration_minutes
        self.video_duration = None
        self.player_error = None
        self.start_time = datetime.now()
        self.state = SessionState.PLAYING

        self.logger.info(
            f"Quiz ready for video {video_id}: {len(self.questions)} questions",
            extra={
                'event_type': 'session_playing',
                'channel_id': self.channel_id,
                'video_id': video_id,
                'question_count': len(self.questions),
                'timestamp': time.time()
            }
        )
        return {
            'success': True,
            'message': f"Generated {len(self.questions)} questions for video {video_id}",
            'session_info': self.get_session_progress()
        }

    async def start_playback(self) -> None:
        """
        Bind a playback tracker to the current video and start it.

        A tracker bound to a different video is torn down and rebuilt.

        Raises:
            SessionNotFoundError: If no quiz has been generated
        """
        if self.state not in (SessionState.PLAYING, SessionState.FINISHED) or not self.video_id:
            raise SessionNotFoundError("No quiz is ready to play")

        if self._tracker is not None:
            if self._tracker.video_id == self.video_id and not self._tracker.is_closed:
                return
            await self._tracker.rebind(self.video_id)
            return

        estimated_seconds = self.duration_minutes * 60
        self._tracker = PlaybackTracker(
            self.video_id,
            lambda: self._widget_factory(estimated_seconds),
            on_time_update=self.on_time_update,
            on_ready=self.on_ready,
            on_error=self.handle_player_error,
            on_paused=self._on_player_paused,
            poll_interval=self.config_manager.get_poll_interval()
        )
        await self._tracker.start()

    async def on_time_update(self, current_time: float) -> None:
        """
        Record the playback position and present a question if one is due.

        Args:
            current_time: Playback position in seconds
        """
        self.playback_time = current_time

        if self.state not in (SessionState.PLAYING, SessionState.FINISHED):
            return

        # One question at a time; nothing is re-evaluated until it is resolved
        if self.active_question is not None:
            return

        due = self.quiz_engine.find_due_question(current_time, self.questions, self.answered_ids)
        if due is None:
            return

        self.active_question = due
        self.logger.info(
            f"Question '{due.id}' due at {current_time:.1f}s (scheduled {due.timestamp}s)",
            extra={
                'event_type': 'question_due',
                'channel_id': self.channel_id,
                'question_id': due.id,
                'playback_time': current_time,
                'timestamp': time.time()
            }
        )
        await self._set_pause_requested(True)

    async def _set_pause_requested(self, requested: bool) -> None:
        self.pause_requested = requested
        if self._tracker is not None and not self._tracker.is_closed:
            await self._tracker.set_pause_requested(requested)
        elif requested:
            # No player to wait for
            await self._on_player_paused()

    async def _on_player_paused(self) -> None:
        question = self.active_question
        if question is None or not self.on_question_due:
            return
        try:
            await self.on_question_due(question)
        except Exception as e:
            await self._release_undelivered_question(question, e)
        else:
            self.last_error = None

    async def _release_undelivered_question(self, question: QuizItem, error: Exception) -> None:
        """
        Resume playback when a due question could not be shown.

        The question stays unanswered, so it is offered again while its
        window is still open or after a seek back to it.
        """
        self.last_error = f"❌ Question at {format_timestamp(question.timestamp)} could not be shown: {error}"
        if isinstance(error, QuizControllerError):
            self.logger.error(f"Question '{question.id}' not delivered in channel {self.channel_id}: {error}")
        else:
            self.logger.error(
                f"Question '{question.id}' hook failed in channel {self.channel_id}: {error}",
                exc_info=True
            )

        if self.active_question is question:
            self.active_question = None
            await self._set_pause_requested(False)

    async def on_question_complete(self, is_correct: bool) -> bool:
        """
        Record the outcome of the active question and release the pause.

        Args:
            is_correct: Whether the learner chose the correct option

        Returns:
            True if an active question was resolved, False otherwise
        """
        resolved = self.active_question
        if resolved is not None:
            self.score.total += 1
            if is_correct:
                self.score.correct += 1
            self.answered_ids.add(resolved.id)
            self.logger.info(
                f"Question '{resolved.id}' answered {'correctly' if is_correct else 'incorrectly'}, "
                f"score {self.score.correct}/{self.score.total}",
                extra={
                    'event_type': 'question_completed',
                    'channel_id': self.channel_id,
                    'question_id': resolved.id,
                    'is_correct': is_correct,
                    'timestamp': time.time()
                }
            )
        else:
            self.logger.warning(f"Question completion received with no active question in channel {self.channel_id}")

        self.active_question = None
        await self._set_pause_requested(False)

        if resolved is not None and self.is_quiz_complete() and self.state is SessionState.PLAYING:
            self.state = SessionState.FINISHED
            self.logger.info(
                f"Quiz finished in channel {self.channel_id}: {self.score.correct}/{self.score.total}",
                extra={
                    'event_type': 'session_finished',
                    'channel_id': self.channel_id,
                    'correct': self.score.correct,
                    'total': self.score.total,
                    'timestamp': time.time()
                }
            )
            if self.on_finished:
                await self.on_finished()

        return resolved is not None

    async def on_ready(self, duration: float) -> None:
        """Record the duration reported by the player."""
        self.video_duration = duration

    async def handle_player_error(self, error: PlaybackError) -> None:
        """Record a terminal player error and report it."""
        self.player_error = error
        self.logger.error(
            f"Playback failed in channel {self.channel_id}: {error}",
            extra={
                'event_type': 'session_player_error',
                'channel_id': self.channel_id,
                'video_id': self.video_id,
                'error_code': error.code,
                'timestamp': time.time()
            }
        )
        if self.on_player_error:
            await self.on_player_error(error)

    async def restart(self) -> Dict[str, Any]:
        """
        Release the player and reset the session to SETUP.

        Returns:
            Dictionary with the final session info before the reset
        """
        session_info = self.get_session_progress()

        tracker, self._tracker = self._tracker, None
        if tracker is not None:
            await tracker.close()

        self.state = SessionState.SETUP
        self.score = Score()
        self.answered_ids = set()
        self.active_question = None
        self.pause_requested = False
        self.questions = []
        self.playback_time = 0.0
        self.video_id = None
        self.topic = None
        self.video_duration = None
        self.start_time = None
        self.last_error = None
        self.player_error = None

        self.logger.info(
            f"Session restarted in channel {self.channel_id}",
            extra={
                'event_type': 'session_restarted',
                'channel_id': self.channel_id,
                'timestamp': time.time()
            }
        )
        return {
            'success': True,
            'message': "Session reset",
            'session_info': session_info
        }

    def is_quiz_complete(self) -> bool:
        """Check whether every question has been answered."""
        return bool(self.questions) and len(self.answered_ids) >= len(self.questions)

    @property
    def tracker(self) -> Optional[PlaybackTracker]:
        return self._tracker

    def get_session_progress(self) -> Dict[str, Any]:
        """
        Get progress information for the session.

        Returns:
            Dictionary with state, score and playback information
        """
        return {
            'state': self.state.value,
            'video_id': self.video_id,
            'topic': self.topic,
            'total_questions': len(self.questions),
            'answered': len(self.answered_ids),
            'score': {'correct': self.score.correct, 'total': self.score.total},
            'playback_time': self.playback_time,
            'progress_percent': (self.score.total / len(self.questions) * 100) if self.questions else 0,
            'is_paused': self.pause_requested,
            'start_time': self.start_time,
            'player_error': str(self.player_error) if self.player_error else None
        }

    def get_question_slots(self) -> List[Dict[str, Any]]:
        """
        Describe each question slot for the lesson plan.

        Returns:
            One dictionary per question with its label, time and status
        """
        next_question = self.quiz_engine.get_next_question(self.questions, self.answered_ids)
        slots = []

        for index, question in enumerate(self.questions):
            if question.id in self.answered_ids:
                status = 'completed'
                label = 'Completed'
            elif next_question is not None and question.id == next_question.id:
                status = 'next'
                label = f"Question {index + 1}"
            else:
                status = 'upcoming'
                label = f"Question {index + 1}"

            slots.append({
                'id': question.id,
                'label': label,
                'status': status,
                'time': format_timestamp(question.timestamp),
                'focus': f"Focus: {question.verb_focus}" if question.verb_focus else "General Comprehension"
            })

        return slots

    def get_timeline(self) -> Dict[str, Any]:
        """
        Get playhead and question marker positions as percentages.

        Uses the duration reported by the player when known, otherwise the estimate.
        """
        duration = self.video_duration or self.duration_minutes * 60

        def percent(seconds: float) -> float:
            return min(seconds / duration * 100, 100.0) if duration > 0 else 0.0

        return {
            'duration': duration,
            'position_percent': percent(self.playback_time),
            'markers': [
                {
                    'id': question.id,
                    'percent': percent(question.timestamp),
                    'answered': question.id in self.answered_ids
                }
                for question in self.questions
            ]
        }

    def _handle_session_error(self, error: Exception, operation: str) -> Dict[str, Any]:
        """
        Log an error and turn it into a result dictionary.

        Args:
            error: The exception that occurred
            operation: Description of the operation that failed

        Returns:
            Dictionary with error handling results
        """
        user_message = self._get_user_friendly_error_message(error, operation)
        self.last_error = user_message

        if isinstance(error, (QuizControllerError, QuestionProviderError, ValueError)):
            self.logger.warning(f"{operation} failed in channel {self.channel_id}: {error}")
        else:
            self.logger.error(f"Error in {operation} for channel {self.channel_id}: {error}", exc_info=True)

        return {
            'success': False,
            'error': str(error),
            'operation': operation,
            'user_message': user_message
        }

    def _get_user_friendly_error_message(self, error: Exception, operation: str) -> str:
        """
        Generate user-friendly error messages.

        Args:
            error: The exception that occurred
            operation: Description of the operation that failed

        Returns:
            User-friendly error message
        """
        if isinstance(error, SessionConflictError):
            return "❌ A quiz is already running in this channel. Use `/exit` to end it first."

        elif isinstance(error, InvalidUrlError):
            return "❌ Please enter a valid YouTube URL"

        elif isinstance(error, MissingCredentialError):
            return "❌ API Key is missing. Set GEMINI_API_KEY to generate quizzes."

        elif isinstance(error, QuestionProviderError):
            return f"❌ Failed to generate quiz: {error}"

        elif isinstance(error, ValueError):
            return f"❌ {error}"

        else:
            return f"❌ An unexpected error occurred during {operation}. Please try again."
