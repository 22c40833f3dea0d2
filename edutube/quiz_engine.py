"""
Quiz engine core logic for the EduTube Quiz Bot.
Handles question ordering, spacing and deciding which question is due.
"""
import dataclasses
import logging
from typing import Iterable, List, Optional

from .models import QuizItem

logger = logging.getLogger(__name__)

# Half-width of the window around a timestamp in which a question is due
DEFAULT_MATCH_WINDOW = 1.5


class QuizEngine:
    """Core quiz engine that orders questions and schedules them against playback time."""

    def __init__(self, match_window: float = DEFAULT_MATCH_WINDOW):
        """
        Initialize the quiz engine.

        Args:
            match_window: Tolerance in seconds around each question timestamp
        """
        if match_window <= 0:
            raise ValueError("Match window must be positive")
        self.match_window = match_window

    @property
    def min_spacing(self) -> float:
        """Smallest gap between two timestamps that keeps their windows apart."""
        return 2 * self.match_window

    def sort_questions(self, questions: List[QuizItem]) -> List[QuizItem]:
        """
        Sort questions by timestamp, ascending.

        Args:
            questions: Questions in any order

        Returns:
            New list; items with equal timestamps keep their original order
        """
        return sorted(questions, key=lambda q: q.timestamp)

    def enforce_spacing(self, questions: List[QuizItem], duration: Optional[float] = None) -> List[QuizItem]:
        """
        Move questions forward so no two are closer than min_spacing.

        When a duration is given, questions past the end are pulled back to it
        and their predecessors re-spaced backward from there, so every question
        can still become due before playback stops.

        Args:
            questions: Questions sorted by timestamp
            duration: Video length in seconds, if known

        Returns:
            New list with adjusted timestamps where needed
        """
        spaced: List[QuizItem] = []

        for question in questions:
            if spaced and question.timestamp - spaced[-1].timestamp < self.min_spacing:
                new_timestamp = spaced[-1].timestamp + self.min_spacing
                logger.warning(
                    f"Question '{question.id}' at {question.timestamp}s is too close to "
                    f"'{spaced[-1].id}' at {spaced[-1].timestamp}s, moved to {new_timestamp}s"
                )
                question = dataclasses.replace(question, timestamp=new_timestamp)
            spaced.append(question)

        if duration is None:
            return spaced

        latest = float(duration)
        for index in range(len(spaced) - 1, -1, -1):
            question = spaced[index]
            if question.timestamp > latest:
                new_timestamp = max(latest, 0.0)
                logger.warning(
                    f"Question '{question.id}' at {question.timestamp}s is past the "
                    f"{duration}s video end, moved to {new_timestamp}s"
                )
                question = dataclasses.replace(question, timestamp=new_timestamp)
                spaced[index] = question
            latest = question.timestamp - self.min_spacing

        return spaced

    def is_due(self, question: QuizItem, current_time: float) -> bool:
        """Check whether current_time falls inside the question's window."""
        return abs(current_time - question.timestamp) < self.match_window

    def find_due_question(
        self,
        current_time: float,
        questions: List[QuizItem],
        answered_ids: Iterable[str]
    ) -> Optional[QuizItem]:
        """
        Find the unanswered question due at the given playback time.

        Args:
            current_time: Playback position in seconds
            questions: Questions sorted by timestamp
            answered_ids: Ids already resolved this session

        Returns:
            The closest due question (earliest on ties), or None
        """
        answered = set(answered_ids)
        due: Optional[QuizItem] = None

        for question in questions:
            if question.id in answered or not self.is_due(question, current_time):
                continue
            if due is None or abs(current_time - question.timestamp) < abs(current_time - due.timestamp):
                due = question

        return due

    def get_next_question(
        self,
        questions: List[QuizItem],
        answered_ids: Iterable[str]
    ) -> Optional[QuizItem]:
        """Get the earliest question that has not been answered yet."""
        answered = set(answered_ids)
        for question in questions:
            if question.id not in answered:
                return question
        return None


def format_timestamp(seconds: float) -> str:
    """Format seconds as m:ss, or h:mm:ss for an hour or more."""
    total = int(seconds)
    hours = total // 3600
    minutes = (total % 3600) // 60
    secs = total % 60

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
