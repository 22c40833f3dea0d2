"""
Playback tracking for the EduTube Quiz Bot.
Owns one video widget, samples its position on a fixed interval and
handles the pause handshake and player error classification.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from .video_widget import (
    ERROR_EMBED_RESTRICTED,
    ERROR_EMBED_RESTRICTED_ORIGIN,
    ERROR_VIDEO_NOT_FOUND,
    ERROR_VIDEO_PRIVATE,
    VideoWidget,
    VideoWidgetError,
)

# Set up logger for playback operations
logger = logging.getLogger(__name__)

# Seconds between two position samples. Must stay below the scheduler's match window.
DEFAULT_POLL_INTERVAL = 0.5


class PlaybackError(Exception):
    """Base exception for classified player errors."""

    title = "Video Unavailable"

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class PlaybackRestrictedError(PlaybackError):
    """The video owner does not allow embedded playback."""
    pass


class VideoUnavailableError(PlaybackError):
    """The video was removed, is private, or does not exist."""
    pass


class GenericPlaybackError(PlaybackError):
    """Any other playback fault."""
    pass


def classify_player_error(code: int) -> PlaybackError:
    """
    Turn a player error code into a human-readable error.

    Args:
        code: YouTube IFrame player error code

    Returns:
        PlaybackError subclass instance describing the fault
    """
    if code in (ERROR_EMBED_RESTRICTED, ERROR_EMBED_RESTRICTED_ORIGIN):
        return PlaybackRestrictedError(
            "Playback Restricted: This video cannot be played here due to YouTube's "
            "embedding policies. Please try a different video.",
            code
        )
    if code in (ERROR_VIDEO_NOT_FOUND, ERROR_VIDEO_PRIVATE):
        return VideoUnavailableError(
            "Video Not Found: This video might have been removed or is private.",
            code
        )
    return GenericPlaybackError(
        f"Player Error ({code}): Something went wrong with playback.",
        code
    )


class PlaybackLifecycleLogger:
    """Structured logging for player lifecycle events."""

    @staticmethod
    def log_player_creation(video_id: str) -> float:
        """Log player creation start and return the start time."""
        creation_start_time = time.time()
        logger.info(
            f"Player lifecycle: CREATION_START - Video {video_id}",
            extra={
                'event_type': 'player_creation_start',
                'video_id': video_id,
                'timestamp': creation_start_time
            }
        )
        return creation_start_time

    @staticmethod
    def log_player_ready(video_id: str, duration: float, creation_start_time: float) -> None:
        """Log the player reporting ready."""
        creation_duration = time.time() - creation_start_time
        logger.info(
            f"Player lifecycle: READY - Video {video_id}, Duration {duration:.1f}s, "
            f"Setup time {creation_duration:.3f}s",
            extra={
                'event_type': 'player_ready',
                'video_id': video_id,
                'duration': duration,
                'creation_duration': creation_duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_polling_start(video_id: str, poll_interval: float) -> None:
        logger.info(
            f"Player lifecycle: POLLING_START - Video {video_id}, Interval {poll_interval}s",
            extra={
                'event_type': 'player_polling_start',
                'video_id': video_id,
                'poll_interval': poll_interval,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_position(video_id: str, position: float) -> None:
        """Log a position sample (throttled to avoid spam)."""
        if int(position) % 30 == 0:
            logger.debug(
                f"Player lifecycle: POSITION - Video {video_id}, {position:.1f}s",
                extra={
                    'event_type': 'player_position',
                    'video_id': video_id,
                    'position': position,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_state_transition(video_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        logger.info(
            f"Player lifecycle: STATE_TRANSITION - Video {video_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'player_state_transition',
                'video_id': video_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_cleanup_start(video_id: str) -> float:
        cleanup_start_time = time.time()
        logger.info(
            f"Player lifecycle: CLEANUP_START - Video {video_id}",
            extra={
                'event_type': 'player_cleanup_start',
                'video_id': video_id,
                'timestamp': cleanup_start_time
            }
        )
        return cleanup_start_time

    @staticmethod
    def log_cleanup_complete(video_id: str, cleanup_start_time: float, success: bool) -> None:
        cleanup_duration = time.time() - cleanup_start_time
        status = "SUCCESS" if success else "FAILED"
        logger.info(
            f"Player lifecycle: CLEANUP_COMPLETE - Video {video_id}, Status {status}, "
            f"Duration {cleanup_duration:.3f}s",
            extra={
                'event_type': 'player_cleanup_complete',
                'video_id': video_id,
                'cleanup_duration': cleanup_duration,
                'success': success,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_player_error(video_id: str, error: PlaybackError, operation: str) -> None:
        logger.error(
            f"Player lifecycle: ERROR - Video {video_id}, Operation {operation}, "
            f"Code {error.code}, Type {type(error).__name__}",
            extra={
                'event_type': 'player_error',
                'video_id': video_id,
                'error_code': error.code,
                'error_type': type(error).__name__,
                'operation': operation,
                'timestamp': time.time()
            }
        )


class PlaybackTracker:
    """
    Owns the lifecycle of a single video widget bound to one video identifier.

    The tracker turns the widget into four callbacks: a periodic time update,
    a one-off ready carrying the duration, a paused signal answering a pause
    request, and a terminal error carrying a classified PlaybackError.
    Use it as an async context manager, or call start() and close().
    """

    def __init__(
        self,
        video_id: str,
        widget_factory: Callable[[], VideoWidget],
        on_time_update: Callable[[float], Awaitable[Any]],
        on_ready: Optional[Callable[[float], Awaitable[Any]]] = None,
        on_error: Optional[Callable[[PlaybackError], Awaitable[Any]]] = None,
        on_paused: Optional[Callable[[], Awaitable[Any]]] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL
    ):
        if poll_interval <= 0:
            raise ValueError("Poll interval must be positive")

        self.video_id = video_id
        self.poll_interval = poll_interval
        self._widget_factory = widget_factory
        self._on_time_update = on_time_update
        self._on_ready = on_ready
        self._on_error = on_error
        self._on_paused = on_paused

        self._widget: Optional[VideoWidget] = None
        self._task: Optional[asyncio.Task] = None
        self._is_ready = False
        self._is_closed = False
        self._pause_requested = False
        self._pause_issued = False
        self._duration: Optional[float] = None
        self._error: Optional[PlaybackError] = None

    async def __aenter__(self) -> "PlaybackTracker":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> None:
        """
        Create the widget, report ready and start polling.

        Raises:
            RuntimeError: If the tracker already owns a widget
        """
        if self._widget is not None:
            raise RuntimeError(f"Player already created for video {self.video_id}")

        self._is_closed = False
        self._error = None
        creation_start_time = PlaybackLifecycleLogger.log_player_creation(self.video_id)
        self._widget = self._widget_factory()

        try:
            duration = await self._widget.create(self.video_id)
        except VideoWidgetError as e:
            await self._fail(e.code, "create")
            return
        except BaseException:
            await self.close()
            raise

        if self._is_closed:
            # Closed while the widget was loading
            return

        self._duration = duration
        self._is_ready = True
        PlaybackLifecycleLogger.log_player_ready(self.video_id, duration, creation_start_time)

        if self._on_ready:
            await self._on_ready(duration)

        self._task = asyncio.create_task(self._poll())
        PlaybackLifecycleLogger.log_polling_start(self.video_id, self.poll_interval)

        if self._pause_requested:
            await self._issue_pause()

    async def _poll(self) -> None:
        """Sample the widget position until closed."""
        try:
            while not self._is_closed and self._widget is not None:
                try:
                    position = self._widget.get_current_time()
                except VideoWidgetError as e:
                    await self._fail(e.code, "poll")
                    return

                PlaybackLifecycleLogger.log_position(self.video_id, position)
                try:
                    await self._on_time_update(position)
                except Exception as e:
                    logger.error(f"Time update handler failed for video {self.video_id}: {e}", exc_info=True)
                    await self._report(
                        GenericPlaybackError(
                            "Player Error: The quiz stopped following the video. Use /exit and start again."
                        ),
                        "time_update"
                    )
                    return
                await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            logger.debug(f"Polling task cancelled for video {self.video_id}")
            raise
        except Exception as e:
            logger.error(f"Polling stopped for video {self.video_id}: {e}", exc_info=True)
            raise

    async def set_pause_requested(self, requested: bool) -> None:
        """
        Request or release a pause.

        A request pauses the widget once per activation; repeated requests
        are no-ops until the pause is released. Releasing resumes playback.
        """
        if requested:
            if self._pause_requested:
                return
            self._pause_requested = True
            if self._is_ready:
                await self._issue_pause()
            return

        if not self._pause_requested:
            return
        self._pause_requested = False
        self._pause_issued = False
        if self._is_ready and self._widget is not None:
            self._widget.play_video()
            PlaybackLifecycleLogger.log_state_transition(
                self.video_id, "paused", "playing", "pause released"
            )

    async def _issue_pause(self) -> None:
        if self._pause_issued or self._widget is None:
            return
        self._pause_issued = True
        self._widget.pause_video()
        PlaybackLifecycleLogger.log_state_transition(
            self.video_id, "playing", "paused", "pause requested"
        )
        if self._on_paused:
            await self._on_paused()

    async def _fail(self, code: int, operation: str) -> None:
        """Classify a widget fault, release the player and report the error."""
        await self._report(classify_player_error(code), operation)

    async def _report(self, error: PlaybackError, operation: str) -> None:
        self._error = error
        PlaybackLifecycleLogger.log_player_error(self.video_id, error, operation)
        await self.close()
        if self._on_error:
            await self._on_error(error)

    async def close(self) -> bool:
        """
        Stop polling and destroy the widget.

        Safe to call more than once and from inside the polling task.

        Returns:
            True if a widget was released, False if there was nothing to release
        """
        self._is_closed = True
        self._is_ready = False
        task, self._task = self._task, None
        widget, self._widget = self._widget, None

        if task is None and widget is None:
            return False

        cleanup_start_time = PlaybackLifecycleLogger.log_cleanup_start(self.video_id)
        success = True

        try:
            if task is not None and task is not asyncio.current_task() and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.warning(f"Polling task for video {self.video_id} ended with error: {e}")
        finally:
            if widget is not None:
                try:
                    widget.destroy()
                except Exception as e:
                    success = False
                    logger.warning(f"Error destroying player for video {self.video_id}: {e}")
            self._pause_issued = False
            PlaybackLifecycleLogger.log_cleanup_complete(self.video_id, cleanup_start_time, success)

        return True

    async def rebind(self, video_id: str) -> None:
        """Release the current player and build a new one for another video."""
        await self.close()
        PlaybackLifecycleLogger.log_state_transition(
            self.video_id, "bound", "rebinding", f"video changed to {video_id}"
        )
        self.video_id = video_id
        self._pause_requested = False
        self._duration = None
        await self.start()

    @property
    def is_ready(self) -> bool:
        return self._is_ready

    @property
    def is_closed(self) -> bool:
        return self._is_closed

    @property
    def pause_requested(self) -> bool:
        return self._pause_requested

    @property
    def duration(self) -> Optional[float]:
        return self._duration

    @property
    def error(self) -> Optional[PlaybackError]:
        return self._error
