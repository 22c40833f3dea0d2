"""
Video widgets driven by the playback tracker.

A widget is bound to one YouTube video identifier at a time. The Discord
surface cannot host an embedded player, so the bot drives a watch-along
player: a virtual playhead learners follow with the linked video.
"""
import asyncio
import logging
import time
from typing import Callable, Optional

import aiohttp

logger = logging.getLogger(__name__)

# YouTube IFrame player error codes
ERROR_INVALID_PARAMETER = 2
ERROR_HTML5_PLAYER = 5
ERROR_VIDEO_NOT_FOUND = 100
ERROR_VIDEO_PRIVATE = 101
ERROR_EMBED_RESTRICTED = 150
ERROR_EMBED_RESTRICTED_ORIGIN = 153

OEMBED_URL = "https://www.youtube.com/oembed"


class VideoWidgetError(Exception):
    """Raised by a widget for an unrecoverable playback fault."""

    def __init__(self, code: int, message: str = ""):
        super().__init__(message or f"Player error code {code}")
        self.code = code


class VideoWidget:
    """Contract for a controllable video player bound to one video identifier."""

    async def create(self, video_id: str) -> float:
        """Load the video and return its total duration in seconds."""
        raise NotImplementedError

    def destroy(self) -> None:
        """Release the player."""
        raise NotImplementedError

    def pause_video(self) -> None:
        raise NotImplementedError

    def play_video(self) -> None:
        raise NotImplementedError

    def get_current_time(self) -> float:
        """Return the current playback position in seconds."""
        raise NotImplementedError


class WatchAlongPlayer(VideoWidget):
    """Virtual playhead that advances with the clock while playing."""

    def __init__(
        self,
        duration: float,
        verify: bool = True,
        clock: Callable[[], float] = time.monotonic,
        request_timeout: float = 10.0
    ):
        """
        Initialize the player.

        Args:
            duration: Total duration in seconds reported when ready
            verify: Probe YouTube oEmbed for availability before playing
            clock: Monotonic clock in seconds
            request_timeout: Timeout for the availability probe
        """
        if duration <= 0:
            raise ValueError("Duration must be positive")
        self.duration = float(duration)
        self.verify = verify
        self._clock = clock
        self._request_timeout = request_timeout
        self.video_id: Optional[str] = None
        self._offset = 0.0
        self._started_at: Optional[float] = None
        self._is_playing = False
        self._is_destroyed = False

    async def create(self, video_id: str) -> float:
        if self._is_destroyed:
            raise RuntimeError("Player has been destroyed")

        if self.verify:
            await self._probe_availability(video_id)

        self.video_id = video_id
        self._offset = 0.0
        self._started_at = self._clock()
        self._is_playing = True
        logger.debug(f"Watch-along player started for video {video_id}")
        return self.duration

    async def _probe_availability(self, video_id: str) -> None:
        """Map the oEmbed response for a video onto player error codes."""
        params = {"url": f"https://www.youtube.com/watch?v={video_id}", "format": "json"}
        timeout = aiohttp.ClientTimeout(total=self._request_timeout)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(OEMBED_URL, params=params) as response:
                    status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Availability check failed for video {video_id}: {e}")
            raise VideoWidgetError(ERROR_HTML5_PLAYER, f"Availability check failed: {e}") from e

        if status in (401, 403):
            raise VideoWidgetError(ERROR_EMBED_RESTRICTED, "Embedding is disabled for this video")
        if status in (400, 404):
            raise VideoWidgetError(ERROR_VIDEO_NOT_FOUND, "Video not found")
        if status != 200:
            raise VideoWidgetError(ERROR_HTML5_PLAYER, f"Unexpected availability status {status}")

    def destroy(self) -> None:
        if self._is_playing:
            self._offset = self.get_current_time()
        self._is_playing = False
        self._is_destroyed = True

    def pause_video(self) -> None:
        if self._is_playing:
            self._offset = self.get_current_time()
            self._is_playing = False

    def play_video(self) -> None:
        if self._is_destroyed:
            raise RuntimeError("Player has been destroyed")
        if not self._is_playing:
            self._started_at = self._clock()
            self._is_playing = True

    def get_current_time(self) -> float:
        position = self._offset
        if self._is_playing and self._started_at is not None:
            position += self._clock() - self._started_at
        return min(max(position, 0.0), self.duration)

    @property
    def is_playing(self) -> bool:
        return self._is_playing

    @property
    def is_destroyed(self) -> bool:
        return self._is_destroyed
