"""Ownership of the capture stream, recording buffer and fullscreen hold."""

from __future__ import annotations

from collections import deque
from contextlib import AsyncExitStack
import logging

from proctor_app.core.collaborators import CapabilityProvider, CaptureStream
from proctor_app.core.errors import FullscreenDenied, MediaAccessDenied
from proctor_app.core.models import MediaTrack

logger = logging.getLogger(__name__)


class RecordingBuffer:
    """Rolling buffer of fixed-duration recording chunks."""

    def __init__(self, max_chunks: int) -> None:
        self._chunks: deque[bytes] = deque(maxlen=max_chunks)
        self._total_chunks = 0

    def append(self, chunk: bytes) -> None:
        if chunk:
            self._chunks.append(chunk)
            self._total_chunks += 1

    def discard(self) -> None:
        self._chunks.clear()

    def get_chunk_count(self) -> int:
        return len(self._chunks)

    def get_total_chunks(self) -> int:
        return self._total_chunks

    def get_byte_count(self) -> int:
        return sum(len(chunk) for chunk in self._chunks)


class MediaCaptureManager:
    """Acquires and exclusively owns the capture stream for one session.

    Every resource is registered on an AsyncExitStack once it is fully held,
    so ``release()`` undoes exactly what was acquired. A recording failure
    inside ``acquire()`` only stops the new stream, and a grant that arrives
    after ``release()`` is stopped on the spot. ``release()`` runs at most once.
    """

    def __init__(self, provider: CapabilityProvider, chunk_seconds: int, max_chunks: int) -> None:
        self._provider = provider
        self._chunk_seconds = chunk_seconds
        self._buffer = RecordingBuffer(max_chunks)
        self._resources = AsyncExitStack()
        self._stream: CaptureStream | None = None
        self._recording = False
        self._fullscreen_held = False
        self._fullscreen_exit_registered = False
        self._released = False
        self._release_count = 0

    async def acquire(self) -> None:
        """Request combined audio/video capture and start recording."""
        if self._released:
            raise MediaAccessDenied("Capture resources were already released for this session.")
        if self._stream is not None:
            return
        try:
            stream = await self._provider.request_capture()
        except MediaAccessDenied:
            raise
        except PermissionError as exc:
            raise MediaAccessDenied(f"Failed to access camera or microphone: {exc}") from exc

        if self._released:
            # The session closed while the permission prompt was open.
            _stop_stream_tracks(stream)
            raise MediaAccessDenied("Session closed before capture was granted.")

        self._stream = stream
        try:
            stream.start_recording(self._chunk_seconds, self._buffer.append)
        except Exception as exc:
            logger.error("Failed to start recording: %s", exc)
            self._stop_tracks()
            raise MediaAccessDenied(f"Failed to start recording: {exc}") from exc
        self._recording = True
        self._resources.callback(self._stop_tracks)
        self._resources.callback(self._stop_recording)
        logger.info("Capture acquired with %d track(s)", len(stream.get_tracks()))

    async def enter_fullscreen(self) -> None:
        if self._released:
            raise FullscreenDenied("Capture resources were already released for this session.")
        if self._fullscreen_held:
            return
        await self._request_fullscreen()
        if self._released:
            await self._provider.exit_fullscreen()
            raise FullscreenDenied("Session closed before fullscreen was granted.")
        self._fullscreen_held = True
        if not self._fullscreen_exit_registered:
            self._fullscreen_exit_registered = True
            self._resources.push_async_callback(self._exit_fullscreen)

    async def restore_fullscreen(self) -> bool:
        """Ask for fullscreen again after the candidate left it. Returns True when it was regained."""
        if self._released:
            return False
        self._fullscreen_held = False
        try:
            await self.enter_fullscreen()
        except FullscreenDenied as exc:
            logger.warning("Could not restore fullscreen: %s", exc)
            return False
        return True

    async def _request_fullscreen(self) -> None:
        try:
            await self._provider.request_fullscreen()
        except FullscreenDenied:
            raise
        except PermissionError as exc:
            raise FullscreenDenied(f"Failed to enter fullscreen mode: {exc}") from exc

    def toggle(self, track: MediaTrack) -> bool:
        """Flip a track on or off and return its new enabled state."""
        if self._stream is None or self._released:
            raise MediaAccessDenied("No capture stream is held.")
        for candidate in self._stream.get_tracks():
            if candidate.kind == track:
                candidate.enabled = not candidate.enabled
                return candidate.enabled
        raise MediaAccessDenied(f"The capture stream has no {track.value} track.")

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._release_count += 1
        await self._resources.aclose()
        self._buffer.discard()
        logger.info("Capture resources released")

    # --- Status ---

    def is_track_enabled(self, track: MediaTrack) -> bool:
        if self._stream is None or self._released:
            return False
        return any(t.kind == track and t.enabled for t in self._stream.get_tracks())

    def is_fullscreen_held(self) -> bool:
        return self._fullscreen_held

    def is_recording(self) -> bool:
        return self._recording

    def is_released(self) -> bool:
        return self._released

    def get_release_count(self) -> int:
        return self._release_count

    def get_buffer(self) -> RecordingBuffer:
        return self._buffer

    # --- Cleanup steps ---

    def _stop_tracks(self) -> None:
        if self._stream is None:
            return
        _stop_stream_tracks(self._stream)
        self._stream = None

    def _stop_recording(self) -> None:
        if self._recording and self._stream is not None:
            self._stream.stop_recording()
        self._recording = False

    async def _exit_fullscreen(self) -> None:
        self._fullscreen_held = False
        try:
            await self._provider.exit_fullscreen()
        except (FullscreenDenied, PermissionError) as exc:
            logger.warning("Failed to exit fullscreen: %s", exc)


def _stop_stream_tracks(stream: CaptureStream) -> None:
    for track in stream.get_tracks():
        track.stop()
