"""Capability provider fed by a remote browser over HTTP.

Architecture note:
    The candidate's browser owns the real camera, microphone and fullscreen
    APIs. It reports what the candidate granted when pressing start, and
    forwards visibility, fullscreen, keyboard and context-menu signals to the
    signal endpoint. This provider replays those reports through the same
    subscription interface a local provider would offer, so the session core
    cannot tell the two apart.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Callable, TypeVar

from proctor_app.core.collaborators import (
    ChunkHandler,
    ContextMenuHandler,
    FullscreenHandler,
    KeyHandler,
    Unsubscribe,
    VisibilityHandler,
)
from proctor_app.core.models import KeyEvent, MediaTrack

logger = logging.getLogger(__name__)

_Handler = TypeVar("_Handler")


@dataclass(slots=True)
class RemoteTrack:
    kind: MediaTrack
    enabled: bool = True
    stopped: bool = False

    def stop(self) -> None:
        self.enabled = False
        self.stopped = True


@dataclass(slots=True)
class RemoteCaptureStream:
    """Stands for the stream held by the browser; chunks arrive via ``push_chunk``."""

    tracks: list[RemoteTrack] = field(
        default_factory=lambda: [RemoteTrack(MediaTrack.CAMERA), RemoteTrack(MediaTrack.MICROPHONE)]
    )
    chunk_seconds: int | None = None
    _on_chunk: ChunkHandler | None = None

    def get_tracks(self) -> list[RemoteTrack]:
        return list(self.tracks)

    def start_recording(self, chunk_seconds: int, on_chunk: ChunkHandler) -> None:
        self.chunk_seconds = chunk_seconds
        self._on_chunk = on_chunk

    def stop_recording(self) -> None:
        self._on_chunk = None

    def is_recording(self) -> bool:
        return self._on_chunk is not None

    def push_chunk(self, chunk: bytes) -> bool:
        if self._on_chunk is None:
            return False
        self._on_chunk(chunk)
        return True


class RemoteCapabilityProvider:
    """One provider per session; holds the grant reported at start and the signal subscribers."""

    def __init__(self) -> None:
        self._capture_granted = True
        self._fullscreen_granted = True
        self._denial_reason: str | None = None
        self._fullscreen = False
        self._stream: RemoteCaptureStream | None = None
        self._visibility_handlers: list[VisibilityHandler] = []
        self._fullscreen_handlers: list[FullscreenHandler] = []
        self._key_handlers: list[KeyHandler] = []
        self._context_menu_handlers: list[ContextMenuHandler] = []

    def report_grant(
        self,
        capture_granted: bool,
        fullscreen_granted: bool,
        denial_reason: str | None = None,
    ) -> None:
        """Record what the browser obtained before ``start`` requests it."""
        self._capture_granted = capture_granted
        self._fullscreen_granted = fullscreen_granted
        self._denial_reason = denial_reason
        logger.info(
            "Browser reported capture=%s fullscreen=%s", capture_granted, fullscreen_granted
        )

    # --- Acquisition ---

    async def request_capture(self) -> RemoteCaptureStream:
        if not self._capture_granted:
            raise PermissionError(self._denial_reason or "Camera or microphone permission was denied")
        self._stream = RemoteCaptureStream()
        return self._stream

    async def request_fullscreen(self) -> None:
        if not self._fullscreen_granted:
            raise PermissionError(self._denial_reason or "Fullscreen request was rejected")
        self._fullscreen = True

    async def exit_fullscreen(self) -> None:
        self._fullscreen = False

    def is_fullscreen(self) -> bool:
        return self._fullscreen

    def get_stream(self) -> RemoteCaptureStream | None:
        return self._stream

    # --- Subscriptions ---

    def on_visibility_change(self, handler: VisibilityHandler) -> Unsubscribe:
        return _subscribe(self._visibility_handlers, handler)

    def on_fullscreen_change(self, handler: FullscreenHandler) -> Unsubscribe:
        return _subscribe(self._fullscreen_handlers, handler)

    def on_key_event(self, handler: KeyHandler) -> Unsubscribe:
        return _subscribe(self._key_handlers, handler)

    def on_context_menu(self, handler: ContextMenuHandler) -> Unsubscribe:
        return _subscribe(self._context_menu_handlers, handler)

    def get_subscriber_count(self) -> int:
        return (
            len(self._visibility_handlers)
            + len(self._fullscreen_handlers)
            + len(self._key_handlers)
            + len(self._context_menu_handlers)
        )

    # --- Signal dispatch ---

    async def visibility_changed(self, hidden: bool) -> None:
        for handler in list(self._visibility_handlers):
            await handler(hidden)

    async def fullscreen_changed(self, is_fullscreen: bool) -> None:
        self._fullscreen = is_fullscreen
        for handler in list(self._fullscreen_handlers):
            await handler(is_fullscreen)

    async def key_pressed(self, event: KeyEvent) -> None:
        for handler in list(self._key_handlers):
            await handler(event)

    async def context_menu_opened(self) -> None:
        for handler in list(self._context_menu_handlers):
            await handler()


def _subscribe(handlers: list[_Handler], handler: _Handler) -> Callable[[], None]:
    handlers.append(handler)

    def unsubscribe() -> None:
        if handler in handlers:
            handlers.remove(handler)

    return unsubscribe
