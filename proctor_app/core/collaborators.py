"""Contracts for the external collaborators consumed by the session core.

Architecture note:
    The core never imports a concrete storage, sandbox, scoring engine or
    browser bridge. Each of those is described here as a ``Protocol`` so the
    HTTP server, the tests and any future deployment can plug in their own
    implementation. Collaborator methods that do I/O are coroutines; the
    capability subscriptions return an unsubscribe callable so listeners can be
    torn down deterministically.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol

from proctor_app.core.models import (
    AnswerPayload,
    Answer,
    ExecutionResult,
    ExperienceLevel,
    InterviewSession,
    KeyEvent,
    MediaTrack,
    Question,
    ValidationResult,
    Violation,
)

Unsubscribe = Callable[[], None]
VisibilityHandler = Callable[[bool], Awaitable[None]]
FullscreenHandler = Callable[[bool], Awaitable[None]]
KeyHandler = Callable[[KeyEvent], Awaitable[None]]
ContextMenuHandler = Callable[[], Awaitable[None]]
ChunkHandler = Callable[[bytes], None]


class Clock(Protocol):
    """Monotonic time source driving the countdown."""

    async def wait_tick(self) -> None:
        """Suspend until the next one-second tick."""

    def now(self) -> float:
        """Return monotonic seconds."""


class QuestionSource(Protocol):
    async def fetch_questions(
        self, domain_id: str, experience_level: ExperienceLevel
    ) -> list[Question]: ...


class SessionPersistence(Protocol):
    async def create_session(self, session: InterviewSession) -> str: ...

    async def update_session(self, session_id: str, patch: dict[str, Any]) -> None: ...

    async def insert_answer(self, answer: Answer) -> None: ...

    async def insert_violation(self, violation: Violation) -> None: ...


class CodeExecutor(Protocol):
    async def execute(self, code: str, language: str) -> ExecutionResult:
        """Run code. Must not raise; failures come back as an error/timeout status."""


class AnswerValidator(Protocol):
    async def validate(
        self,
        question: Question,
        payload: AnswerPayload,
        execution_result: ExecutionResult | None,
    ) -> ValidationResult: ...


class CaptureTrack(Protocol):
    kind: MediaTrack
    enabled: bool

    def stop(self) -> None: ...


class CaptureStream(Protocol):
    def get_tracks(self) -> list[CaptureTrack]: ...

    def start_recording(self, chunk_seconds: int, on_chunk: ChunkHandler) -> None: ...

    def stop_recording(self) -> None: ...


class CapabilityProvider(Protocol):
    """Environment permissions and signals: capture, fullscreen, input events."""

    async def request_capture(self) -> CaptureStream: ...

    async def request_fullscreen(self) -> None: ...

    async def exit_fullscreen(self) -> None: ...

    def is_fullscreen(self) -> bool: ...

    def on_visibility_change(self, handler: VisibilityHandler) -> Unsubscribe: ...

    def on_fullscreen_change(self, handler: FullscreenHandler) -> Unsubscribe: ...

    def on_key_event(self, handler: KeyHandler) -> Unsubscribe: ...

    def on_context_menu(self, handler: ContextMenuHandler) -> Unsubscribe: ...
