"""Shared fakes and fixtures for the proctoring tests."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import pytest

from proctor_app.core.errors import PersistenceFailure
from proctor_app.core.models import (
    Answer,
    AnswerPayload,
    ExecutionResult,
    ExecutionStatus,
    ExperienceLevel,
    InterviewSession,
    KeyEvent,
    MediaTrack,
    Question,
    QuestionType,
    ValidationResult,
    Violation,
)
from proctor_app.core.session_controller import SessionController
from proctor_app.core.session_policy import SessionPolicy


async def settle(rounds: int = 10) -> None:
    """Let pending tasks run a few loop iterations."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualClock:
    """Clock whose ticks are released by the test."""

    def __init__(self) -> None:
        self._ticks: asyncio.Queue[None] = asyncio.Queue()
        self._now = 0.0

    def now(self) -> float:
        return self._now

    def set_time(self, value: float) -> None:
        self._now = value

    async def wait_tick(self) -> None:
        await self._ticks.get()

    def push_tick(self) -> None:
        self._now += 1.0
        self._ticks.put_nowait(None)

    async def advance(self, seconds: int = 1) -> None:
        for _ in range(seconds):
            self.push_tick()
            await settle()


class FakeQuestionSource:
    def __init__(self, questions: list[Question]) -> None:
        self.questions = questions
        self.calls: list[tuple[str, ExperienceLevel]] = []

    async def fetch_questions(self, domain_id: str, experience_level: ExperienceLevel) -> list[Question]:
        self.calls.append((domain_id, experience_level))
        return [
            q for q in self.questions
            if q.domain_id == domain_id and q.experience_level is experience_level
        ]


class FakePersistence:
    def __init__(self) -> None:
        self.sessions: dict[str, InterviewSession] = {}
        self.patches: list[tuple[str, dict[str, Any]]] = []
        self.answers: list[Answer] = []
        self.violations: list[Violation] = []
        self.failing: set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise PersistenceFailure(f"{operation} is unavailable")

    async def create_session(self, session: InterviewSession) -> str:
        self._check("create_session")
        self.sessions[session.id] = session
        return session.id

    async def update_session(self, session_id: str, patch: dict[str, Any]) -> None:
        self._check("update_session")
        self.patches.append((session_id, dict(patch)))

    async def insert_answer(self, answer: Answer) -> None:
        self._check("insert_answer")
        self.answers.append(answer)

    async def insert_violation(self, violation: Violation) -> None:
        self._check("insert_violation")
        self.violations.append(violation)

    def statuses(self) -> list[str]:
        return [patch["status"] for _, patch in self.patches if "status" in patch]


class FakeExecutor:
    def __init__(self, result: ExecutionResult | None = None) -> None:
        self.result = result or ExecutionResult(status=ExecutionStatus.SUCCESS, output="ok\n")
        self.calls: list[tuple[str, str]] = []
        self.gate: asyncio.Event | None = None

    async def execute(self, code: str, language: str) -> ExecutionResult:
        self.calls.append((code, language))
        if self.gate is not None:
            await self.gate.wait()
        return self.result


class FakeValidator:
    """Scores from a per-question table; unknown questions score full marks."""

    def __init__(self, scores: dict[str, float] | None = None) -> None:
        self.scores = scores or {}
        self.calls: list[str] = []
        self.failures: dict[str, Exception] = {}
        self.hang: set[str] = set()

    async def validate(
        self,
        question: Question,
        payload: AnswerPayload,
        execution_result: ExecutionResult | None,
    ) -> ValidationResult:
        self.calls.append(question.id)
        if question.id in self.failures:
            raise self.failures[question.id]
        if question.id in self.hang:
            await asyncio.Event().wait()
        score = self.scores.get(question.id, question.max_score)
        return ValidationResult(score=score, max_score=question.max_score, feedback=f"scored {score}")


class FakeTrack:
    def __init__(self, kind: MediaTrack) -> None:
        self.kind = kind
        self.enabled = True
        self.stop_count = 0

    def stop(self) -> None:
        self.enabled = False
        self.stop_count += 1


class FakeStream:
    def __init__(self, fail_recording: bool = False) -> None:
        self.tracks = [FakeTrack(MediaTrack.CAMERA), FakeTrack(MediaTrack.MICROPHONE)]
        self.fail_recording = fail_recording
        self.on_chunk: Callable[[bytes], None] | None = None
        self.stop_recording_count = 0

    def get_tracks(self) -> list[FakeTrack]:
        return list(self.tracks)

    def start_recording(self, chunk_seconds: int, on_chunk: Callable[[bytes], None]) -> None:
        if self.fail_recording:
            raise RuntimeError("recorder unavailable")
        self.on_chunk = on_chunk

    def stop_recording(self) -> None:
        self.stop_recording_count += 1
        self.on_chunk = None


class FakeCapabilityProvider:
    def __init__(
        self,
        deny_capture: bool = False,
        deny_fullscreen: bool = False,
        fail_recording: bool = False,
    ) -> None:
        self.deny_capture = deny_capture
        self.deny_fullscreen = deny_fullscreen
        self.stream = FakeStream(fail_recording=fail_recording)
        self.fullscreen = False
        self.capture_requests = 0
        self.exit_fullscreen_count = 0
        self.capture_gate: asyncio.Event | None = None
        self.handlers: dict[str, list[Callable[..., Any]]] = {
            "visibility": [],
            "fullscreen": [],
            "key": [],
            "context_menu": [],
        }

    async def request_capture(self) -> FakeStream:
        self.capture_requests += 1
        if self.capture_gate is not None:
            await self.capture_gate.wait()
        if self.deny_capture:
            raise PermissionError("NotAllowedError")
        return self.stream

    async def request_fullscreen(self) -> None:
        if self.deny_fullscreen:
            raise PermissionError("fullscreen rejected")
        # Entering fullscreen fires a change event the monitor must not count.
        await self.emit_fullscreen(True)

    async def exit_fullscreen(self) -> None:
        self.exit_fullscreen_count += 1
        self.fullscreen = False

    def is_fullscreen(self) -> bool:
        return self.fullscreen

    def _subscribe(self, kind: str, handler: Callable[..., Any]) -> Callable[[], None]:
        self.handlers[kind].append(handler)
        return lambda: self.handlers[kind].remove(handler)

    def on_visibility_change(self, handler):
        return self._subscribe("visibility", handler)

    def on_fullscreen_change(self, handler):
        return self._subscribe("fullscreen", handler)

    def on_key_event(self, handler):
        return self._subscribe("key", handler)

    def on_context_menu(self, handler):
        return self._subscribe("context_menu", handler)

    def subscriber_count(self) -> int:
        return sum(len(handlers) for handlers in self.handlers.values())

    async def emit_visibility(self, hidden: bool) -> None:
        for handler in list(self.handlers["visibility"]):
            await handler(hidden)

    async def emit_fullscreen(self, is_fullscreen: bool) -> None:
        self.fullscreen = is_fullscreen
        for handler in list(self.handlers["fullscreen"]):
            await handler(is_fullscreen)

    async def emit_key(self, key: str, **modifiers: bool) -> None:
        for handler in list(self.handlers["key"]):
            await handler(KeyEvent(key=key, **modifiers))

    async def emit_context_menu(self) -> None:
        for handler in list(self.handlers["context_menu"]):
            await handler()

    def track_stop_counts(self) -> list[int]:
        return [track.stop_count for track in self.stream.tracks]


def make_question(
    question_id: str,
    max_score: int = 10,
    question_type: QuestionType = QuestionType.FREE_TEXT,
    time_limit_seconds: int = 60,
    **overrides: Any,
) -> Question:
    fields: dict[str, Any] = {
        "id": question_id,
        "domain_id": "python",
        "question_text": f"Question {question_id}",
        "type": question_type,
        "experience_level": ExperienceLevel.FRESHER,
        "max_score": max_score,
        "time_limit_seconds": time_limit_seconds,
    }
    if question_type is QuestionType.MULTIPLE_CHOICE:
        fields["options"] = ["2", "3", "4"]
        fields["correct_option"] = "3"
    if question_type is QuestionType.CODING:
        fields["language"] = "python"
        fields["starter_code"] = "print('hi')"
    fields.update(overrides)
    return Question(**fields)


@pytest.fixture
def questions() -> list[Question]:
    return [
        make_question("q1", max_score=5),
        make_question("q2", max_score=10),
        make_question("q3", max_score=15),
    ]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def persistence() -> FakePersistence:
    return FakePersistence()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def validator() -> FakeValidator:
    return FakeValidator()


@pytest.fixture
def provider() -> FakeCapabilityProvider:
    return FakeCapabilityProvider()


@pytest.fixture
def notices() -> list[Violation]:
    return []


@pytest.fixture
def make_controller(questions, clock, persistence, executor, validator, provider, notices):
    def build(
        policy: SessionPolicy | None = None,
        source_questions: list[Question] | None = None,
        on_closed: Callable[[SessionController], None] | None = None,
    ) -> SessionController:
        source = FakeQuestionSource(questions if source_questions is None else source_questions)
        return SessionController(
            question_source=source,
            persistence=persistence,
            executor=executor,
            validator=validator,
            provider=provider,
            clock=clock,
            policy=policy,
            on_notice=notices.append,
            on_closed=on_closed,
        )

    return build


@pytest.fixture
def start_session(make_controller):
    async def start(policy: SessionPolicy | None = None) -> SessionController:
        controller = make_controller(policy)
        await controller.initialize("cand-1", "python", "ab12", ExperienceLevel.FRESHER)
        await controller.start()
        return controller

    return start
