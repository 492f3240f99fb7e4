"""State machine orchestrating one proctored assessment session."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from itertools import accumulate
import logging
from typing import Any, Awaitable, Callable
from uuid import uuid4

from proctor_app.core.collaborators import (
    AnswerValidator,
    CapabilityProvider,
    Clock,
    CodeExecutor,
    QuestionSource,
    SessionPersistence,
)
from proctor_app.core.errors import (
    FullscreenDenied,
    InvalidSessionState,
    MediaAccessDenied,
    NoQuestionsAvailable,
    PersistenceFailure,
)
from proctor_app.core.models import (
    Answer,
    AnswerPayload,
    ExecutionResult,
    ExperienceLevel,
    InterviewSession,
    MediaTrack,
    Question,
    QuestionFeedback,
    SessionSnapshot,
    SessionStatus,
    SubmissionTrigger,
    Violation,
    ViolationType,
)
from proctor_app.core.services.media_capture import MediaCaptureManager
from proctor_app.core.services.scoring_coordinator import (
    ScoringCoordinator,
    compute_rating,
)
from proctor_app.core.services.session_timer import SessionTimer
from proctor_app.core.services.submission_arbiter import FinalizationClaim, SubmissionArbiter
from proctor_app.core.services.violation_monitor import ViolationMonitor
from proctor_app.core.session_policy import SessionPolicy, TimePolicy

logger = logging.getLogger(__name__)

ViolationNotice = Callable[[Violation], None]
ClosedHook = Callable[["SessionController"], None]

_TRACK_VIOLATIONS = {
    MediaTrack.CAMERA: (ViolationType.CAMERA_DISABLED, "Candidate disabled camera"),
    MediaTrack.MICROPHONE: (ViolationType.MICROPHONE_DISABLED, "Candidate disabled microphone"),
}


@dataclass(slots=True)
class PendingWrite:
    """A persistence write that failed and can be retried."""

    description: str
    perform: Callable[[], Awaitable[None]]


class SessionController:
    """Facade over the timer, monitor, capture and scoring services for one session.

    All mutations of the InterviewSession record go through this class. The
    services only report values and events back through callbacks.
    """

    def __init__(
        self,
        question_source: QuestionSource,
        persistence: SessionPersistence,
        executor: CodeExecutor,
        validator: AnswerValidator,
        provider: CapabilityProvider,
        clock: Clock,
        policy: SessionPolicy | None = None,
        on_notice: ViolationNotice | None = None,
        on_closed: ClosedHook | None = None,
    ) -> None:
        self._question_source = question_source
        self._persistence = persistence
        self._executor = executor
        self._validator = validator
        self._provider = provider
        self._clock = clock
        self._policy = policy or SessionPolicy()
        self._on_notice = on_notice
        self._on_closed = on_closed

        self._session: InterviewSession | None = None
        self._questions: list[Question] = []
        self._budget_seconds = 0
        self._later_budgets: list[int] = []
        self._violations: list[Violation] = []
        self._feedbacks: list[QuestionFeedback] = []
        self._pending_writes: list[PendingWrite] = []

        self._arbiter: SubmissionArbiter | None = None
        self._scoring: ScoringCoordinator | None = None
        self._media: MediaCaptureManager | None = None
        self._monitor: ViolationMonitor | None = None
        self._timer: SessionTimer | None = None
        self._closing_task: asyncio.Task[InterviewSession] | None = None

    # --- Lifecycle ---

    async def initialize(
        self,
        candidate_id: str,
        domain_id: str,
        exam_code: str,
        experience_level: ExperienceLevel | str,
    ) -> str:
        """Assign questions and create the session record in AwaitingStart."""
        if self._session is not None:
            raise InvalidSessionState("Session has already been initialized.")
        level = ExperienceLevel(experience_level)

        questions = await self._question_source.fetch_questions(domain_id, level)
        if not questions:
            raise NoQuestionsAvailable(domain_id, level.value)

        limits = [q.time_limit_seconds for q in questions]
        budget = sum(limits)
        session = InterviewSession(
            id=uuid4().hex,
            candidate_id=candidate_id,
            domain_id=domain_id,
            exam_code=exam_code.strip().upper(),
            experience_level=level,
            question_ids=[q.id for q in questions],
            max_possible_score=sum(q.max_score for q in questions),
            time_remaining_seconds=budget,
            status=SessionStatus.AWAITING_START,
        )
        session.id = await self._persistence.create_session(session) or session.id

        self._session = session
        self._questions = list(questions)
        self._budget_seconds = budget
        suffix = list(accumulate(reversed(limits)))[::-1]
        self._later_budgets = suffix[1:] + [0]
        self._build_services(session)
        logger.info(
            "Session %s initialized: %d question(s), %d s budget, max score %d",
            session.id,
            len(questions),
            budget,
            session.max_possible_score,
        )
        return session.id

    def _build_services(self, session: InterviewSession) -> None:
        policy = self._policy
        self._arbiter = SubmissionArbiter(session.id)
        self._scoring = ScoringCoordinator(
            session_id=session.id,
            questions=self._questions,
            executor=self._executor,
            validator=self._validator,
            execution_timeout_seconds=policy.execution_timeout_seconds,
            validation_timeout_seconds=policy.validation_timeout_seconds,
        )
        self._media = MediaCaptureManager(
            self._provider,
            chunk_seconds=policy.recording_chunk_seconds,
            max_chunks=policy.recording_max_chunks,
        )
        self._monitor = ViolationMonitor(
            session_id=session.id,
            provider=self._provider,
            threshold=policy.violation_threshold,
            debounce_seconds=policy.debounce_seconds,
            now=self._clock.now,
            is_active=self.is_active,
            on_violation=self._apply_violation,
            on_limit_reached=self._handle_violation_limit,
            persist=self._persist_violation,
            on_fullscreen_lost=self._restore_fullscreen,
        )
        self._timer = SessionTimer(
            clock=self._clock,
            budget_seconds=self._budget_seconds,
            is_active=self.is_active,
            on_tick=self._handle_tick,
            on_expired=self._handle_time_expired,
        )

    async def start(self) -> SessionSnapshot:
        """Enter Active: acquire capture and fullscreen, then arm monitoring and the timer.

        Must be triggered by an explicit candidate action. Calling it again
        while Active does nothing.
        """
        session = self._require_session()
        if session.status is SessionStatus.ACTIVE:
            return self.snapshot()
        if session.status is not SessionStatus.AWAITING_START:
            raise InvalidSessionState(f"Cannot start a session in status '{session.status.value}'.")

        session.status = SessionStatus.ACTIVE
        session.started_at = datetime.utcnow()
        logger.info("Session %s started", session.id)
        self._monitor.open()

        blocked = await self._acquire_capabilities()
        if not self.is_active():
            # Setup violations alone reached the limit.
            await self.wait_closed()
            return self.snapshot()
        if blocked:
            self._request_finalization(SubmissionTrigger.START_FAILED)
            await self.wait_closed()
            return self.snapshot()

        self._monitor.arm()
        self._timer.start()
        await self._write(
            "mark session active",
            lambda: self._persistence.update_session(
                session.id,
                {"status": SessionStatus.ACTIVE.value, "started_at": session.started_at},
            ),
            raise_on_failure=False,
        )
        return self.snapshot()

    async def _acquire_capabilities(self) -> bool:
        """Acquire capture then fullscreen. Returns True when policy blocks the start."""
        try:
            await self._media.acquire()
        except MediaAccessDenied as exc:
            if not self.is_active():
                return False
            logger.warning("Session %s: media access denied: %s", self._session.id, exc)
            await self._record_setup_violation(ViolationType.MEDIA_ACCESS_DENIED, str(exc))
            if self._policy.require_media:
                return True

        if not self.is_active():
            return False
        try:
            await self._media.enter_fullscreen()
        except FullscreenDenied as exc:
            if not self.is_active():
                return False
            logger.warning("Session %s: fullscreen denied: %s", self._session.id, exc)
            await self._record_setup_violation(ViolationType.FULLSCREEN_DENIED, str(exc))
            if self._policy.require_fullscreen:
                return True
        return False

    async def _record_setup_violation(self, violation_type: ViolationType, detail: str) -> None:
        try:
            await self._monitor.record(violation_type, detail)
        except PersistenceFailure:
            # Already queued in pending writes; starting must not fail on it.
            logger.error("Session %s: setup violation queued for retry", self._session.id)

    # --- Candidate operations ---

    def record_answer(self, question_id: str, payload: AnswerPayload) -> Answer:
        self._require_active("record an answer")
        return self._scoring.record_answer(question_id, payload)

    async def run_code(self, question_id: str) -> ExecutionResult:
        self._require_active("run code")
        code, result = await self._scoring.execute_draft(question_id)
        if self.is_active():
            self._scoring.attach_execution_result(question_id, code, result)
        else:
            logger.info(
                "Session %s: execution result for %s discarded, session closed",
                self._session.id,
                question_id,
            )
        return result

    def navigate(self, index: int) -> int:
        session = self._require_active("navigate")
        if not 0 <= index < len(self._questions):
            raise IndexError(f"Question index {index} out of range")
        if self._policy.time_policy is TimePolicy.PER_QUESTION and index != session.current_question_index:
            if index < session.current_question_index:
                raise InvalidSessionState("Per-question timing only allows moving forward.")
            target_remaining = self._later_budgets[index - 1]
            self._timer.forfeit(session.time_remaining_seconds - target_remaining)
            session.time_remaining_seconds = self._timer.get_remaining_seconds()
        session.current_question_index = index
        return index

    async def toggle_track(self, track: MediaTrack) -> bool:
        """Turn a capture track on or off. Disabling it counts as a violation."""
        self._require_active("toggle a capture track")
        enabled = self._media.toggle(track)
        if not enabled:
            violation_type, detail = _TRACK_VIOLATIONS[track]
            await self._monitor.record(violation_type, detail)
        return enabled

    async def submit(self, trigger: SubmissionTrigger = SubmissionTrigger.MANUAL) -> InterviewSession:
        """Request finalization. Losing triggers wait for and return the winner's record."""
        session = self._require_session()
        if self._closing_task is None and session.status is not SessionStatus.ACTIVE:
            raise InvalidSessionState(f"Cannot submit a session in status '{session.status.value}'.")
        self._request_finalization(trigger)
        return await self.wait_closed()

    async def wait_closed(self) -> InterviewSession:
        """Wait for the running finalization and return the terminal record."""
        if self._closing_task is None:
            raise InvalidSessionState("Session is not being finalized.")
        return await asyncio.shield(self._closing_task)

    async def dispose(self) -> None:
        """Tear the controller down; an Active session is abandoned."""
        if self._session is None:
            return
        try:
            if self._session.status is SessionStatus.ACTIVE:
                self._request_finalization(SubmissionTrigger.DISPOSED)
            if self._closing_task is not None:
                await self.wait_closed()
        finally:
            if self._monitor is not None:
                self._monitor.close()
            if self._timer is not None:
                self._timer.stop()
            if self._media is not None:
                await self._media.release()

    # --- Finalization ---

    def _request_finalization(self, trigger: SubmissionTrigger) -> bool:
        """Claim finalization and stop every source of further mutation synchronously."""
        session = self._session
        if session is None or session.status is not SessionStatus.ACTIVE:
            return False
        claim = self._arbiter.try_claim(trigger)
        if claim is None:
            return False
        self._timer.stop()
        self._monitor.close()
        session.status = SessionStatus.FINALIZING
        session.submission_trigger = trigger
        self._closing_task = asyncio.get_running_loop().create_task(
            self._finalize(claim), name=f"finalize-{session.id}"
        )
        return True

    async def _finalize(self, claim: FinalizationClaim) -> InterviewSession:
        session = self._session
        try:
            await self._media.release()
        except Exception:
            logger.exception("Session %s: error while releasing capture resources", session.id)

        session.ended_at = datetime.utcnow()
        session.time_taken_seconds = self._budget_seconds - session.time_remaining_seconds

        if claim.trigger.abandons_session:
            await self._write(
                "mark session abandoned",
                lambda: self._persistence.update_session(session.id, self._final_patch(SessionStatus.ABANDONED)),
                raise_on_failure=False,
            )
            session.status = SessionStatus.ABANDONED
            logger.info("Session %s abandoned (%s)", session.id, claim.trigger.value)
            self._notify_closed()
            return session

        outcome = await self._scoring.finalize_scoring()
        self._feedbacks = outcome.feedbacks
        session.total_score = outcome.total_score
        session.overall_rating = compute_rating(session.percentage_score)
        session.ai_feedback = self._summarize(outcome.feedbacks)

        for answer in self._scoring.get_answers():
            await self._write(
                f"store answer for {answer.question_id}",
                lambda answer=answer: self._persistence.insert_answer(answer),
                raise_on_failure=False,
            )
        await self._write(
            "mark session completed",
            lambda: self._persistence.update_session(session.id, self._final_patch(SessionStatus.COMPLETED)),
            raise_on_failure=False,
        )
        session.status = SessionStatus.COMPLETED
        logger.info(
            "Session %s completed via %s: %.2f/%d (%.1f%%, %s)",
            session.id,
            claim.trigger.value,
            session.total_score,
            session.max_possible_score,
            session.percentage_score,
            session.overall_rating.value,
        )
        self._notify_closed()
        return session

    def _notify_closed(self) -> None:
        if self._on_closed is not None:
            self._on_closed(self)

    def _final_patch(self, status: SessionStatus) -> dict[str, Any]:
        session = self._session
        return {
            "status": status.value,
            "total_score": session.total_score,
            "percentage_score": round(session.percentage_score, 2),
            "overall_rating": session.overall_rating.value if session.overall_rating else None,
            "ai_feedback": session.ai_feedback,
            "violation_count": session.violation_count,
            "current_question_index": session.current_question_index,
            "submission_trigger": session.submission_trigger.value if session.submission_trigger else None,
            "end_time": session.ended_at,
            "time_taken": session.time_taken_seconds,
        }

    def _summarize(self, feedbacks: list[QuestionFeedback]) -> str:
        session = self._session
        answered = sum(1 for feedback in feedbacks if feedback.answered)
        return (
            f"Scored {session.total_score:g}/{session.max_possible_score} "
            f"({session.percentage_score:.1f}%). "
            f"Answered {answered} of {len(feedbacks)} question(s); "
            f"{session.violation_count} violation(s) recorded."
        )

    # --- Service callbacks ---

    def _handle_tick(self, remaining: int) -> None:
        session = self._session
        session.time_remaining_seconds = remaining
        current = self._questions[session.current_question_index]
        self._scoring.add_time_spent(current.id, 1)
        if self._policy.time_policy is TimePolicy.PER_QUESTION:
            last_index = len(self._questions) - 1
            while (
                session.current_question_index < last_index
                and remaining <= self._later_budgets[session.current_question_index]
            ):
                session.current_question_index += 1
                logger.info(
                    "Session %s: time slice used up, moved to question %d",
                    session.id,
                    session.current_question_index + 1,
                )

    def _handle_time_expired(self) -> None:
        self._request_finalization(SubmissionTrigger.TIME_EXPIRED)

    def _handle_violation_limit(self) -> None:
        self._request_finalization(SubmissionTrigger.VIOLATION_LIMIT)

    def _apply_violation(self, violation: Violation) -> None:
        self._session.violation_count += 1
        self._violations.append(violation)
        logger.warning(
            "Session %s: violation %d/%d %s: %s",
            violation.session_id,
            self._session.violation_count,
            self._policy.violation_threshold,
            violation.type.value,
            violation.detail,
        )
        if self._on_notice is not None:
            self._on_notice(violation)

    async def _restore_fullscreen(self) -> bool:
        restored = await self._media.restore_fullscreen()
        if restored:
            logger.info("Session %s: fullscreen requested again after exit", self._session.id)
        return restored

    async def _persist_violation(self, violation: Violation) -> None:
        await self._write(
            f"store {violation.type.value} violation",
            lambda: self._persistence.insert_violation(violation),
        )

    # --- Persistence ---

    async def _write(
        self,
        description: str,
        perform: Callable[[], Awaitable[None]],
        raise_on_failure: bool = True,
    ) -> None:
        try:
            await perform()
        except PersistenceFailure as exc:
            logger.error("Session %s: failed to %s: %s", self._session.id, description, exc)
            self._pending_writes.append(PendingWrite(description=description, perform=perform))
            if raise_on_failure:
                raise

    async def flush_pending_writes(self) -> int:
        """Retry failed writes in order. Returns how many succeeded."""
        flushed = 0
        while self._pending_writes:
            pending = self._pending_writes[0]
            await pending.perform()
            self._pending_writes.pop(0)
            flushed += 1
        return flushed

    def get_pending_writes(self) -> list[str]:
        return [pending.description for pending in self._pending_writes]

    # --- Read-only views ---

    def is_active(self) -> bool:
        return self._session is not None and self._session.status is SessionStatus.ACTIVE

    def get_status(self) -> SessionStatus:
        if self._session is None:
            return SessionStatus.NOT_STARTED
        return self._session.status

    def get_session(self) -> InterviewSession:
        return self._require_session()

    def get_questions(self) -> list[Question]:
        return list(self._questions)

    def get_question_at_index(self, index: int) -> Question:
        if not 0 <= index < len(self._questions):
            raise IndexError(f"Question index {index} out of range")
        return self._questions[index]

    def get_answers(self) -> list[Answer]:
        if self._scoring is None:
            return []
        return self._scoring.get_answers()

    def get_violations(self) -> list[Violation]:
        return list(self._violations)

    def get_feedbacks(self) -> list[QuestionFeedback]:
        return list(self._feedbacks)

    def get_media(self) -> MediaCaptureManager | None:
        return self._media

    def get_policy(self) -> SessionPolicy:
        return self._policy

    def get_capability_provider(self) -> CapabilityProvider:
        return self._provider

    def snapshot(self) -> SessionSnapshot:
        session = self._require_session()
        media = self._media
        return SessionSnapshot(
            session_id=session.id,
            status=session.status,
            time_remaining_seconds=session.time_remaining_seconds,
            violation_count=session.violation_count,
            current_question_index=session.current_question_index,
            question_count=len(self._questions),
            answered_question_ids=self._scoring.get_answered_question_ids(),
            camera_enabled=media.is_track_enabled(MediaTrack.CAMERA),
            microphone_enabled=media.is_track_enabled(MediaTrack.MICROPHONE),
            fullscreen=media.is_fullscreen_held(),
            total_score=session.total_score,
            max_possible_score=session.max_possible_score,
            percentage_score=session.percentage_score,
            overall_rating=session.overall_rating,
            submission_trigger=session.submission_trigger,
            pending_writes=len(self._pending_writes),
        )

    # --- Guards ---

    def _require_session(self) -> InterviewSession:
        if self._session is None:
            raise InvalidSessionState("Session has not been initialized.")
        return self._session

    def _require_active(self, action: str) -> InterviewSession:
        session = self._require_session()
        if session.status is not SessionStatus.ACTIVE:
            raise InvalidSessionState(
                f"Cannot {action} while the session is '{session.status.value}'."
            )
        return session
