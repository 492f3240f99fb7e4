"""Answer capture, code runs and the one-time scoring pass."""

from __future__ import annotations

import asyncio
from datetime import datetime
import logging
import time

from proctor_app.constants.session_constants import (
    RATING_AVERAGE_THRESHOLD,
    RATING_EXCELLENT_THRESHOLD,
    RATING_GOOD_THRESHOLD,
)
from proctor_app.core.collaborators import AnswerValidator, CodeExecutor
from proctor_app.core.errors import (
    DoubleFinalization,
    ExecutionFailure,
    UnknownQuestion,
    ValidationFailure,
)
from proctor_app.core.models import (
    Answer,
    AnswerPayload,
    ExecutionResult,
    ExecutionStatus,
    OverallRating,
    Question,
    QuestionFeedback,
    QuestionType,
    ScoringOutcome,
    ValidationResult,
)

logger = logging.getLogger(__name__)

UNANSWERED_FEEDBACK = "No answer submitted."
VALIDATION_FALLBACK_FEEDBACK = "Unable to validate answer due to system error."
VALIDATION_TIMEOUT_FEEDBACK = "Answer validation did not finish in time; scored as zero."


def compute_rating(percentage: float) -> OverallRating:
    """Band a percentage score into a rating."""
    if percentage >= RATING_EXCELLENT_THRESHOLD:
        return OverallRating.EXCELLENT
    if percentage >= RATING_GOOD_THRESHOLD:
        return OverallRating.GOOD
    if percentage >= RATING_AVERAGE_THRESHOLD:
        return OverallRating.AVERAGE
    return OverallRating.POOR


class ScoringCoordinator:
    """Holds answer drafts for one session and scores them once at the end."""

    def __init__(
        self,
        session_id: str,
        questions: list[Question],
        executor: CodeExecutor,
        validator: AnswerValidator,
        execution_timeout_seconds: float,
        validation_timeout_seconds: float,
    ) -> None:
        self._session_id = session_id
        self._questions: dict[str, Question] = {q.id: q for q in questions}
        self._order = [q.id for q in questions]
        self._executor = executor
        self._validator = validator
        self._execution_timeout = execution_timeout_seconds
        self._validation_timeout = validation_timeout_seconds
        self._answers: dict[str, Answer] = {}
        self._time_spent: dict[str, int] = {}
        self._finalized = False

    # --- Answers ---

    def get_question(self, question_id: str) -> Question:
        try:
            return self._questions[question_id]
        except KeyError as exc:
            raise UnknownQuestion(f"Question '{question_id}' is not part of this session.") from exc

    def record_answer(self, question_id: str, payload: AnswerPayload) -> Answer:
        """Store or overwrite the draft for a question. Does not score."""
        question = self.get_question(question_id)
        if question.type is QuestionType.MULTIPLE_CHOICE and payload.selected_option:
            if question.options and payload.selected_option not in question.options:
                raise ValueError("Selected option is not one of the question's options.")

        previous = self._answers.get(question_id)
        execution_result = None
        if previous is not None and previous.payload.answer_code == payload.answer_code:
            execution_result = previous.execution_result

        answer = Answer(
            session_id=self._session_id,
            question_id=question_id,
            payload=payload,
            max_score=question.max_score,
            execution_result=execution_result,
            time_spent_seconds=self._time_spent.get(question_id, 0),
            submitted_at=datetime.utcnow(),
        )
        self._answers[question_id] = answer
        return answer

    def get_answer(self, question_id: str) -> Answer | None:
        return self._answers.get(question_id)

    def get_answers(self) -> list[Answer]:
        return [self._answers[qid] for qid in self._order if qid in self._answers]

    def get_answered_question_ids(self) -> list[str]:
        return [qid for qid in self._order if qid in self._answers]

    def add_time_spent(self, question_id: str, seconds: int) -> None:
        self._time_spent[question_id] = self._time_spent.get(question_id, 0) + seconds
        answer = self._answers.get(question_id)
        if answer is not None:
            answer.time_spent_seconds = self._time_spent[question_id]

    # --- Code execution ---

    async def execute_draft(self, question_id: str) -> tuple[str, ExecutionResult]:
        """Execute the drafted code (or the starter code) for a coding question.

        The result is not attached here; the caller decides whether the
        session is still open to receive it.
        """
        question = self.get_question(question_id)
        if question.type is not QuestionType.CODING:
            raise ValueError("Only coding questions can be executed.")

        draft = self._answers.get(question_id)
        code = draft.payload.answer_code if draft is not None else question.starter_code
        if not code or not code.strip():
            raise ValueError("Please write some code to run.")

        result = await self._execute(code, question.language or "python")
        return code, result

    def attach_execution_result(self, question_id: str, code: str, result: ExecutionResult) -> Answer:
        """Attach a result to the draft, unless the code changed while it was running."""
        draft = self._answers.get(question_id)
        if draft is None:
            draft = self.record_answer(question_id, AnswerPayload(answer_code=code))
        if draft.payload.answer_code == code:
            draft.execution_result = result
        return draft

    async def _execute(self, code: str, language: str) -> ExecutionResult:
        started = time.perf_counter()
        try:
            return await asyncio.wait_for(
                self._executor.execute(code, language), timeout=self._execution_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Session %s: code execution timed out", self._session_id)
            return ExecutionResult(
                status=ExecutionStatus.TIMEOUT,
                error=f"Execution exceeded {self._execution_timeout:g} seconds.",
                execution_time_ms=int((time.perf_counter() - started) * 1000),
            )
        except ExecutionFailure as exc:
            logger.warning("Session %s: code execution failed: %s", self._session_id, exc)
            return ExecutionResult(
                status=ExecutionStatus.ERROR,
                error=f"Execution failed: {exc}",
                execution_time_ms=int((time.perf_counter() - started) * 1000),
            )

    # --- Finalization ---

    def is_finalized(self) -> bool:
        return self._finalized

    async def finalize_scoring(self) -> ScoringOutcome:
        """Score every answered question once; unanswered questions score zero."""
        if self._finalized:
            raise DoubleFinalization(f"Session {self._session_id} was already scored.")
        self._finalized = True

        answered = [self._answers[qid] for qid in self._order if qid in self._answers]
        results = await asyncio.gather(*(self._validate(answer) for answer in answered))
        by_question = {answer.question_id: result for answer, result in zip(answered, results)}

        feedbacks: list[QuestionFeedback] = []
        total = 0.0
        for question_id in self._order:
            question = self._questions[question_id]
            answer = self._answers.get(question_id)
            if answer is None:
                feedbacks.append(
                    QuestionFeedback(
                        question_id=question_id,
                        score=0.0,
                        max_score=question.max_score,
                        feedback=UNANSWERED_FEEDBACK,
                        answered=False,
                    )
                )
                continue
            score, feedback = by_question[question_id]
            answer.score = score
            answer.feedback = feedback
            answer.scored = True
            total += score
            feedbacks.append(
                QuestionFeedback(
                    question_id=question_id,
                    score=score,
                    max_score=question.max_score,
                    feedback=feedback,
                    answered=True,
                )
            )
        return ScoringOutcome(total_score=total, feedbacks=feedbacks)

    async def _validate(self, answer: Answer) -> tuple[float, str]:
        question = self._questions[answer.question_id]
        if answer.payload.is_blank():
            return 0.0, UNANSWERED_FEEDBACK
        try:
            result: ValidationResult = await asyncio.wait_for(
                self._validator.validate(question, answer.payload, answer.execution_result),
                timeout=self._validation_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Session %s: validation of %s timed out", self._session_id, question.id
            )
            return 0.0, VALIDATION_TIMEOUT_FEEDBACK
        except ValidationFailure as exc:
            logger.warning(
                "Session %s: validation of %s failed: %s", self._session_id, question.id, exc
            )
            return 0.0, f"{VALIDATION_FALLBACK_FEEDBACK} ({exc})"
        except Exception as exc:
            # Unexpected adapter errors still must not block the session from completing.
            logger.exception("Session %s: validator crashed on %s", self._session_id, question.id)
            return 0.0, f"{VALIDATION_FALLBACK_FEEDBACK} ({exc})"
        score = min(max(float(result.score), 0.0), float(question.max_score))
        return score, result.feedback
