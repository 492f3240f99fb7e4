"""Answer-key validator for question banks that carry their own solutions."""

from __future__ import annotations

from proctor_app.core.models import (
    AnswerPayload,
    ExecutionResult,
    Question,
    QuestionType,
    ValidationResult,
)


class AnswerKeyValidator:
    """Scores answers against the key stored on each question.

    Multiple-choice answers score full marks on an exact option match. Coding
    answers score full marks when the last run succeeded and, where the
    question states an expected output, printed it. Free-text answers are
    left at zero for manual review.
    """

    async def validate(
        self,
        question: Question,
        payload: AnswerPayload,
        execution_result: ExecutionResult | None,
    ) -> ValidationResult:
        if question.type is QuestionType.MULTIPLE_CHOICE:
            return self._validate_choice(question, payload)
        if question.type is QuestionType.CODING:
            return self._validate_code(question, execution_result)
        return ValidationResult(
            score=0,
            max_score=question.max_score,
            feedback="Free-text answer recorded for manual review.",
        )

    @staticmethod
    def _validate_choice(question: Question, payload: AnswerPayload) -> ValidationResult:
        if question.correct_option is None:
            return ValidationResult(
                score=0,
                max_score=question.max_score,
                feedback="No answer key for this question; recorded for manual review.",
            )
        if payload.selected_option == question.correct_option:
            return ValidationResult(
                score=question.max_score,
                max_score=question.max_score,
                feedback="Correct option selected.",
                strengths=["Correct option selected"],
            )
        return ValidationResult(
            score=0,
            max_score=question.max_score,
            feedback=f"Incorrect. The expected answer was: {question.correct_option}",
            weaknesses=["Incorrect option selected"],
        )

    @staticmethod
    def _validate_code(question: Question, execution_result: ExecutionResult | None) -> ValidationResult:
        if execution_result is None:
            return ValidationResult(
                score=0,
                max_score=question.max_score,
                feedback="Code was never run.",
                suggestions=["Run your code before submitting"],
            )
        if not execution_result.succeeded:
            return ValidationResult(
                score=0,
                max_score=question.max_score,
                feedback=f"Last run ended with status '{execution_result.status.value}'.",
                weaknesses=[execution_result.error or "Execution failed"],
            )
        expected = (question.expected_output or "").strip()
        if expected and (execution_result.output or "").strip() != expected:
            return ValidationResult(
                score=0,
                max_score=question.max_score,
                feedback="Program output does not match the expected output.",
                weaknesses=["Output mismatch"],
            )
        return ValidationResult(
            score=question.max_score,
            max_score=question.max_score,
            feedback="Code ran successfully and produced the expected output.",
            strengths=["Working solution"],
        )
