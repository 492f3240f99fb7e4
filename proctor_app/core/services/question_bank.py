"""In-memory question source backed by imported question files."""

from __future__ import annotations

from dataclasses import replace
from threading import Lock

from proctor_app.constants.session_constants import SUPPORTED_LANGUAGES
from proctor_app.core.models import ExperienceLevel, Question, QuestionType


class QuestionBank:
    """Validates and stores questions; serves them per domain and experience level."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._questions: list[Question] = []
        self._question_counter: int = 0

    def load_questions(self, questions: list[Question]) -> None:
        """Replace the bank with a new list of questions."""
        if not questions:
            raise ValueError("Question bank must contain at least one question.")
        prepared = [self._prepare_question(q) for q in questions]
        with self._lock:
            self._questions = prepared

    def get_question_count(self) -> int:
        with self._lock:
            return len(self._questions)

    async def fetch_questions(
        self, domain_id: str, experience_level: ExperienceLevel
    ) -> list[Question]:
        """Questions for a domain and level, easiest first."""
        level = ExperienceLevel(experience_level)
        with self._lock:
            matching = [
                q for q in self._questions
                if q.domain_id == domain_id and q.experience_level is level
            ]
        return sorted(matching, key=lambda q: q.difficulty)

    def _prepare_question(self, question: Question) -> Question:
        """Validate and normalize a question before storage."""
        cleaned_text = question.question_text.strip()
        if not cleaned_text:
            raise ValueError("Question text must not be empty.")
        if not question.domain_id.strip():
            raise ValueError("Question must belong to a domain.")
        if question.max_score <= 0:
            raise ValueError("Max score must be a positive integer.")
        self._validate_time_limit(question.time_limit_seconds)

        options = list(question.options)
        if question.type is QuestionType.MULTIPLE_CHOICE:
            options = self._validate_options(question.options, question.correct_option)
        elif question.type is QuestionType.CODING:
            language = (question.language or "python").lower()
            if language not in SUPPORTED_LANGUAGES:
                raise ValueError(f"Language '{language}' is not supported.")
            question = replace(question, language=language)

        return replace(
            question,
            id=question.id or self._next_question_id(),
            domain_id=question.domain_id.strip(),
            question_text=cleaned_text,
            options=options,
        )

    def _next_question_id(self) -> str:
        with self._lock:
            self._question_counter += 1
            return f"q{self._question_counter}"

    @staticmethod
    def _validate_options(options: list[str], correct_option: str | None) -> list[str]:
        if len(options) < 2:
            raise ValueError("Multiple-choice questions need at least two options.")
        cleaned = [option.strip() for option in options]
        if any(not option for option in cleaned):
            raise ValueError("Option text cannot be empty.")
        if correct_option is not None and correct_option not in cleaned:
            raise ValueError("Correct option must be one of the listed options.")
        return cleaned

    @staticmethod
    def _validate_time_limit(time_limit_seconds: int) -> None:
        if not isinstance(time_limit_seconds, int):
            raise ValueError("Time limit must be provided as an integer number of seconds.")
        if time_limit_seconds <= 0:
            raise ValueError("Time limit must be a positive integer.")
