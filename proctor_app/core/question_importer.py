"""Utilities for importing question banks from a human-friendly text file.

File format (repeat blocks separated by blank lines or '---'):

    Q: Question text (supports markdown). Additional lines until the next
       marker are treated as part of the question.
    TYPE: mcq|coding|text            (optional, defaults to mcq)
    DOMAIN: domain id
    LEVEL: fresher|experienced       (optional, defaults to fresher)
    DIFFICULTY: integer              (optional, defaults to 1)
    MAXSCORE: integer                (optional, defaults to 10)
    TIMELIMIT: seconds               (optional, defaults to 300)
    A: First option text             (mcq only, two to four options A-D)
    B: Second option text
    CORRECT: A|B|C|D                 (mcq only, optional)
    LANGUAGE: python                 (coding only)
    STARTER:                         (coding only, followed by a fenced block)
    ```
    def solve():
        pass
    ```
    TEST: input => expected output   (coding only, repeatable)
    EXPECTED: expected program output (coding only, optional)

Example:

    Q: What does `len([1, 2, 3])` return?
    DOMAIN: python
    A: 2
    B: 3
    CORRECT: B
    MAXSCORE: 5
    TIMELIMIT: 60

Blank lines inside a fenced starter block belong to the code.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from proctor_app.constants.session_constants import (
    DEFAULT_MAX_SCORE,
    DEFAULT_TIME_LIMIT_SECONDS,
)
from proctor_app.core.errors import QuestionImportError
from proctor_app.core.models import CodeTestCase, ExperienceLevel, Question, QuestionType


@dataclass(slots=True)
class ImportedQuestionBank:
    """Container for imported question bank metadata and questions."""

    source_path: Path
    questions: list[Question]


_OPTION_ORDER = ["A", "B", "C", "D"]
_FENCE = "```"
_FIELD_MARKERS = frozenset(
    {"TYPE", "DOMAIN", "LEVEL", "CORRECT", "LANGUAGE", "EXPECTED", "DIFFICULTY", "MAXSCORE", "TIMELIMIT"}
)


def load_questions_from_file(file_path: Path) -> ImportedQuestionBank:
    text = file_path.read_text(encoding="utf-8")
    questions = parse_question_text(text)
    if not questions:
        raise QuestionImportError("Question file did not contain any questions.")
    return ImportedQuestionBank(source_path=file_path, questions=questions)


def parse_question_text(text: str) -> list[Question]:
    blocks: list[str] = []
    current_block: list[str] = []
    in_fence = False
    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if stripped.startswith(_FENCE):
            in_fence = not in_fence
            current_block.append(raw_line)
            continue
        if in_fence:
            current_block.append(raw_line)
            continue
        if stripped == "---":
            if current_block:
                blocks.append("\n".join(current_block).strip("\n"))
                current_block = []
            continue
        if stripped:
            current_block.append(raw_line)
        elif current_block:
            blocks.append("\n".join(current_block).strip("\n"))
            current_block = []
    if in_fence:
        raise QuestionImportError("Unterminated ``` block in starter code.")
    if current_block:
        blocks.append("\n".join(current_block).strip("\n"))

    return [_parse_block(block, position) for position, block in enumerate(blocks, start=1) if block.strip()]


def _parse_block(block: str, position: int) -> Question:
    question_lines: list[str] = []
    options: dict[str, str] = {}
    fields: dict[str, str] = {}
    tests: list[CodeTestCase] = []
    starter_lines: list[str] | None = None
    in_fence = False
    current_section: str | None = None

    for raw_line in block.splitlines():
        line = raw_line.strip()
        if line.startswith(_FENCE):
            if current_section != "STARTER":
                raise QuestionImportError("Code fences are only allowed after STARTER:.")
            in_fence = not in_fence
            if in_fence:
                starter_lines = []
            else:
                current_section = None
            continue
        if in_fence:
            starter_lines.append(raw_line.rstrip())
            continue
        if not line:
            continue

        upper = line.upper()
        if upper.startswith("Q:"):
            question_lines = [line[2:].strip()]
            current_section = "Q"
            continue

        if upper.startswith("STARTER:"):
            current_section = "STARTER"
            continue

        if upper.startswith("TEST:"):
            tests.append(_parse_test(line.split(":", 1)[1]))
            current_section = None
            continue

        marker, separator, value = line.partition(":")
        marker = marker.strip().upper()
        if separator and marker in _FIELD_MARKERS:
            fields[marker] = value.strip()
            current_section = None
            continue

        if len(line) > 2 and line[0].upper() in _OPTION_ORDER and line[1] == ":":
            letter = line[0].upper()
            options[letter] = line[2:].strip()
            current_section = letter
            continue

        if current_section == "Q":
            question_lines.append(line)
        elif current_section in _OPTION_ORDER:
            options[current_section] = options[current_section] + f"\n{line}"
        else:
            raise QuestionImportError(
                f"Encountered text outside of a known section: '{line}'."
            )

    question_text = "\n".join(question_lines).strip()
    if not question_text:
        raise QuestionImportError("Question text missing (Q: ...)")

    question_type = _parse_type(fields.get("TYPE", QuestionType.MULTIPLE_CHOICE.value))
    domain_id = fields.get("DOMAIN", "").strip()
    if not domain_id:
        raise QuestionImportError("DOMAIN is required for every question.")

    option_list: list[str] = []
    correct_option: str | None = None
    if question_type is QuestionType.MULTIPLE_CHOICE:
        option_list, correct_option = _parse_options(options, fields.get("CORRECT"))
    elif options:
        raise QuestionImportError("Options (A-D) are only allowed for mcq questions.")

    if question_type is not QuestionType.CODING and (starter_lines is not None or tests):
        raise QuestionImportError("STARTER and TEST are only allowed for coding questions.")

    return Question(
        id=f"q{position}",
        domain_id=domain_id,
        question_text=question_text,
        type=question_type,
        experience_level=_parse_level(fields.get("LEVEL", ExperienceLevel.FRESHER.value)),
        difficulty=_parse_integer(fields, "DIFFICULTY", 1),
        max_score=_parse_integer(fields, "MAXSCORE", DEFAULT_MAX_SCORE),
        time_limit_seconds=_parse_integer(fields, "TIMELIMIT", DEFAULT_TIME_LIMIT_SECONDS),
        options=option_list,
        correct_option=correct_option,
        starter_code="\n".join(starter_lines) if starter_lines is not None else None,
        language=fields.get("LANGUAGE", "python").lower() if question_type is QuestionType.CODING else None,
        test_cases=tests,
        expected_output=fields.get("EXPECTED") or None,
    )


def _parse_type(raw_value: str) -> QuestionType:
    try:
        return QuestionType(raw_value.strip().lower())
    except ValueError as exc:
        raise QuestionImportError("TYPE must be one of mcq, coding or text.") from exc


def _parse_level(raw_value: str) -> ExperienceLevel:
    try:
        return ExperienceLevel(raw_value.strip().lower())
    except ValueError as exc:
        raise QuestionImportError("LEVEL must be fresher or experienced.") from exc


def _parse_integer(fields: dict[str, str], name: str, default: int) -> int:
    raw_value = fields.get(name)
    if raw_value is None:
        return default
    if not raw_value:
        raise QuestionImportError(f"{name} must include an integer value.")
    try:
        parsed_value = int(raw_value)
    except ValueError as exc:
        raise QuestionImportError(f"{name} must be an integer.") from exc
    if parsed_value <= 0:
        raise QuestionImportError(f"{name} must be a positive integer.")
    return parsed_value


def _parse_options(options: dict[str, str], correct_letter: str | None) -> tuple[list[str], str | None]:
    letters = [letter for letter in _OPTION_ORDER if letter in options]
    if len(letters) < 2 or letters != _OPTION_ORDER[: len(letters)]:
        raise QuestionImportError("mcq questions need consecutive options starting at A (A-B up to A-D).")
    option_list = [options[letter].strip() for letter in letters]
    if any(not opt for opt in option_list):
        raise QuestionImportError("Option text cannot be empty.")

    if correct_letter is None:
        return option_list, None
    correct_letter = correct_letter.strip().upper()
    if correct_letter not in letters:
        raise QuestionImportError(f"CORRECT must be one of {', '.join(letters)}.")
    return option_list, option_list[letters.index(correct_letter)]


def _parse_test(raw_value: str) -> CodeTestCase:
    if "=>" not in raw_value:
        raise QuestionImportError("TEST must look like 'input => expected output'.")
    test_input, expected = raw_value.split("=>", 1)
    return CodeTestCase(input=test_input.strip(), expected_output=expected.strip())
