"""Writes a finished session's report to a plain-text file."""

from __future__ import annotations

from pathlib import Path

from proctor_app.core.models import (
    InterviewSession,
    Question,
    QuestionFeedback,
    Violation,
)


def save_session_report(
    file_path: Path,
    session: InterviewSession,
    questions: list[Question],
    feedbacks: list[QuestionFeedback],
    violations: list[Violation],
) -> None:
    """Persist a human-readable report of a Completed or Abandoned session."""

    if not session.status.is_terminal:
        raise ValueError("Only finished sessions can be exported.")

    file_path = file_path.resolve()
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(render_session_report(session, questions, feedbacks, violations), encoding="utf-8")


def render_session_report(
    session: InterviewSession,
    questions: list[Question],
    feedbacks: list[QuestionFeedback],
    violations: list[Violation],
) -> str:
    lines = [
        f"SESSION: {session.id}",
        f"CANDIDATE: {session.candidate_id}",
        f"DOMAIN: {session.domain_id}",
        f"EXAM CODE: {session.exam_code}",
        f"LEVEL: {session.experience_level.value}",
        f"STATUS: {session.status.value}",
        f"TRIGGER: {session.submission_trigger.value if session.submission_trigger else '-'}",
        f"SCORE: {session.total_score:g}/{session.max_possible_score} ({session.percentage_score:.1f}%)",
        f"RATING: {session.overall_rating.value if session.overall_rating else '-'}",
        f"TIME TAKEN: {_format_duration(session.time_taken_seconds or 0)}",
        f"VIOLATIONS: {session.violation_count}",
    ]
    if session.ai_feedback:
        lines.append(f"SUMMARY: {session.ai_feedback}")

    by_id = {question.id: question for question in questions}
    for position, feedback in enumerate(feedbacks, start=1):
        question = by_id.get(feedback.question_id)
        prompt = question.question_text.splitlines()[0] if question else feedback.question_id
        lines.append("")
        lines.append(f"Q{position}: {prompt}")
        lines.append(f"  score: {feedback.score:g}/{feedback.max_score}")
        for feedback_line in feedback.feedback.splitlines():
            lines.append(f"  {feedback_line}")

    if violations:
        lines.append("")
        lines.append("VIOLATION LOG:")
        for violation in violations:
            lines.append(
                f"  {violation.timestamp.isoformat()} {violation.type.value}: {violation.detail}"
            )
    return "\n".join(lines) + "\n"


def _format_duration(seconds: int) -> str:
    hours, remainder = divmod(max(0, seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
