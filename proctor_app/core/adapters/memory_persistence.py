"""In-memory session storage used by the bundled server and the tests."""

from __future__ import annotations

from dataclasses import asdict
from threading import Lock
from typing import Any

from proctor_app.core.errors import PersistenceFailure, UnknownSession
from proctor_app.core.models import Answer, InterviewSession, Violation


class InMemoryPersistence:
    """Keeps session rows, answers and violations in dictionaries.

    Session rows are plain dictionaries so that patches behave like a partial
    update against a database row.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._sessions: dict[str, dict[str, Any]] = {}
        self._answers: dict[tuple[str, str], Answer] = {}
        self._violations: list[Violation] = []

    async def create_session(self, session: InterviewSession) -> str:
        row = asdict(session)
        with self._lock:
            if session.id in self._sessions:
                raise PersistenceFailure(f"Session '{session.id}' already exists.")
            self._sessions[session.id] = row
        return session.id

    async def update_session(self, session_id: str, patch: dict[str, Any]) -> None:
        with self._lock:
            row = self._sessions.get(session_id)
            if row is None:
                raise PersistenceFailure(f"Session '{session_id}' was never stored.")
            row.update(patch)

    async def insert_answer(self, answer: Answer) -> None:
        with self._lock:
            self._answers[(answer.session_id, answer.question_id)] = answer

    async def insert_violation(self, violation: Violation) -> None:
        with self._lock:
            self._violations.append(violation)

    # --- Queries ---

    def get_session_row(self, session_id: str) -> dict[str, Any]:
        with self._lock:
            row = self._sessions.get(session_id)
            if row is None:
                raise UnknownSession(f"Session '{session_id}' was never stored.")
            return dict(row)

    def get_session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get_answers(self, session_id: str) -> list[Answer]:
        with self._lock:
            return [answer for (sid, _), answer in self._answers.items() if sid == session_id]

    def get_violations(self, session_id: str) -> list[Violation]:
        with self._lock:
            return [v for v in self._violations if v.session_id == session_id]
