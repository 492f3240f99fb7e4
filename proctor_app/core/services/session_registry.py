"""Service keeping one session controller per session id."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Callable

from proctor_app.core.errors import InvalidSessionState, UnknownSession
from proctor_app.core.models import ExperienceLevel
from proctor_app.core.session_controller import SessionController

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Tracks controllers and allows one open attempt per candidate."""

    def __init__(self, controller_factory: Callable[[], SessionController]) -> None:
        self._lock = Lock()
        self._controller_factory = controller_factory
        self._controllers: dict[str, SessionController] = {}
        self._by_candidate: dict[str, str] = {}
        self._reserved: set[str] = set()

    async def open_session(
        self,
        candidate_id: str,
        domain_id: str,
        exam_code: str,
        experience_level: ExperienceLevel | str,
    ) -> SessionController:
        """Initialize a new controller for a candidate without an open attempt."""
        with self._lock:
            if candidate_id in self._reserved or self._has_open_attempt(candidate_id):
                raise InvalidSessionState(
                    f"Candidate '{candidate_id}' already has an open assessment session."
                )
            self._reserved.add(candidate_id)

        try:
            controller = self._controller_factory()
            session_id = await controller.initialize(
                candidate_id, domain_id, exam_code, experience_level
            )
            with self._lock:
                self._controllers[session_id] = controller
                self._by_candidate[candidate_id] = session_id
            return controller
        finally:
            with self._lock:
                self._reserved.discard(candidate_id)

    def get(self, session_id: str) -> SessionController:
        with self._lock:
            controller = self._controllers.get(session_id)
        if controller is None:
            raise UnknownSession(f"Session '{session_id}' does not exist.")
        return controller

    def get_session_ids(self) -> list[str]:
        with self._lock:
            return list(self._controllers)

    async def close_all(self) -> None:
        """Dispose every controller, abandoning sessions that are still Active."""
        with self._lock:
            controllers = list(self._controllers.values())
        for controller in controllers:
            await controller.dispose()
        logger.info("Disposed %d session controller(s)", len(controllers))

    def _has_open_attempt(self, candidate_id: str) -> bool:
        session_id = self._by_candidate.get(candidate_id)
        if session_id is None:
            return False
        return not self._controllers[session_id].get_status().is_terminal
