"""Single-claim guard deciding which trigger finalizes a session."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from threading import Lock

from proctor_app.core.models import SubmissionTrigger

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class FinalizationClaim:
    """Proof that the holder won the right to finalize the session."""

    session_id: str
    trigger: SubmissionTrigger
    claimed_at: datetime


class SubmissionArbiter:
    """Hands out at most one FinalizationClaim per session.

    The guard is a lock acquired without blocking and never released, so the
    test and the set happen in one atomic step even if triggers arrive from
    different threads.
    """

    def __init__(self, session_id: str) -> None:
        self._session_id = session_id
        self._guard = Lock()
        self._claim: FinalizationClaim | None = None
        self._rejected: list[SubmissionTrigger] = []

    def try_claim(self, trigger: SubmissionTrigger) -> FinalizationClaim | None:
        """Return the claim for the first caller; every later caller gets ``None``."""
        if not self._guard.acquire(blocking=False):
            self._rejected.append(trigger)
            logger.info(
                "Session %s: %s trigger ignored, already claimed by %s",
                self._session_id,
                trigger.value,
                self._claim.trigger.value if self._claim else "another trigger",
            )
            return None
        self._claim = FinalizationClaim(
            session_id=self._session_id,
            trigger=trigger,
            claimed_at=datetime.utcnow(),
        )
        logger.info("Session %s: finalization claimed by %s", self._session_id, trigger.value)
        return self._claim

    def is_claimed(self) -> bool:
        return self._guard.locked()

    @property
    def claim(self) -> FinalizationClaim | None:
        return self._claim

    def get_rejected_triggers(self) -> list[SubmissionTrigger]:
        return list(self._rejected)
