"""Countdown service for the session-wide time budget."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from proctor_app.core.collaborators import Clock

logger = logging.getLogger(__name__)


class SessionTimer:
    """Counts a session's remaining seconds down to zero.

    ``on_tick`` receives the new remaining value after every decrement and
    ``on_expired`` fires once when zero is reached. The timer guards expiry on
    its own so a tick delivered after zero never fires it again.
    """

    def __init__(
        self,
        clock: Clock,
        budget_seconds: int,
        is_active: Callable[[], bool],
        on_tick: Callable[[int], None],
        on_expired: Callable[[], None],
    ) -> None:
        if budget_seconds < 0:
            raise ValueError("Time budget cannot be negative.")
        self._clock = clock
        self._remaining = budget_seconds
        self._is_active = is_active
        self._on_tick = on_tick
        self._on_expired = on_expired
        self._running = False
        self._expired = False
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._running or self._expired:
            return
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run(), name="session-timer")

    def stop(self) -> None:
        """Stop scheduling ticks. Safe to call from inside a tick callback."""
        self._running = False
        task = self._task
        self._task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    def is_running(self) -> bool:
        return self._running

    def has_expired(self) -> bool:
        return self._expired

    def get_remaining_seconds(self) -> int:
        return self._remaining

    def tick(self) -> None:
        """Apply one elapsed second."""
        if not self._running or not self._is_active():
            self._running = False
            return
        if self._remaining > 0:
            self._remaining -= 1
            self._on_tick(self._remaining)
        if self._remaining == 0:
            self._fire_expired()

    def forfeit(self, seconds: int) -> None:
        """Drop unused seconds from the budget (forward navigation in per-question mode)."""
        if seconds <= 0 or not self._running:
            return
        self._remaining = max(0, self._remaining - seconds)
        if self._remaining == 0:
            self._fire_expired()

    def _fire_expired(self) -> None:
        if self._expired:
            return
        self._expired = True
        self._running = False
        logger.info("Session timer reached zero")
        self._on_expired()

    async def _run(self) -> None:
        if self._remaining == 0:
            self._fire_expired()
            return
        while self._running:
            await self._clock.wait_tick()
            self.tick()
