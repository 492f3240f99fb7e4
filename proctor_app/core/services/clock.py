"""Wall-clock tick source for session countdowns."""

from __future__ import annotations

import asyncio
import time

from proctor_app.constants.session_constants import TICK_INTERVAL_SECONDS


class MonotonicClock:
    """Produces one tick per interval, aligned to ``time.monotonic`` to avoid drift."""

    def __init__(self, interval_seconds: float = TICK_INTERVAL_SECONDS) -> None:
        if interval_seconds <= 0:
            raise ValueError("Tick interval must be positive.")
        self._interval = interval_seconds
        self._next_deadline: float | None = None

    def now(self) -> float:
        return time.monotonic()

    async def wait_tick(self) -> None:
        current = self.now()
        if self._next_deadline is None or self._next_deadline < current - self._interval:
            self._next_deadline = current + self._interval
        delay = max(0.0, self._next_deadline - current)
        await asyncio.sleep(delay)
        self._next_deadline += self._interval
