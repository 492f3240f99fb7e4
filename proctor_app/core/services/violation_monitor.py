"""Integrity monitoring: turns environment signals into violations."""

from __future__ import annotations

from contextlib import ExitStack
from datetime import datetime
import logging
from typing import Awaitable, Callable

from proctor_app.constants.session_constants import FORBIDDEN_COMBOS, FORBIDDEN_KEYS
from proctor_app.core.collaborators import CapabilityProvider
from proctor_app.core.models import KeyEvent, Violation, ViolationType

logger = logging.getLogger(__name__)

# Input signals a held-down key or a double click can repeat many times a second.
_DEBOUNCED_TYPES = frozenset(
    {ViolationType.FORBIDDEN_SHORTCUT, ViolationType.CONTEXT_MENU_ATTEMPT}
)
_SETUP_TYPES = frozenset(
    {ViolationType.MEDIA_ACCESS_DENIED, ViolationType.FULLSCREEN_DENIED}
)


def classify_key_event(event: KeyEvent) -> str | None:
    """Return a description of the forbidden shortcut, or ``None`` if the key is allowed."""
    if event.key.upper() in FORBIDDEN_KEYS:
        return f"Attempted to use {event.describe()}"
    key = event.key.lower()
    for combo_key, ctrl, shift, alt in FORBIDDEN_COMBOS:
        if key != combo_key:
            continue
        if (event.ctrl or event.meta) == ctrl and event.shift == shift and event.alt == alt:
            return f"Attempted to use {event.describe()}"
    return None


class ViolationMonitor:
    """Subscribes to capability signals for one Active session.

    The monitor is opened before capture/fullscreen acquisition so it can
    follow the fullscreen state, but nothing counts until ``arm()`` is called
    after acquisition completes. Subscriptions live in an ExitStack and are
    torn down by ``close()`` on every way out of Active.
    """

    def __init__(
        self,
        session_id: str,
        provider: CapabilityProvider,
        threshold: int,
        debounce_seconds: float,
        now: Callable[[], float],
        is_active: Callable[[], bool],
        on_violation: Callable[[Violation], None],
        on_limit_reached: Callable[[], None],
        persist: Callable[[Violation], Awaitable[None]],
        on_fullscreen_lost: Callable[[], Awaitable[bool]] | None = None,
    ) -> None:
        self._session_id = session_id
        self._provider = provider
        self._threshold = threshold
        self._debounce_seconds = debounce_seconds
        self._now = now
        self._is_active = is_active
        self._on_violation = on_violation
        self._on_limit_reached = on_limit_reached
        self._persist = persist
        self._on_fullscreen_lost = on_fullscreen_lost

        self._subscriptions: ExitStack | None = None
        self._armed = False
        self._closed = False
        self._fullscreen: bool | None = None
        self._accepted = 0
        self._limit_signalled = False
        self._last_seen: dict[tuple[ViolationType, str], float] = {}
        self._coalesced = 0

    # --- Lifecycle ---

    def open(self) -> None:
        if self._subscriptions is not None or self._closed:
            return
        stack = ExitStack()
        stack.callback(self._provider.on_fullscreen_change(self._handle_fullscreen_change))
        stack.callback(self._provider.on_visibility_change(self._handle_visibility_change))
        stack.callback(self._provider.on_key_event(self._handle_key_event))
        stack.callback(self._provider.on_context_menu(self._handle_context_menu))
        self._subscriptions = stack
        self._fullscreen = self._provider.is_fullscreen()

    def arm(self) -> None:
        """Start counting signals. Called once initial acquisition has finished."""
        if self._closed or self._subscriptions is None:
            return
        self._fullscreen = self._provider.is_fullscreen()
        self._armed = True
        logger.info("Session %s: integrity monitoring armed", self._session_id)

    def close(self) -> None:
        self._armed = False
        self._closed = True
        stack = self._subscriptions
        self._subscriptions = None
        if stack is not None:
            stack.close()

    def is_armed(self) -> bool:
        return self._armed

    def is_subscribed(self) -> bool:
        return self._subscriptions is not None

    def get_accepted_count(self) -> int:
        return self._accepted

    def get_coalesced_count(self) -> int:
        return self._coalesced

    # --- Recording ---

    async def record(self, violation_type: ViolationType, detail: str) -> Violation | None:
        """Account one violation. Returns ``None`` when the signal was ignored."""
        if self._closed or not self._is_active():
            return None
        if not self._armed and violation_type not in _SETUP_TYPES:
            return None
        if self._is_duplicate(violation_type, detail):
            self._coalesced += 1
            return None

        violation = Violation(
            session_id=self._session_id,
            type=violation_type,
            detail=detail,
            timestamp=datetime.utcnow(),
        )
        self._accepted += 1
        self._on_violation(violation)
        if self._accepted >= self._threshold and not self._limit_signalled:
            self._limit_signalled = True
            logger.warning(
                "Session %s: violation limit of %d reached", self._session_id, self._threshold
            )
            self._on_limit_reached()
        await self._persist(violation)
        return violation

    def _is_duplicate(self, violation_type: ViolationType, detail: str) -> bool:
        if violation_type not in _DEBOUNCED_TYPES or self._debounce_seconds <= 0:
            return False
        key = (violation_type, detail)
        now = self._now()
        last = self._last_seen.get(key)
        self._last_seen[key] = now
        return last is not None and now - last < self._debounce_seconds

    # --- Signal handlers ---

    async def _handle_fullscreen_change(self, is_fullscreen: bool) -> None:
        previous = self._fullscreen
        self._fullscreen = is_fullscreen
        if not self._armed or is_fullscreen or previous is False:
            return
        try:
            await self.record(ViolationType.FULLSCREEN_EXIT, "Candidate exited fullscreen mode")
        finally:
            if self._on_fullscreen_lost is not None and self._armed and self._is_active():
                await self._on_fullscreen_lost()
                self._fullscreen = self._provider.is_fullscreen()

    async def _handle_visibility_change(self, hidden: bool) -> None:
        if not hidden:
            return
        await self.record(
            ViolationType.TAB_SWITCH, "Candidate switched tabs or minimized window"
        )

    async def _handle_key_event(self, event: KeyEvent) -> None:
        description = classify_key_event(event)
        if description is None:
            return
        await self.record(ViolationType.FORBIDDEN_SHORTCUT, description)

    async def _handle_context_menu(self) -> None:
        await self.record(
            ViolationType.CONTEXT_MENU_ATTEMPT, "Candidate attempted to open context menu"
        )
