"""Tests for the session countdown."""

import pytest

from proctor_app.core.services.session_timer import SessionTimer

from conftest import ManualClock


def _make_timer(clock, budget, active=lambda: True):
    ticks: list[int] = []
    expiries: list[int] = []
    timer = SessionTimer(
        clock=clock,
        budget_seconds=budget,
        is_active=active,
        on_tick=ticks.append,
        on_expired=lambda: expiries.append(1),
    )
    return timer, ticks, expiries


@pytest.mark.asyncio
async def test_tick_decrements_and_fires_expiry_once():
    timer, ticks, expiries = _make_timer(ManualClock(), 3)
    timer.start()

    for _ in range(6):
        timer.tick()

    assert ticks == [2, 1, 0]
    assert expiries == [1]
    assert timer.has_expired()
    assert not timer.is_running()
    assert timer.get_remaining_seconds() == 0
    timer.stop()


@pytest.mark.asyncio
async def test_tick_is_ignored_when_session_is_not_active():
    timer, ticks, expiries = _make_timer(ManualClock(), 3, active=lambda: False)
    timer.start()

    timer.tick()

    assert ticks == []
    assert expiries == []
    assert timer.get_remaining_seconds() == 3
    assert not timer.is_running()
    timer.stop()


def test_negative_budget_is_rejected():
    with pytest.raises(ValueError):
        SessionTimer(ManualClock(), -1, lambda: True, lambda _: None, lambda: None)


@pytest.mark.asyncio
async def test_running_timer_counts_down_with_clock_ticks():
    clock = ManualClock()
    timer, ticks, expiries = _make_timer(clock, 2)
    timer.start()

    await clock.advance(1)
    assert ticks == [1]
    await clock.advance(3)

    assert ticks == [1, 0]
    assert expiries == [1]
    assert not timer.is_running()


@pytest.mark.asyncio
async def test_stop_prevents_further_ticks():
    clock = ManualClock()
    timer, ticks, expiries = _make_timer(clock, 5)
    timer.start()
    await clock.advance(1)

    timer.stop()
    await clock.advance(3)

    assert ticks == [4]
    assert expiries == []


@pytest.mark.asyncio
async def test_zero_budget_expires_immediately():
    clock = ManualClock()
    timer, ticks, expiries = _make_timer(clock, 0)
    timer.start()

    await clock.advance(1)

    assert ticks == []
    assert expiries == [1]


@pytest.mark.asyncio
async def test_forfeit_drops_seconds_and_expires_at_zero():
    timer, ticks, expiries = _make_timer(ManualClock(), 10)
    timer.start()

    timer.forfeit(4)
    assert timer.get_remaining_seconds() == 6
    assert ticks == []

    timer.forfeit(20)
    assert timer.get_remaining_seconds() == 0
    assert expiries == [1]
    timer.stop()
