"""Tests for typing tracking and the quiet-period wait."""

from __future__ import annotations

from unittest.mock import AsyncMock

from conftest import FakeClock

from mimic_bot.config import PresenceConfig
from mimic_bot.core.ephemeral import EphemeralStore
from mimic_bot.core.presence import TypingTracker


def _tracker(**config) -> tuple[TypingTracker, FakeClock]:
    clock = FakeClock()
    store = EphemeralStore(clock=clock)
    tracker = TypingTracker(
        store, PresenceConfig(**config), clock=clock, sleep=clock.sleep
    )
    return tracker, clock


class TestComposingMarker:
    async def test_mark_and_clear(self):
        tracker, _ = _tracker()
        await tracker.mark_composing(5)
        assert await tracker.is_composing(5)
        await tracker.mark_idle(5)
        assert not await tracker.is_composing(5)

    async def test_marker_expires(self):
        tracker, clock = _tracker(typing_ttl=10)
        await tracker.mark_composing(5)
        clock.now += 10
        assert not await tracker.is_composing(5)

    async def test_store_failure_reads_as_not_composing(self):
        store = AsyncMock(spec=EphemeralStore)
        store.get.side_effect = ConnectionError("down")
        tracker = TypingTracker(store, PresenceConfig())
        assert await tracker.is_composing(5) is False


class TestAwaitQuiet:
    async def test_waits_full_quiet_period_when_idle(self):
        tracker, clock = _tracker(quiet_period=5, poll_interval=1)
        start = clock.now
        assert await tracker.await_quiet(5) is True
        assert clock.now - start == 5

    async def test_composing_resets_quiet_clock(self):
        tracker, clock = _tracker(quiet_period=5, poll_interval=1, typing_ttl=3)
        start = clock.now
        await tracker.mark_composing(5)  # expires at start + 3

        assert await tracker.await_quiet(5) is True
        # Last seen composing at start + 2, then five quiet seconds
        assert clock.now - start == 7

    async def test_times_out_while_composing(self):
        tracker, clock = _tracker(quiet_period=5, poll_interval=1, typing_ttl=1000)
        await tracker.mark_composing(5)
        start = clock.now

        assert await tracker.await_quiet(5, max_wait=20) is False
        assert clock.now - start == 20

    async def test_zero_quiet_period_returns_at_once(self):
        tracker, clock = _tracker(quiet_period=0)
        assert await tracker.await_quiet(5) is True
        assert clock.sleeps == []

    async def test_unavailable_store_does_not_hang(self):
        store = AsyncMock(spec=EphemeralStore)
        store.get.side_effect = ConnectionError("down")
        sleep = AsyncMock()
        tracker = TypingTracker(store, PresenceConfig(), sleep=sleep)

        assert await tracker.await_quiet(5) is True
        sleep.assert_not_awaited()
