"""Tests for the per-party rate governor and its TTL store."""

from __future__ import annotations

from unittest.mock import AsyncMock

from conftest import FakeClock

from mimic_bot.config import RateLimitConfig
from mimic_bot.core.ephemeral import EphemeralStore
from mimic_bot.core.rate_limit import Admission, RateGovernor


def _governor(limit: int = 3, window: int = 3600) -> tuple[RateGovernor, FakeClock]:
    clock = FakeClock()
    store = EphemeralStore(clock=clock)
    return RateGovernor(store, RateLimitConfig(max_messages_per_hour=limit, window_seconds=window)), clock


async def _admit_and_record(governor: RateGovernor, party_id: int) -> Admission:
    admission = await governor.check_and_admit(party_id)
    if admission.admitted:
        await governor.record(party_id)
    return admission


class TestEphemeralStore:
    async def test_value_expires_after_ttl(self):
        clock = FakeClock()
        store = EphemeralStore(clock=clock)
        await store.set("k", "v", ttl=10)
        assert await store.get("k") == "v"
        clock.now += 10
        assert await store.get("k") is None

    async def test_ttl_reports_missing_and_persistent_keys(self):
        store = EphemeralStore(clock=FakeClock())
        assert await store.ttl("missing") == -2
        await store.hset("h", "a", "1")
        assert await store.ttl("h") == -1

    async def test_hincrby_starts_from_zero(self):
        store = EphemeralStore(clock=FakeClock())
        assert await store.hincrby("h", "count") == 1
        assert await store.hincrby("h", "count", 2) == 3
        assert await store.hgetall("h") == {"count": "3"}

    async def test_sweep_drops_only_expired_keys(self):
        clock = FakeClock()
        store = EphemeralStore(clock=clock)
        await store.set("typing", "1", ttl=10)
        await store.hincrby("rate", "count")
        await store.expire("rate", 3600)
        await store.hset("forever", "a", "1")

        clock.now += 10
        assert await store.sweep() == 1
        assert len(store) == 2

        clock.now += 3600
        assert await store.sweep() == 1
        assert await store.hgetall("forever") == {"a": "1"}


class TestRateGovernor:
    async def test_admits_up_to_limit(self):
        governor, _ = _governor(limit=3)
        results = [await _admit_and_record(governor, 7) for _ in range(3)]
        assert all(r.admitted for r in results)

    async def test_warns_only_once_per_window(self):
        governor, _ = _governor(limit=2)
        for _ in range(2):
            await _admit_and_record(governor, 7)

        first = await _admit_and_record(governor, 7)
        second = await _admit_and_record(governor, 7)
        third = await _admit_and_record(governor, 7)

        assert first == Admission(admitted=False, should_warn=True)
        assert second == Admission(admitted=False, should_warn=False)
        assert third == Admission(admitted=False, should_warn=False)

    async def test_window_expires_as_a_whole(self):
        governor, clock = _governor(limit=1, window=3600)
        await _admit_and_record(governor, 7)
        assert not (await _admit_and_record(governor, 7)).admitted

        clock.now += 3600
        admission = await _admit_and_record(governor, 7)
        assert admission.admitted

    async def test_window_starts_at_first_counted_message(self):
        governor, clock = _governor(limit=5, window=100)
        await _admit_and_record(governor, 7)
        clock.now += 60
        await _admit_and_record(governor, 7)
        assert await governor.time_to_reset(7) == 40

    async def test_parties_are_independent(self):
        governor, _ = _governor(limit=1)
        await _admit_and_record(governor, 1)
        assert not (await governor.check_and_admit(1)).admitted
        assert (await governor.check_and_admit(2)).admitted

    async def test_reset_clears_window(self):
        governor, _ = _governor(limit=1)
        await _admit_and_record(governor, 7)
        await governor.reset(7)
        assert (await governor.check_and_admit(7)).admitted
        assert await governor.time_to_reset(7) == 0.0

    async def test_store_failure_fails_open(self):
        store = AsyncMock(spec=EphemeralStore)
        store.hgetall.side_effect = ConnectionError("down")
        store.hincrby.side_effect = ConnectionError("down")
        governor = RateGovernor(store, RateLimitConfig(max_messages_per_hour=1))

        assert await governor.check_and_admit(7) == Admission(admitted=True, should_warn=False)
        assert await governor.record(7) == 0
