"""Tests for the fixed window edge limiter."""

import asyncio
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from tollgate.app.services.rate_limit.fixed_window import FixedWindowEdgeLimiter, KeyedLocks
from tollgate.app.services.rate_limit.models import RateLimitPolicy
from tollgate.app.store.memory import EphemeralStore


def make_limiter(store, clock, window_ms=60_000, max_requests=1):
    policy = RateLimitPolicy(window_ms=window_ms, max_requests=max_requests)
    return FixedWindowEdgeLimiter(store, "public", policy, clock=clock)


class GatedStore(EphemeralStore):
    """Memory store whose reads of one key block until the gate opens."""

    def __init__(self, gated_key, **kwargs):
        super().__init__(**kwargs)
        self.gated_key = gated_key
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def get(self, key):
        if key == self.gated_key:
            self.entered.set()
            await self.gate.wait()
        return await super().get(key)


class TestFixedWindowScenario:
    """W=60s, N=1: requests at 0, 5s and 61s."""

    @pytest.mark.asyncio
    async def test_concrete_scenario(self, memory_store, clock, descriptor):
        limiter = make_limiter(memory_store, clock)
        start = clock.now_ms

        first = await limiter.check_limit(descriptor)
        assert first.allowed is True
        assert first.remaining == 0
        assert first.reset_time == start + 60_000

        clock.set_offset_ms(5000)
        second = await limiter.check_limit(descriptor)
        assert second.allowed is False
        assert second.retry_after == 55
        assert second.remaining == 0

        clock.set_offset_ms(61_000)
        third = await limiter.check_limit(descriptor)
        assert third.allowed is True
        assert third.total_hits == 1
        assert third.reset_time == start + 61_000 + 60_000


class TestFixedWindowBehaviour:
    @pytest.mark.asyncio
    async def test_counts_up_to_max(self, memory_store, clock, descriptor):
        limiter = make_limiter(memory_store, clock, max_requests=3)
        results = [await limiter.check_limit(descriptor) for _ in range(4)]
        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]

    @pytest.mark.asyncio
    async def test_window_does_not_slide(self, memory_store, clock, descriptor):
        limiter = make_limiter(memory_store, clock, window_ms=10_000, max_requests=2)
        await limiter.check_limit(descriptor)
        clock.set_offset_ms(9_000)
        await limiter.check_limit(descriptor)
        denied = await limiter.check_limit(descriptor)
        assert denied.allowed is False
        assert denied.retry_after == 1

        clock.set_offset_ms(10_000)
        assert (await limiter.check_limit(descriptor)).allowed is True

    @pytest.mark.asyncio
    async def test_key_includes_user_agent(self, memory_store, clock, descriptor):
        from dataclasses import replace

        limiter = make_limiter(memory_store, clock)
        assert limiter.key_for(descriptor) == "public:10.0.0.1:/api/items:pytest-agent"
        assert (await limiter.check_limit(descriptor)).allowed is True
        other_agent = replace(descriptor, user_agent="other-agent")
        assert (await limiter.check_limit(other_agent)).allowed is True

    @pytest.mark.asyncio
    async def test_concurrent_requests_counted_exactly(self, memory_store, clock, descriptor):
        limiter = make_limiter(memory_store, clock, max_requests=5)
        results = await asyncio.gather(*(limiter.check_limit(descriptor) for _ in range(20)))
        assert sum(1 for r in results if r.allowed) == 5

    @pytest.mark.asyncio
    async def test_other_keys_not_blocked_by_slow_key(self, clock, descriptor):
        other = replace(descriptor, ip="10.0.0.2")
        slow_key = make_limiter(None, clock).key_for(descriptor)
        store = GatedStore(slow_key, clock=clock)
        limiter = make_limiter(store, clock)

        slow = asyncio.create_task(limiter.check_limit(descriptor))
        await store.entered.wait()
        decision = await asyncio.wait_for(limiter.check_limit(other), timeout=1)
        assert decision.allowed is True

        store.gate.set()
        assert (await slow).allowed is True

    @pytest.mark.asyncio
    async def test_locks_released_after_use(self, memory_store, clock, descriptor):
        locks = KeyedLocks()
        policy = RateLimitPolicy(window_ms=60_000, max_requests=5)
        limiter = FixedWindowEdgeLimiter(memory_store, "public", policy, clock=clock, locks=locks)
        await asyncio.gather(*(limiter.check_limit(descriptor) for _ in range(10)))
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_malformed_record_starts_new_window(self, memory_store, clock, descriptor):
        limiter = make_limiter(memory_store, clock)
        await memory_store.set(limiter.key_for(descriptor), "garbage", 60)
        assert (await limiter.check_limit(descriptor)).allowed is True

    @pytest.mark.asyncio
    async def test_store_errors_allow(self, clock, descriptor):
        store = MagicMock()
        store.get = AsyncMock(side_effect=RuntimeError("boom"))
        store.set = AsyncMock(side_effect=RuntimeError("boom"))
        limiter = make_limiter(store, clock)
        decision = await limiter.check_limit(descriptor)
        assert decision.allowed is True
        assert decision.total_hits == 0
