"""Tests for the RateLimiter facade."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from tollgate.app.exceptions import ConfigError, StoreConnectionError
from tollgate.app.services.rate_limit.fixed_window import FixedWindowEdgeLimiter
from tollgate.app.services.rate_limit.limiter import RateLimiter
from tollgate.app.services.rate_limit.models import PolicyOverride
from tollgate.app.services.rate_limit.sliding_window import SlidingWindowLimiter
from tollgate.app.store.resilient import ResilientStore


def make_durable_store():
    durable = MagicMock()
    durable.backend_name = "redis"
    durable.ensure_ready = AsyncMock()
    durable.record_hit = AsyncMock(return_value=[1_700_000_000_000])
    return durable


class TestAlgorithmSelection:
    @pytest.mark.asyncio
    async def test_memory_store_uses_fixed_window(self, memory_store, clock, descriptor):
        limiter = RateLimiter(memory_store, clock=clock)
        await limiter.check("public", descriptor)
        (cached,) = limiter._limiters.values()
        assert isinstance(cached, FixedWindowEdgeLimiter)

    @pytest.mark.asyncio
    async def test_durable_store_uses_sliding_window(self, memory_store, clock, descriptor):
        store = ResilientStore(make_durable_store(), memory_store)
        limiter = RateLimiter(store, clock=clock)
        decision = await limiter.check("public", descriptor)
        assert decision.allowed is True
        (cached,) = limiter._limiters.values()
        assert isinstance(cached, SlidingWindowLimiter)

    @pytest.mark.asyncio
    async def test_degraded_store_switches_to_fixed_window(self, memory_store, clock, descriptor):
        durable = make_durable_store()
        durable.ensure_ready = AsyncMock(side_effect=StoreConnectionError("down"))
        limiter = RateLimiter(ResilientStore(durable, memory_store), clock=clock)

        decision = await limiter.check("public", descriptor)

        assert decision.allowed is True
        assert all(isinstance(l, FixedWindowEdgeLimiter) for l in limiter._limiters.values())
        durable.record_hit.assert_not_awaited()


class TestCheck:
    @pytest.mark.asyncio
    async def test_unknown_tier_raises(self, memory_store, descriptor):
        with pytest.raises(ConfigError):
            await RateLimiter(memory_store).check("vip", descriptor)

    @pytest.mark.asyncio
    async def test_tier_limits_applied(self, memory_store, clock, descriptor):
        limiter = RateLimiter(memory_store, clock=clock)
        results = [await limiter.check("auth", descriptor) for _ in range(6)]
        assert [r.allowed for r in results] == [True] * 5 + [False]
        assert results[-1].limit == 5

    @pytest.mark.asyncio
    async def test_override_applied(self, memory_store, clock, descriptor):
        limiter = RateLimiter(memory_store, clock=clock)
        override = PolicyOverride(max_requests=1)
        assert (await limiter.check("public", descriptor, override)).allowed is True
        decision = await limiter.check("public", descriptor, override)
        assert decision.allowed is False
        assert decision.limit == 1

    @pytest.mark.asyncio
    async def test_limiters_cached(self, memory_store, clock, descriptor):
        limiter = RateLimiter(memory_store, clock=clock)
        await limiter.check("public", descriptor)
        await limiter.check("public", descriptor)
        await limiter.check("ml", descriptor)
        assert len(limiter._limiters) == 2

    @pytest.mark.asyncio
    async def test_ensure_ready_failure_fails_open(self, clock, descriptor):
        store = MagicMock()
        store.is_durable = True
        store.ensure_ready = AsyncMock(side_effect=RuntimeError("boom"))
        store.record_hit = AsyncMock(side_effect=RuntimeError("boom"))
        decision = await RateLimiter(store, clock=clock).check("public", descriptor)
        assert decision.allowed is True
