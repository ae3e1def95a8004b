"""Admission entry point that picks the algorithm for the active store."""

from typing import Optional, Union

from tollgate.app.core.logging import get_logger
from tollgate.app.core.utils import Clock, system_clock
from tollgate.app.services.rate_limit.fixed_window import FixedWindowEdgeLimiter, KeyedLocks
from tollgate.app.services.rate_limit.keys import KeyDeriver
from tollgate.app.services.rate_limit.models import (
    ClientRequestDescriptor,
    Decision,
    PolicyOverride,
    RateLimitPolicy,
)
from tollgate.app.services.rate_limit.policies import PolicyRegistry
from tollgate.app.services.rate_limit.sliding_window import SlidingWindowLimiter
from tollgate.app.store.base import CounterStore

logger = get_logger(__name__)

AnyLimiter = Union[SlidingWindowLimiter, FixedWindowEdgeLimiter]


class RateLimiter:
    """Main rate limiter that selects the appropriate algorithm.

    Uses the sliding window while the store is durable and the fixed-window
    edge limiter when the store is (or has degraded to) the in-process one.
    One instance is built at startup and shared by all requests.
    """

    def __init__(
        self,
        store: CounterStore,
        registry: Optional[PolicyRegistry] = None,
        key_deriver: Optional[KeyDeriver] = None,
        clock: Clock = system_clock,
    ) -> None:
        self.store = store
        self.registry = registry or PolicyRegistry()
        self.key_deriver = key_deriver or KeyDeriver()
        self._clock = clock
        self._edge_locks = KeyedLocks()
        self._limiters: dict[tuple, AnyLimiter] = {}

    def _limiter_for(self, tier: str, policy: RateLimitPolicy, durable: bool) -> AnyLimiter:
        cache_key = (durable, tier, policy, id(policy.key_generator))
        limiter = self._limiters.get(cache_key)
        if limiter is not None:
            return limiter

        if durable:
            limiter = SlidingWindowLimiter(
                self.store, tier, policy, key_deriver=self.key_deriver, clock=self._clock
            )
        else:
            limiter = FixedWindowEdgeLimiter(
                self.store,
                tier,
                policy,
                key_deriver=self.key_deriver,
                clock=self._clock,
                locks=self._edge_locks,
            )
        self._limiters[cache_key] = limiter
        return limiter

    def policy_for(self, tier: str, override: Optional[PolicyOverride] = None) -> RateLimitPolicy:
        """Resolve the effective policy; raises ConfigError for unknown tiers."""
        return self.registry.resolve(tier, override)

    async def check(
        self,
        tier: str,
        descriptor: ClientRequestDescriptor,
        override: Optional[PolicyOverride] = None,
    ) -> Decision:
        """Check and record a request against ``tier``.

        Raises:
            ConfigError: If the tier or override is invalid. Store failures
                never raise; they resolve to an allowing decision.
        """
        policy = self.policy_for(tier, override)
        try:
            await self.store.ensure_ready()
        except Exception as e:
            # The limiter fails open if the store stays unusable.
            logger.error(f"Counter store not ready: {e}")
        limiter = self._limiter_for(tier, policy, self.store.is_durable)
        return await limiter.check_limit(descriptor)
