"""Sliding window limiter for the durable store path."""

from typing import Optional

from tollgate.app.core.logging import get_log_context, get_logger
from tollgate.app.core.utils import Clock, now_ms, seconds_until, system_clock
from tollgate.app.services.rate_limit.keys import KeyDeriver
from tollgate.app.services.rate_limit.models import (
    ClientRequestDescriptor,
    Decision,
    RateLimitPolicy,
)
from tollgate.app.store.base import CounterStore

logger = get_logger(__name__)


class SlidingWindowLimiter:
    """Counts request timestamps inside a trailing window.

    Every check records the current hit, even when it is denied, so the
    window keeps decaying correctly for later checks. Store failures never
    reach the caller: the check fails open and the error is logged.
    """

    algorithm = "sliding_window"

    def __init__(
        self,
        store: CounterStore,
        tier: str,
        policy: RateLimitPolicy,
        *,
        key_deriver: Optional[KeyDeriver] = None,
        clock: Clock = system_clock,
    ) -> None:
        self.store = store
        self.tier = tier
        self.policy = policy
        self.key_deriver = key_deriver or KeyDeriver()
        self._clock = clock

    def key_for(self, descriptor: ClientRequestDescriptor) -> str:
        return self.key_deriver.for_policy(self.tier, descriptor, self.policy)

    def _reset_time(self, hits: list[int]) -> int:
        """When the window next has room, assuming no further requests.

        That is the moment the hit ``max_requests`` places from the newest
        one leaves the window; for an allowed request it is the oldest
        retained hit plus the window length.
        """
        index = max(0, len(hits) - self.policy.max_requests)
        return hits[index] + self.policy.window_ms

    async def check_limit(self, descriptor: ClientRequestDescriptor) -> Decision:
        """Record the request and decide whether it is allowed."""
        key = self.key_for(descriptor)
        current = now_ms(self._clock)
        policy = self.policy

        try:
            hits = await self.store.record_hit(key, current, policy.window_ms)
        except Exception as e:
            logger.error(
                f"Rate limiter store error, allowing request: {e}",
                extra=get_log_context(tier=self.tier, rate_limit_key=key, error_type=type(e).__name__),
            )
            return Decision(
                allowed=True,
                remaining=policy.max_requests,
                reset_time=current + policy.window_ms,
                total_hits=0,
                limit=policy.max_requests,
            )

        hits = sorted(hits) or [current]
        total_hits = len(hits)
        allowed = total_hits <= policy.max_requests
        remaining = max(0, policy.max_requests - total_hits)
        reset_time = self._reset_time(hits)

        if allowed:
            return Decision(
                allowed=True,
                remaining=remaining,
                reset_time=reset_time,
                total_hits=total_hits,
                limit=policy.max_requests,
            )

        retry_after = max(1, seconds_until(reset_time, current))
        logger.warning(
            "Rate limit exceeded",
            extra=get_log_context(
                tier=self.tier,
                client_ip=descriptor.ip,
                path=descriptor.path,
                rate_limit_key=key,
                total_hits=total_hits,
                max_requests=policy.max_requests,
            ),
        )
        return Decision(
            allowed=False,
            remaining=0,
            reset_time=reset_time,
            total_hits=total_hits,
            limit=policy.max_requests,
            retry_after=retry_after,
        )
