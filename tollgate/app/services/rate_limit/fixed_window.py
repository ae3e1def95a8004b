"""Fixed window limiter for the in-process (edge) store path.

Notes:
- Per-process only: each instance of a horizontally scaled deployment
  enforces its own quota, so the aggregate limit grows with instance count.
- Keys include the user agent to reduce collisions behind shared IPs.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from tollgate.app.core.logging import get_log_context, get_logger
from tollgate.app.core.utils import Clock, ms_to_ttl_seconds, now_ms, seconds_until, system_clock
from tollgate.app.services.rate_limit.keys import KeyDeriver
from tollgate.app.services.rate_limit.models import (
    ClientRequestDescriptor,
    Decision,
    EdgeCounter,
    RateLimitPolicy,
)
from tollgate.app.store.base import CounterStore

logger = get_logger(__name__)


class KeyedLocks:
    """Per-key asyncio locks, dropped once no coroutine holds or awaits them.

    Requests for different keys never wait on each other.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


class FixedWindowEdgeLimiter:
    """One counter and one expiry timestamp per key, reset wholesale on expiry."""

    algorithm = "fixed_window"

    def __init__(
        self,
        store: CounterStore,
        tier: str,
        policy: RateLimitPolicy,
        *,
        key_deriver: Optional[KeyDeriver] = None,
        clock: Clock = system_clock,
        locks: Optional[KeyedLocks] = None,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: In-process counter store holding the records.
            tier: Tier name used in keys and logs.
            policy: Validated policy.
            key_deriver: Key builder; defaults to an unprefixed one.
            clock: Time source returning UNIX time in seconds.
            locks: Per-key locks serializing read-modify-write cycles on one
                key; share one instance per store.
        """
        self.store = store
        self.tier = tier
        self.policy = policy
        self.key_deriver = key_deriver or KeyDeriver()
        self._clock = clock
        self._locks = locks or KeyedLocks()

    def key_for(self, descriptor: ClientRequestDescriptor) -> str:
        return self.key_deriver.for_policy(
            self.tier, descriptor, self.policy, include_user_agent=True
        )

    async def check_limit(self, descriptor: ClientRequestDescriptor) -> Decision:
        """Count the request in the current fixed window."""
        key = self.key_for(descriptor)
        current = now_ms(self._clock)
        policy = self.policy

        try:
            async with self._locks.hold(key):
                record = EdgeCounter.from_dict(await self.store.get(key))

                if record is None or current >= record.expires_at:
                    record = EdgeCounter(count=1, expires_at=current + policy.window_ms)
                elif record.count < policy.max_requests:
                    record.count += 1
                else:
                    return self._denied(key, descriptor, record, current)

                ttl = ms_to_ttl_seconds(record.expires_at - current)
                await self.store.set(key, record.to_dict(), ttl)
        except Exception as e:
            logger.error(
                f"Edge rate limiter store error, allowing request: {e}",
                extra=get_log_context(tier=self.tier, rate_limit_key=key, error_type=type(e).__name__),
            )
            return Decision(
                allowed=True,
                remaining=policy.max_requests,
                reset_time=current + policy.window_ms,
                total_hits=0,
                limit=policy.max_requests,
            )

        return Decision(
            allowed=True,
            remaining=max(0, policy.max_requests - record.count),
            reset_time=record.expires_at,
            total_hits=record.count,
            limit=policy.max_requests,
        )

    def _denied(
        self,
        key: str,
        descriptor: ClientRequestDescriptor,
        record: EdgeCounter,
        current: int,
    ) -> Decision:
        retry_after = max(1, seconds_until(record.expires_at, current))
        logger.warning(
            "Rate limit exceeded",
            extra=get_log_context(
                tier=self.tier,
                client_ip=descriptor.ip,
                path=descriptor.path,
                rate_limit_key=key,
                total_hits=record.count,
                max_requests=self.policy.max_requests,
                algorithm=self.algorithm,
            ),
        )
        return Decision(
            allowed=False,
            remaining=0,
            reset_time=record.expires_at,
            total_hits=record.count,
            limit=self.policy.max_requests,
            retry_after=retry_after,
        )
