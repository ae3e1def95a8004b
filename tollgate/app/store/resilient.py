"""Durable store with automatic, one-way degradation to an in-process store.

State machine::

    uninitialized -> connecting -> connected
                          |            |
                          +-> degraded <+

``degraded`` is terminal for the process: once the durable store fails to
connect, or reports a connection error later on, every operation is routed
to the fallback store without further reconnect attempts.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from tollgate.app.core.logging import get_logger
from tollgate.app.exceptions import StoreConnectionError
from tollgate.app.store.base import CounterStore
from tollgate.app.store.memory import EphemeralStore

logger = get_logger(__name__)

T = TypeVar("T")


class StoreState(str, Enum):
    """Connectivity state of the durable backend."""

    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DEGRADED = "degraded"


class ResilientStore(CounterStore):
    """Counter store that prefers a durable backend and silently degrades.

    StoreOperationError from the durable backend is propagated so the
    caller can fail open for that single request; only connection errors
    trigger degradation.
    """

    def __init__(self, durable: CounterStore, fallback: EphemeralStore) -> None:
        self._durable = durable
        self._fallback = fallback
        self._state = StoreState.UNINITIALIZED
        self._connect_lock = asyncio.Lock()

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def backend_name(self) -> str:  # type: ignore[override]
        if self._state is StoreState.CONNECTED:
            return self._durable.backend_name
        return self._fallback.backend_name

    @property
    def is_durable(self) -> bool:
        return self._state is StoreState.CONNECTED

    @property
    def fallback(self) -> EphemeralStore:
        return self._fallback

    def _degrade(self, error: BaseException) -> None:
        """Switch to the fallback store. Logged once per process."""
        if self._state is StoreState.DEGRADED:
            return
        previous = self._state
        self._state = StoreState.DEGRADED
        logger.warning(
            "Durable counter store unavailable, using in-memory store for the rest of the process",
            extra={
                "previous_state": previous.value,
                "durable_backend": self._durable.backend_name,
                "error": str(error),
            },
        )

    async def ensure_ready(self) -> None:
        """Connect on first use. Concurrent first callers share one attempt.

        Any failure of the attempt degrades the store. A cancelled attempt
        returns to ``uninitialized`` so the next caller tries again.
        """
        if self._state in (StoreState.CONNECTED, StoreState.DEGRADED):
            return
        async with self._connect_lock:
            if self._state is not StoreState.UNINITIALIZED:
                return
            self._state = StoreState.CONNECTING
            try:
                await self._durable.ensure_ready()
            except Exception as e:
                self._degrade(e)
                return
            except BaseException:
                self._state = StoreState.UNINITIALIZED
                raise
            self._state = StoreState.CONNECTED
            logger.info(
                "Durable counter store connected",
                extra={"durable_backend": self._durable.backend_name},
            )

    async def _route(self, call: Callable[[CounterStore], Awaitable[T]]) -> T:
        await self.ensure_ready()
        if self._state is StoreState.DEGRADED:
            return await call(self._fallback)
        try:
            return await call(self._durable)
        except StoreConnectionError as e:
            self._degrade(e)
            return await call(self._fallback)

    async def get(self, key: str) -> Any | None:
        return await self._route(lambda store: store.get(key))

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        await self._route(lambda store: store.set(key, value, ttl_seconds))

    async def delete(self, key: str) -> bool:
        return await self._route(lambda store: store.delete(key))

    async def exists(self, key: str) -> bool:
        return await self._route(lambda store: store.exists(key))

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        return await self._route(lambda store: store.expire(key, ttl_seconds))

    async def list_keys_matching(self, pattern: str) -> list[str]:
        return await self._route(lambda store: store.list_keys_matching(pattern))

    async def record_hit(self, key: str, now_ms: int, window_ms: int) -> list[int]:
        return await self._route(lambda store: store.record_hit(key, now_ms, window_ms))

    async def cleanup_expired(self) -> int:
        return await self._fallback.cleanup_expired()

    async def close(self) -> None:
        await self._durable.close()
        await self._fallback.close()

    def describe(self) -> dict[str, Any]:
        return {
            "backend": self.backend_name,
            "durable": self.is_durable,
            "state": self._state.value,
        }
