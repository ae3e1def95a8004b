"""Counter store abstraction.

Provides the key-value interface the rate limiters count against. All
operations are coroutines so the in-process and networked backends are
interchangeable.
"""

from abc import ABC, abstractmethod
from typing import Any

from tollgate.app.core.utils import ms_to_ttl_seconds


class CounterStore(ABC):
    """Abstract base class for counter stores.

    All store implementations must inherit from this class and implement
    the abstract methods.
    """

    backend_name: str = "abstract"

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Retrieve a value.

        Args:
            key: The key to look up.

        Returns:
            The stored value, or None if not found or expired.
        """

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a value with a time-to-live.

        Args:
            key: The key.
            value: A JSON-compatible value.
            ttl_seconds: Time-to-live in seconds.
        """

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a key.

        Returns:
            True if the key existed.
        """

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if a key exists and has not expired."""

    @abstractmethod
    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Reset the time-to-live of an existing key.

        Returns:
            True if the key existed and its expiry was updated.
        """

    @abstractmethod
    async def list_keys_matching(self, pattern: str) -> list[str]:
        """List live keys matching a glob where only ``*`` is a wildcard."""

    async def record_hit(self, key: str, now_ms: int, window_ms: int) -> list[int]:
        """Record a request timestamp and return the hits still in the window.

        The generic implementation is a read-modify-write over ``get`` and
        ``set``. It is not atomic: two requests for the same key that
        interleave between the read and the write can each miss the other's
        hit, so the count may lag by at most the number of concurrent
        requests for that key. Backends with a native atomic primitive
        override this.

        Args:
            key: Counting key.
            now_ms: Timestamp of the current request in milliseconds.
            window_ms: Sliding window length in milliseconds.

        Returns:
            Ascending timestamps newer than ``now_ms - window_ms``, including
            ``now_ms`` itself.
        """
        window_start = now_ms - window_ms
        stored = await self.get(key)
        hits = [int(ts) for ts in stored] if isinstance(stored, list) else []
        hits = [ts for ts in hits if ts > window_start]
        hits.append(now_ms)
        # Written even when the caller will deny, so the window keeps decaying.
        await self.set(key, hits, ms_to_ttl_seconds(window_ms))
        return hits

    async def ensure_ready(self) -> None:
        """Establish connections if the backend needs them."""

    @property
    def is_durable(self) -> bool:
        """Whether counts are shared beyond this process."""
        return False

    async def cleanup_expired(self) -> int:
        """Drop expired entries eagerly. Returns the number removed."""
        return 0

    async def close(self) -> None:
        """Release backend resources."""

    def describe(self) -> dict[str, Any]:
        """Summarize the backend for health and admin endpoints."""
        return {"backend": self.backend_name, "durable": self.is_durable}
