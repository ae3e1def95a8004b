"""In-process counter store with TTL support.

Used when no durable store is configured, when running in a restricted
edge sandbox, and as the fallback once a durable store has degraded.
"""

import asyncio
import copy
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any

from tollgate.app.core.patterns import filter_keys
from tollgate.app.core.utils import Clock, ms_to_ttl_seconds, system_clock
from tollgate.app.store.base import CounterStore


@dataclass
class _StoreEntry:
    """Internal entry with TTL tracking."""

    value: Any
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        if self.expires_at is None:
            return False
        return now >= self.expires_at


class EphemeralStore(CounterStore):
    """In-memory counter store.

    Stores entries in an ordered dictionary and expires them lazily on
    access. Never performs I/O.

    Note: This store is not distributed; each process keeps its own
    counts and all data is lost when the process restarts.

    Memory bounds:
    - Uses OrderedDict for LRU behavior
    - Once ``max_entries`` is exceeded the oldest 20% of keys are dropped
    """

    backend_name = "memory"
    DEFAULT_MAX_ENTRIES = 10000

    def __init__(
        self,
        *,
        clock: Clock = system_clock,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        """Initialize the store.

        Args:
            clock: Time source returning UNIX time in seconds.
            max_entries: Maximum number of keys held before LRU eviction.
        """
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._clock = clock
        self._max_entries = max_entries
        self._data: OrderedDict[str, _StoreEntry] = OrderedDict()
        self._lock = asyncio.Lock()

    def _live_entry(self, key: str) -> _StoreEntry | None:
        """Return the entry for key, dropping it if expired. Caller holds the lock."""
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._data[key]
            return None
        return entry

    def _enforce_lru_limit(self) -> None:
        if len(self._data) > self._max_entries:
            remove_count = max(1, int(self._max_entries * 0.2))
            for _ in range(min(remove_count, len(self._data))):
                self._data.popitem(last=False)

    def _put(self, key: str, value: Any, ttl_seconds: int) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds > 0 else None
        self._data[key] = _StoreEntry(value=value, expires_at=expires_at)
        self._data.move_to_end(key)
        self._enforce_lru_limit()

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            self._data.move_to_end(key)
            # Callers mutate what they read; never hand out the stored object.
            return copy.deepcopy(entry.value)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        async with self._lock:
            self._put(key, copy.deepcopy(value), ttl_seconds)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(key, None) is not None

    async def exists(self, key: str) -> bool:
        async with self._lock:
            return self._live_entry(key) is not None

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return False
            entry.expires_at = self._clock() + ttl_seconds if ttl_seconds > 0 else None
            return True

    async def list_keys_matching(self, pattern: str) -> list[str]:
        async with self._lock:
            now = self._clock()
            live = [key for key, entry in self._data.items() if not entry.is_expired(now)]
        return filter_keys(pattern, live)

    async def record_hit(self, key: str, now_ms: int, window_ms: int) -> list[int]:
        """Atomic variant of the sliding-window update, done under the store lock."""
        window_start = now_ms - window_ms
        async with self._lock:
            entry = self._live_entry(key)
            stored = entry.value if entry is not None else None
            hits = [ts for ts in stored if ts > window_start] if isinstance(stored, list) else []
            hits.append(now_ms)
            self._put(key, hits, ms_to_ttl_seconds(window_ms))
            return list(hits)

    async def cleanup_expired(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed.
        """
        async with self._lock:
            now = self._clock()
            expired_keys = [key for key, entry in self._data.items() if entry.is_expired(now)]
            for key in expired_keys:
                del self._data[key]
            return len(expired_keys)

    async def clear(self) -> None:
        """Clear all entries."""
        async with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        return len(self._data)

    def describe(self) -> dict[str, Any]:
        return {
            "backend": self.backend_name,
            "durable": False,
            "entries": len(self._data),
            "max_entries": self._max_entries,
        }
