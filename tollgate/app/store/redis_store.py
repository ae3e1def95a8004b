"""Redis-backed counter store.

Values are stored as JSON strings with a native TTL. Connection problems
are reported as StoreConnectionError so the degrading store can switch to
the in-process backend; any other command failure becomes a
StoreOperationError.
"""

import json
import secrets
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from tollgate.app.core.patterns import filter_keys, to_redis_pattern
from tollgate.app.exceptions import StoreConnectionError, StoreOperationError
from tollgate.app.store.base import CounterStore


class RedisStore(CounterStore):
    """Durable counter store on a Redis server.

    Example:
        >>> store = RedisStore("redis://localhost:6379/0")
        >>> await store.connect()
        >>> await store.set("public:10.0.0.1:/api/items", [1700000000000], 900)
    """

    backend_name = "redis"
    SCAN_COUNT = 500

    def __init__(
        self,
        redis_url: str,
        *,
        socket_timeout: float = 0.5,
        connect_timeout: float = 0.5,
        redis_client: Optional[Any] = None,
    ) -> None:
        """Initialize the Redis store.

        Args:
            redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
            socket_timeout: Per-command timeout in seconds.
            connect_timeout: Time allowed to establish a connection.
            redis_client: Pre-built client, mainly for tests.
        """
        self._redis_url = redis_url
        self._socket_timeout = socket_timeout
        self._connect_timeout = connect_timeout
        self._redis = redis_client
        self._connected = False

    def _get_client(self) -> Any:
        """Get or create the Redis client. Connections are opened lazily."""
        if self._redis is None:
            self._redis = aioredis.from_url(
                self._redis_url,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._connect_timeout,
                decode_responses=True,
            )
        return self._redis

    @asynccontextmanager
    async def _command(self, operation: str, key: Optional[str] = None) -> AsyncIterator[Any]:
        """Run a command block, translating redis errors into store errors."""
        try:
            client = self._get_client()
        except ValueError as e:
            raise StoreConnectionError("Invalid Redis URL", cause=e) from e
        try:
            yield client
        except (RedisConnectionError, OSError) as e:
            raise StoreConnectionError(f"Redis connection failed during {operation}", cause=e) from e
        except (RedisError, ValueError, TypeError) as e:
            raise StoreOperationError(operation, key=key, cause=e) from e

    async def connect(self) -> None:
        """Verify the server is reachable.

        Raises:
            StoreConnectionError: If the URL is malformed or the server does
                not answer PING.
        """
        try:
            client = self._get_client()
            await client.ping()
        except ValueError as e:
            raise StoreConnectionError("Invalid Redis URL", cause=e) from e
        except (RedisError, OSError) as e:
            raise StoreConnectionError("Redis ping failed", cause=e) from e
        self._connected = True

    async def ensure_ready(self) -> None:
        if not self._connected:
            await self.connect()

    @property
    def is_durable(self) -> bool:
        return True

    async def get(self, key: str) -> Any | None:
        async with self._command("get", key) as client:
            raw = await client.get(key)
            if raw is None:
                return None
            return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        async with self._command("set", key) as client:
            payload = json.dumps(value, separators=(",", ":"))
            if ttl_seconds > 0:
                await client.set(key, payload, ex=ttl_seconds)
            else:
                await client.set(key, payload)

    async def delete(self, key: str) -> bool:
        async with self._command("delete", key) as client:
            return await client.delete(key) > 0

    async def exists(self, key: str) -> bool:
        async with self._command("exists", key) as client:
            return await client.exists(key) > 0

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        async with self._command("expire", key) as client:
            return bool(await client.expire(key, ttl_seconds))

    async def list_keys_matching(self, pattern: str) -> list[str]:
        async with self._command("scan") as client:
            keys = [
                key.decode() if isinstance(key, bytes) else key
                async for key in client.scan_iter(
                    match=to_redis_pattern(pattern), count=self.SCAN_COUNT
                )
            ]
        # SCAN may return duplicates across iterations
        return filter_keys(pattern, dict.fromkeys(keys))

    async def record_hit(self, key: str, now_ms: int, window_ms: int) -> list[int]:
        """Record a hit atomically using a sorted set of timestamps.

        Runs ZREMRANGEBYSCORE, ZADD, ZRANGE and PEXPIRE in one MULTI/EXEC
        transaction, so concurrent requests for the same key cannot lose
        each other's hits.
        """
        window_start = now_ms - window_ms
        # Unique member so two hits in the same millisecond both count
        member = f"{now_ms}:{secrets.token_hex(4)}"
        async with self._command("record_hit", key) as client:
            pipe = client.pipeline(transaction=True)
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zadd(key, {member: now_ms})
            pipe.zrange(key, 0, -1, withscores=True)
            pipe.pexpire(key, window_ms)
            results = await pipe.execute()
        members = results[2] or []
        return sorted(int(score) for _, score in members)

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self._connected = False

    def describe(self) -> dict[str, Any]:
        return {"backend": self.backend_name, "durable": True}
