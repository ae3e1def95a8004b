"""Administrative operations on rate limit counters.

Both bulk operations are O(number of matching keys) and meant for
low-frequency operator use, never the request path.
"""

from typing import Optional

from tollgate.app.core.logging import get_logger
from tollgate.app.exceptions import StoreOperationError
from tollgate.app.services.rate_limit.keys import KeyDeriver
from tollgate.app.services.rate_limit.models import RateLimitStats
from tollgate.app.store.base import CounterStore

logger = get_logger(__name__)


class RateLimitAdmin:
    """Pattern deletion and statistics over the counter store.

    Only deletes records; never creates or mutates them.
    """

    DEFAULT_SAMPLE_SIZE = 10

    def __init__(self, store: CounterStore, key_deriver: Optional[KeyDeriver] = None) -> None:
        self.store = store
        self.key_deriver = key_deriver or KeyDeriver()

    async def delete_by_pattern(self, pattern: str) -> int:
        """Delete every key matching ``pattern``.

        Args:
            pattern: Glob where only ``*`` is a wildcard.

        Returns:
            Number of keys actually deleted. A key whose delete fails is
            logged and skipped; 0 if the keys could not be listed.
        """
        try:
            keys = await self.store.list_keys_matching(pattern)
        except StoreOperationError as e:
            logger.error(f"Failed to list rate limit keys: {e}", extra={"pattern": pattern})
            return 0

        deleted = 0
        failed = 0
        for key in keys:
            try:
                if await self.store.delete(key):
                    deleted += 1
            except StoreOperationError as e:
                failed += 1
                logger.error(f"Failed to delete rate limit key: {e}", extra={"rate_limit_key": key})

        logger.info(
            "Rate limit keys deleted",
            extra={"pattern": pattern, "keys_found": len(keys), "deleted": deleted, "failed": failed},
        )
        return deleted

    async def reset_key(self, key: str) -> bool:
        """Delete a single counting key. Returns True if it existed."""
        try:
            existed = await self.store.delete(key)
        except StoreOperationError as e:
            logger.error(f"Failed to reset rate limit key: {e}", extra={"rate_limit_key": key})
            return False
        logger.info("Rate limit reset", extra={"rate_limit_key": key, "existed": existed})
        return existed

    async def stats(
        self,
        pattern: Optional[str] = None,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
    ) -> RateLimitStats:
        """Count live keys and return a sorted sample of them.

        Args:
            pattern: Glob to count; defaults to every key under the prefix.
            sample_size: Maximum number of keys to include in the sample.
        """
        pattern = pattern or self.key_deriver.tier_pattern()
        try:
            keys = await self.store.list_keys_matching(pattern)
        except StoreOperationError as e:
            logger.error(f"Error getting rate limit stats: {e}", extra={"pattern": pattern})
            return RateLimitStats(total_keys=0, sample_keys=[])
        return RateLimitStats(
            total_keys=len(keys),
            sample_keys=sorted(keys)[: max(0, sample_size)],
        )
