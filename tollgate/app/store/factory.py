"""Counter store selection.

The backend is chosen from configuration only: an explicit edge-runtime
flag or the absence of a Redis URL selects the in-process store, otherwise
a Redis store wrapped so it degrades to the in-process store on
connection failure.
"""

from typing import Optional

from tollgate.app.core.config import Settings, settings as default_settings
from tollgate.app.core.logging import get_logger
from tollgate.app.core.utils import Clock, system_clock
from tollgate.app.store.base import CounterStore
from tollgate.app.store.memory import EphemeralStore
from tollgate.app.store.redis_store import RedisStore
from tollgate.app.store.resilient import ResilientStore

logger = get_logger(__name__)


class StoreFactory:
    """Builds the counter store for one application instance."""

    def __init__(self, config: Optional[Settings] = None, clock: Clock = system_clock) -> None:
        self._config = config or default_settings
        self._clock = clock

    def _ephemeral(self) -> EphemeralStore:
        return EphemeralStore(
            clock=self._clock,
            max_entries=self._config.memory_store_max_entries,
        )

    def create(self) -> CounterStore:
        """Create a new store instance.

        Returns:
            EphemeralStore when no durable store is configured, otherwise a
            ResilientStore over Redis with an EphemeralStore fallback.
        """
        if self._config.edge_runtime:
            logger.info("Edge runtime configured, using in-memory counter store")
            return self._ephemeral()

        if not self._config.durable_store_configured:
            logger.info("No Redis URL configured, using in-memory counter store")
            return self._ephemeral()

        durable = RedisStore(
            self._config.redis_url,
            socket_timeout=self._config.redis_socket_timeout,
            connect_timeout=self._config.redis_connect_timeout,
        )
        logger.info("Using Redis counter store with in-memory fallback")
        return ResilientStore(durable=durable, fallback=self._ephemeral())


def create_store(config: Optional[Settings] = None, clock: Clock = system_clock) -> CounterStore:
    """Create the counter store selected by configuration.

    Example:
        >>> from tollgate.app.store.factory import create_store
        >>> store = create_store()
        >>> await store.set("key", [1], ttl_seconds=60)
    """
    return StoreFactory(config, clock=clock).create()
