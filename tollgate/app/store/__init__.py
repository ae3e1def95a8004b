"""Counter stores for rate limiting.

This package provides a pluggable key-value abstraction with an in-process
backend and a Redis backend, plus the configuration-driven factory that
picks between them.
"""

from tollgate.app.store.base import CounterStore
from tollgate.app.store.factory import StoreFactory, create_store
from tollgate.app.store.memory import EphemeralStore
from tollgate.app.store.redis_store import RedisStore
from tollgate.app.store.resilient import ResilientStore, StoreState

__all__ = [
    "CounterStore",
    "EphemeralStore",
    "RedisStore",
    "ResilientStore",
    "StoreState",
    "StoreFactory",
    "create_store",
]
