"""Shared fixtures for tollgate tests."""

import pytest

from tollgate.app.core.config import Settings
from tollgate.app.services.rate_limit.models import ClientRequestDescriptor
from tollgate.app.store.memory import EphemeralStore

START_SECONDS = 1_700_000_000.0


class FakeClock:
    """Deterministic time source; callable like time.time."""

    def __init__(self, start: float = START_SECONDS):
        self._ms = round(start * 1000)
        self.start_ms = self._ms

    def __call__(self) -> float:
        return self._ms / 1000

    def advance(self, seconds: float) -> None:
        self._ms += round(seconds * 1000)

    def advance_ms(self, ms: int) -> None:
        self._ms += ms

    def set_offset_ms(self, offset_ms: int) -> None:
        """Jump to ``start + offset_ms``."""
        self._ms = self.start_ms + offset_ms

    @property
    def now_ms(self) -> int:
        return self._ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store(clock) -> EphemeralStore:
    return EphemeralStore(clock=clock)


@pytest.fixture
def descriptor() -> ClientRequestDescriptor:
    return ClientRequestDescriptor(
        ip="10.0.0.1",
        path="/api/items",
        method="GET",
        user_agent="pytest-agent",
    )


@pytest.fixture
def test_settings(monkeypatch) -> Settings:
    """Settings isolated from the developer's .env and environment."""
    for name in ("REDIS_URL", "EDGE_RUNTIME", "RATE_LIMIT_TIERS", "RATE_LIMIT_IGNORED_ROUTES", "ADMIN_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    return Settings(
        _env_file=None,
        admin_token="test-admin-token",
        memory_store_cleanup_interval_seconds=0,
    )
