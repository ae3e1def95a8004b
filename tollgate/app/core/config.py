import json
import re
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_IGNORED_ROUTES = [
    "/api/health",
    "/api/status",
    "/api/_next",
    "/api/favicon.ico",
]


def _parse_route_list(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []

    # Prefer JSON, but tolerate comma or whitespace separated values so a
    # hand-edited .env does not crash the app at startup.
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]

    parts = [p for p in re.split(r"[,\s]+", raw) if p]

    # Deduplicate while preserving order.
    seen: set[str] = set()
    result: list[str] = []
    for part in parts:
        if part in seen:
            continue
        seen.add(part)
        result.append(part)
    return result


def _parse_tier_overrides(raw: Any) -> dict[str, dict[str, Any]]:
    if raw is None:
        return {}
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return {}
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"rate_limit_tiers must be a JSON object: {e}") from e
    if not isinstance(raw, dict):
        raise ValueError("rate_limit_tiers must be a JSON object keyed by tier name")

    overrides: dict[str, dict[str, Any]] = {}
    for tier, fields in raw.items():
        if not isinstance(fields, dict):
            raise ValueError(f"rate_limit_tiers[{tier!r}] must be an object")
        overrides[str(tier)] = dict(fields)
    return overrides


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Redis settings (optional). An empty URL selects the in-process store.
    redis_url: str = ""
    redis_socket_timeout: float = 0.5  # Per-command timeout in seconds
    redis_connect_timeout: float = 0.5  # Time to establish connection

    # Restricted sandboxes without persistent outbound connections
    edge_runtime: bool = False

    # Rate limiting settings
    rate_limit_enabled: bool = True
    rate_limit_include_headers: bool = True  # X-RateLimit-* on allowed responses
    rate_limit_key_prefix: str = ""

    # Per-tier overrides merged onto the default tier table, e.g.
    # RATE_LIMIT_TIERS='{"auth": {"max_requests": 10}}'
    rate_limit_tiers: Annotated[dict[str, dict[str, Any]], NoDecode] = Field(
        default_factory=dict
    )

    # Routes that bypass rate limiting entirely
    rate_limit_ignored_routes: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_IGNORED_ROUTES)
    )

    # In-process store settings
    memory_store_max_entries: int = 10000
    memory_store_cleanup_interval_seconds: int = 300  # 0 disables the sweep

    # Admin API bearer token; empty disables the admin API
    admin_token: str = ""

    @field_validator("rate_limit_tiers", mode="before")
    @classmethod
    def decode_rate_limit_tiers(cls, v: Any) -> dict[str, dict[str, Any]]:
        return _parse_tier_overrides(v)

    @field_validator("rate_limit_ignored_routes", mode="before")
    @classmethod
    def decode_ignored_routes(cls, v: Any) -> list[str]:
        return _parse_route_list(v)

    @field_validator("redis_socket_timeout", "redis_connect_timeout")
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    @field_validator("memory_store_max_entries")
    @classmethod
    def validate_max_entries(cls, v: int) -> int:
        """Validate the in-process store can hold at least one entry."""
        if v < 1:
            raise ValueError("memory_store_max_entries must be at least 1")
        return v

    @field_validator("memory_store_cleanup_interval_seconds")
    @classmethod
    def validate_cleanup_interval(cls, v: int) -> int:
        if v < 0:
            raise ValueError("memory_store_cleanup_interval_seconds must not be negative")
        return v

    @field_validator("rate_limit_key_prefix")
    @classmethod
    def strip_key_prefix(cls, v: str) -> str:
        return v.strip().rstrip(":")

    @property
    def durable_store_configured(self) -> bool:
        """Whether a durable counter store should be attempted."""
        return bool(self.redis_url.strip()) and not self.edge_runtime

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
