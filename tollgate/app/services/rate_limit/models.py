"""Rate limiting data models.

This module contains dataclasses for policies, request descriptors,
counter records and admission decisions.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Optional

from tollgate.app.exceptions import ConfigError

# (tier, descriptor) -> counting key
KeyGenerator = Callable[[str, "ClientRequestDescriptor"], str]


@dataclass(frozen=True)
class RateLimitPolicy:
    """Thresholds for one rate limit tier.

    Attributes:
        window_ms: Trailing window length in milliseconds.
        max_requests: Requests allowed per window.
        skip_successful: Carried configuration; admission happens before the
            response status is known, so it is not applied by the limiters.
        skip_failed: Same as skip_successful, for failed responses.
        key_generator: Optional custom key builder, e.g. for coarser keys.
        include_method: Add the HTTP method to derived keys.
        include_user_agent: Add the user agent to derived keys.

    Raises:
        ConfigError: If window_ms <= 0 or max_requests < 1.
    """

    window_ms: int
    max_requests: int
    skip_successful: bool = False
    skip_failed: bool = False
    key_generator: Optional[KeyGenerator] = field(default=None, compare=False)
    include_method: bool = False
    include_user_agent: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.window_ms, bool) or not isinstance(self.window_ms, int):
            raise ConfigError("window_ms must be an integer", field="window_ms")
        if isinstance(self.max_requests, bool) or not isinstance(self.max_requests, int):
            raise ConfigError("max_requests must be an integer", field="max_requests")
        if self.window_ms <= 0:
            raise ConfigError("window_ms must be > 0", field="window_ms")
        if self.max_requests < 1:
            raise ConfigError("max_requests must be >= 1", field="max_requests")

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization (custom key builders omitted)."""
        data = asdict(self)
        data.pop("key_generator")
        data["custom_key"] = self.key_generator is not None
        return data


@dataclass(frozen=True)
class PolicyOverride:
    """Partial policy merged onto a named tier. ``None`` keeps the tier value."""

    window_ms: Optional[int] = None
    max_requests: Optional[int] = None
    skip_successful: Optional[bool] = None
    skip_failed: Optional[bool] = None
    key_generator: Optional[KeyGenerator] = field(default=None, compare=False)
    include_method: Optional[bool] = None
    include_user_agent: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PolicyOverride":
        """Build from a settings mapping, rejecting unknown fields."""
        allowed = {
            "window_ms", "max_requests", "skip_successful", "skip_failed",
            "include_method", "include_user_agent",
        }
        unknown = set(data) - allowed
        if unknown:
            raise ConfigError(
                f"Unknown rate limit policy fields: {', '.join(sorted(unknown))}"
            )
        return cls(**data)

    def changes(self) -> dict[str, Any]:
        """Fields explicitly set on this override."""
        return {
            name: getattr(self, name)
            for name in self.__dataclass_fields__
            if getattr(self, name) is not None
        }


@dataclass(frozen=True)
class ClientRequestDescriptor:
    """What the limiter knows about an inbound request.

    Built once per request by the HTTP layer.
    """

    ip: str
    path: str
    method: str = "GET"
    user_agent: str = "unknown"
    user_id: Optional[str] = None


@dataclass(frozen=True)
class Decision:
    """Result of an admission check. Produced fresh on every check.

    Attributes:
        allowed: Whether the request may proceed.
        remaining: Requests left in the current window (0 when denied).
        reset_time: Epoch milliseconds when a slot is next expected to free.
        total_hits: Hits counted for the key in the current window.
        limit: The policy's max_requests.
        retry_after: Seconds to wait before retrying, set when denied.
    """

    allowed: bool
    remaining: int
    reset_time: int
    total_hits: int
    limit: int
    retry_after: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class EdgeCounter:
    """Fixed-window counter record kept by the edge limiter."""

    count: int
    expires_at: int

    def to_dict(self) -> dict[str, int]:
        return {"count": self.count, "expires_at": self.expires_at}

    @classmethod
    def from_dict(cls, data: Any) -> Optional["EdgeCounter"]:
        """Parse a stored record; anything malformed counts as absent."""
        if not isinstance(data, dict):
            return None
        try:
            return cls(count=int(data["count"]), expires_at=int(data["expires_at"]))
        except (KeyError, TypeError, ValueError):
            return None


@dataclass(frozen=True)
class RateLimitStats:
    """Counter store statistics for operational dashboards."""

    total_keys: int
    sample_keys: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"total_keys": self.total_keys, "sample_keys": list(self.sample_keys)}
