"""Named rate limit tiers.

The registry holds the default thresholds per tier and merges explicit,
typed overrides onto them. Every merged policy is re-validated, so an
invalid override fails when it is resolved rather than at request time.
"""

import dataclasses
from types import MappingProxyType
from typing import Any, Mapping, Optional

from tollgate.app.core.config import Settings
from tollgate.app.exceptions import ConfigError
from tollgate.app.services.rate_limit.models import PolicyOverride, RateLimitPolicy

MINUTE_MS = 60 * 1000

# Default thresholds per tier
DEFAULT_TIERS: Mapping[str, RateLimitPolicy] = MappingProxyType({
    # Public APIs
    "public": RateLimitPolicy(window_ms=15 * MINUTE_MS, max_requests=100),
    # Authentication and payment flows
    "auth": RateLimitPolicy(
        window_ms=15 * MINUTE_MS, max_requests=5, skip_successful=True
    ),
    # Real-time data polling
    "realtime": RateLimitPolicy(
        window_ms=1 * MINUTE_MS, max_requests=60, skip_successful=True, skip_failed=True
    ),
    # ML and analytics endpoints
    "ml": RateLimitPolicy(window_ms=5 * MINUTE_MS, max_requests=20, skip_failed=True),
    # Administrative endpoints
    "admin": RateLimitPolicy(window_ms=60 * MINUTE_MS, max_requests=100),
})


def merge_policy(base: RateLimitPolicy, override: Optional[PolicyOverride]) -> RateLimitPolicy:
    """Apply the fields set on ``override`` to ``base``.

    Raises:
        ConfigError: If the merged policy is invalid.
    """
    if override is None:
        return base
    changes = override.changes()
    if not changes:
        return base
    return dataclasses.replace(base, **changes)


class PolicyRegistry:
    """Static table of named tiers.

    Example:
        >>> registry = PolicyRegistry(overrides={"auth": PolicyOverride(max_requests=10)})
        >>> registry.resolve("auth").max_requests
        10
    """

    def __init__(
        self,
        tiers: Optional[Mapping[str, RateLimitPolicy]] = None,
        overrides: Optional[Mapping[str, PolicyOverride]] = None,
    ) -> None:
        """Build the registry, validating every override eagerly.

        Args:
            tiers: Base tier table. Defaults to DEFAULT_TIERS.
            overrides: Per-tier overrides merged onto the base table.

        Raises:
            ConfigError: If an override names an unknown tier or produces an
                invalid policy.
        """
        base = dict(tiers if tiers is not None else DEFAULT_TIERS)
        for name, override in (overrides or {}).items():
            if name not in base:
                raise ConfigError(f"Unknown rate limit tier: {name!r}", field=name)
            base[name] = merge_policy(base[name], override)
        self._tiers: dict[str, RateLimitPolicy] = base

    @classmethod
    def from_settings(cls, config: Settings) -> "PolicyRegistry":
        """Build a registry from ``RATE_LIMIT_TIERS`` overrides."""
        overrides = {
            name: PolicyOverride.from_dict(fields)
            for name, fields in config.rate_limit_tiers.items()
        }
        return cls(overrides=overrides)

    def resolve(self, name: str, override: Optional[PolicyOverride] = None) -> RateLimitPolicy:
        """Return the policy for ``name`` with ``override`` applied.

        Raises:
            ConfigError: If the tier is unknown or the merged policy is invalid.
        """
        try:
            policy = self._tiers[name]
        except KeyError:
            raise ConfigError(f"Unknown rate limit tier: {name!r}", field=name) from None
        return merge_policy(policy, override)

    def __contains__(self, name: object) -> bool:
        return name in self._tiers

    def tiers(self) -> list[str]:
        return list(self._tiers)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {name: policy.to_dict() for name, policy in self._tiers.items()}
