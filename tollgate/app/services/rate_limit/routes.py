"""Route to tier mapping.

Paths are matched by longest prefix on whole path segments, so ``/api/ml``
covers ``/api/ml/predictions`` but not ``/api/mlflow``. Ignored routes
bypass limiting entirely; exact-path custom policies take precedence over
the prefix table.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from tollgate.app.core.config import DEFAULT_IGNORED_ROUTES
from tollgate.app.exceptions import ConfigError
from tollgate.app.services.rate_limit.models import PolicyOverride
from tollgate.app.services.rate_limit.policies import MINUTE_MS, PolicyRegistry

HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

# Fallback tier for API paths with no more specific entry
DEFAULT_TIER = "public"

DEFAULT_ROUTE_TIERS: Mapping[str, str] = MappingProxyType({
    # Authentication
    "/api/auth": "auth",
    "/api/login": "auth",
    "/api/register": "auth",
    "/api/forgot-password": "auth",
    "/api/reset-password": "auth",

    # ML and analytics
    "/api/ml": "ml",
    "/api/signals": "ml",
    "/api/analytics": "ml",
    "/api/kpis": "ml",

    # Real-time data
    "/api/realtime-data": "realtime",
    "/api/roulette-status": "realtime",
    "/api/live": "realtime",

    # Administrative
    "/api/admin": "admin",
    "/api/user-backup": "admin",
    "/api/seed-demo-data": "admin",

    # Payments are held to the auth tier
    "/api/payments": "auth",
    "/api/checkout-link": "auth",
    "/api/pagarme": "auth",
    "/api/billing": "auth",
    "/api/subscription": "auth",

    "/api": DEFAULT_TIER,
})

# Exact paths with their own thresholds on top of the public tier
DEFAULT_CUSTOM_ROUTES: Mapping[str, PolicyOverride] = MappingProxyType({
    "/api/upload": PolicyOverride(window_ms=HOUR_MS, max_requests=10),
    "/api/search": PolicyOverride(window_ms=MINUTE_MS, max_requests=30),
    "/api/export": PolicyOverride(window_ms=DAY_MS, max_requests=5),
})


def _normalize(path: str) -> str:
    if not path:
        return "/"
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


def _covers(prefix: str, path: str) -> bool:
    """Whether ``prefix`` matches ``path`` on a segment boundary."""
    if prefix == "/":
        return True
    return path == prefix or path.startswith(prefix + "/")


@dataclass(frozen=True)
class RouteMatch:
    """Tier (and optional override) selected for a path."""

    tier: str
    override: Optional[PolicyOverride] = None
    matched: Optional[str] = None

    @property
    def is_custom(self) -> bool:
        return self.override is not None


class RouteTierMap:
    """Static longest-prefix table from route patterns to tier names."""

    def __init__(
        self,
        routes: Optional[Mapping[str, str]] = None,
        ignored: Optional[Iterable[str]] = None,
        custom: Optional[Mapping[str, PolicyOverride]] = None,
        registry: Optional[PolicyRegistry] = None,
    ) -> None:
        """Build the table.

        Args:
            routes: Prefix -> tier mapping. Defaults to DEFAULT_ROUTE_TIERS.
            ignored: Prefixes that bypass limiting. Defaults to
                DEFAULT_IGNORED_ROUTES.
            custom: Exact path -> override of the public tier.
            registry: When given, every referenced tier and custom override
                is validated against it.

        Raises:
            ConfigError: If a route references an unknown tier or a custom
                override produces an invalid policy.
        """
        route_map = routes if routes is not None else DEFAULT_ROUTE_TIERS
        self._routes = {_normalize(prefix): tier for prefix, tier in route_map.items()}
        # Longest (most specific) prefixes first
        self._ordered = sorted(self._routes, key=len, reverse=True)
        self._ignored = [
            _normalize(route) for route in (ignored if ignored is not None else DEFAULT_IGNORED_ROUTES)
        ]
        custom_map = custom if custom is not None else DEFAULT_CUSTOM_ROUTES
        self._custom = {_normalize(path): override for path, override in custom_map.items()}

        if registry is not None:
            for prefix, tier in self._routes.items():
                if tier not in registry:
                    raise ConfigError(
                        f"Route {prefix!r} references unknown tier {tier!r}", field=prefix
                    )
            for override in self._custom.values():
                registry.resolve(DEFAULT_TIER, override)

    def is_ignored(self, path: str) -> bool:
        path = _normalize(path)
        return any(_covers(route, path) for route in self._ignored)

    def resolve(self, path: str) -> Optional[RouteMatch]:
        """Select the tier for ``path``.

        Returns:
            RouteMatch, or None when the path is ignored or not rate limited.
        """
        path = _normalize(path)
        if self.is_ignored(path):
            return None

        override = self._custom.get(path)
        if override is not None:
            return RouteMatch(tier=DEFAULT_TIER, override=override, matched=path)

        for prefix in self._ordered:
            if _covers(prefix, path):
                return RouteMatch(tier=self._routes[prefix], matched=prefix)
        return None

    def has_rate_limit(self, path: str) -> bool:
        return self.resolve(path) is not None

    def info(self, path: str, registry: Optional[PolicyRegistry] = None) -> dict[str, Any]:
        """Describe how ``path`` is rate limited, for operators."""
        match = self.resolve(path)
        policy = None
        if match is not None and registry is not None:
            policy = registry.resolve(match.tier, match.override).to_dict()
        return {
            "path": path,
            "tier": match.tier if match else None,
            "matched": match.matched if match else None,
            "ignored": self.is_ignored(path),
            "has_custom_config": bool(match and match.is_custom),
            "policy": policy,
        }
