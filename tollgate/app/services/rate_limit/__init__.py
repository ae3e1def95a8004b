"""Request admission control.

This package provides tiered rate limiting: named policies, counting key
derivation, a sliding window limiter for the durable store, a fixed
window limiter for the in-process store, the route table and operator
tooling.
"""

from tollgate.app.services.rate_limit.admin import RateLimitAdmin
from tollgate.app.services.rate_limit.fixed_window import FixedWindowEdgeLimiter
from tollgate.app.services.rate_limit.keys import KeyDeriver
from tollgate.app.services.rate_limit.limiter import RateLimiter
from tollgate.app.services.rate_limit.models import (
    ClientRequestDescriptor,
    Decision,
    EdgeCounter,
    PolicyOverride,
    RateLimitPolicy,
    RateLimitStats,
)
from tollgate.app.services.rate_limit.policies import DEFAULT_TIERS, PolicyRegistry
from tollgate.app.services.rate_limit.routes import (
    DEFAULT_CUSTOM_ROUTES,
    DEFAULT_ROUTE_TIERS,
    RouteMatch,
    RouteTierMap,
)
from tollgate.app.services.rate_limit.sliding_window import SlidingWindowLimiter

__all__ = [
    # Models
    "ClientRequestDescriptor",
    "Decision",
    "EdgeCounter",
    "PolicyOverride",
    "RateLimitPolicy",
    "RateLimitStats",
    # Policies and keys
    "DEFAULT_TIERS",
    "PolicyRegistry",
    "KeyDeriver",
    # Limiters
    "SlidingWindowLimiter",
    "FixedWindowEdgeLimiter",
    "RateLimiter",
    # Routing and admin
    "DEFAULT_ROUTE_TIERS",
    "DEFAULT_CUSTOM_ROUTES",
    "RouteMatch",
    "RouteTierMap",
    "RateLimitAdmin",
]
