"""Middleware package for tollgate."""

from tollgate.app.middleware.auth import require_admin
from tollgate.app.middleware.rate_limit import (
    RateLimitMiddleware,
    build_rate_limit_response,
    descriptor_from_request,
    rate_limit_headers,
    require_rate_limit,
)
from tollgate.app.middleware.request_id import RequestIdMiddleware, get_request_id

__all__ = [
    "require_admin",
    "RateLimitMiddleware",
    "build_rate_limit_response",
    "descriptor_from_request",
    "rate_limit_headers",
    "require_rate_limit",
    "RequestIdMiddleware",
    "get_request_id",
]
