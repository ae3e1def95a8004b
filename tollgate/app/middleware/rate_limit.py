"""Rate limiting middleware and per-route dependency.

The middleware resolves each request path to a tier through the route
table, runs the limiter and either forwards the request or answers with a
429. A denial always carries the standard X-RateLimit-* and Retry-After
headers; allowed responses carry the informational ones when enabled.
"""

from typing import Any, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from tollgate.app.core.logging import get_log_context, get_logger
from tollgate.app.exceptions import RateLimitExceededError
from tollgate.app.services.rate_limit.limiter import RateLimiter
from tollgate.app.services.rate_limit.models import (
    ClientRequestDescriptor,
    Decision,
    PolicyOverride,
)
from tollgate.app.services.rate_limit.routes import RouteTierMap

logger = get_logger(__name__)


def get_client_ip(request: Request) -> str:
    """Resolve the client IP.

    Prefers the first X-Forwarded-For entry, then X-Real-IP, then the
    socket peer.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        client_ip = forwarded.split(",")[0].strip()
        if client_ip:
            return client_ip

    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


def descriptor_from_request(request: Request) -> ClientRequestDescriptor:
    return ClientRequestDescriptor(
        ip=get_client_ip(request),
        path=request.url.path,
        method=request.method,
        user_agent=request.headers.get("User-Agent") or "unknown",
    )


def rate_limit_headers(decision: Decision) -> dict[str, str]:
    """X-RateLimit-* headers for a decision; Retry-After only when denied."""
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_time),
    }
    if not decision.allowed and decision.retry_after is not None:
        headers["Retry-After"] = str(decision.retry_after)
    return headers


def build_rate_limit_response(decision: Decision) -> JSONResponse:
    """Render a denied decision as the structured 429 response."""
    retry_after = decision.retry_after or 1
    return JSONResponse(
        status_code=429,
        content={
            "error": "Rate limit exceeded",
            "message": f"Too many requests. Try again in {retry_after} seconds.",
            "retryAfter": retry_after,
        },
        headers=rate_limit_headers(decision),
    )


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce tiered rate limits on API requests.

    Ignored routes and paths outside the route table are forwarded without
    touching the store. A limiter error never blocks a request.
    """

    def __init__(
        self,
        app,
        limiter: RateLimiter,
        routes: Optional[RouteTierMap] = None,
        enabled: bool = True,
        include_headers: bool = True,
    ):
        super().__init__(app)
        self.limiter = limiter
        self.routes = routes or RouteTierMap(registry=limiter.registry)
        self.enabled = enabled
        self.include_headers = include_headers

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        if not self.enabled:
            return await call_next(request)

        match = self.routes.resolve(request.url.path)
        if match is None:
            return await call_next(request)

        descriptor = descriptor_from_request(request)
        try:
            decision = await self.limiter.check(match.tier, descriptor, match.override)
        except Exception as e:
            logger.exception(
                f"Rate limit check failed, allowing request: {e}",
                extra=get_log_context(
                    request_id=_request_id(request),
                    tier=match.tier,
                    path=descriptor.path,
                ),
            )
            return await call_next(request)

        if not decision.allowed:
            logger.info(
                "Request rejected by rate limiter",
                extra=get_log_context(
                    request_id=_request_id(request),
                    client_ip=descriptor.ip,
                    tier=match.tier,
                    path=descriptor.path,
                    method=descriptor.method,
                    retry_after=decision.retry_after,
                ),
            )
            return build_rate_limit_response(decision)

        response = await call_next(request)
        if self.include_headers:
            response.headers.update(rate_limit_headers(decision))
        return response


def require_rate_limit(tier: str, **override: Any):
    """FastAPI dependency enforcing ``tier`` on a single route.

    Keyword arguments are PolicyOverride fields applied on top of the tier,
    e.g. ``Depends(require_rate_limit("public", max_requests=30))``. The
    limiter is read from ``app.state.rate_limiter``.

    Raises:
        ConfigError: At declaration time, for unknown override fields.
    """
    policy_override = PolicyOverride.from_dict(override) if override else None

    async def dependency(request: Request) -> Decision:
        limiter: RateLimiter = request.app.state.rate_limiter
        decision = await limiter.check(tier, descriptor_from_request(request), policy_override)
        if not decision.allowed:
            raise RateLimitExceededError(decision, tier=tier)
        request.state.rate_limit = decision
        return decision

    return dependency
