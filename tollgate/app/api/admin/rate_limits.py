"""Operator endpoints for inspecting and clearing rate limit counters."""

from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request

from tollgate.app.services.rate_limit.admin import RateLimitAdmin
from tollgate.app.services.rate_limit.limiter import RateLimiter
from tollgate.app.services.rate_limit.routes import RouteTierMap

router = APIRouter()


def _admin(request: Request) -> RateLimitAdmin:
    return request.app.state.rate_limit_admin


@router.get("/stats")
async def get_stats(
    request: Request,
    pattern: str | None = Query(None, description="Glob; only '*' is a wildcard"),
    sample_size: int = Query(10, ge=0, le=1000),
) -> dict[str, Any]:
    """Key count and a sample of keys for dashboards."""
    admin = _admin(request)
    stats = await admin.stats(pattern=pattern, sample_size=sample_size)
    return {**stats.to_dict(), "store": admin.store.describe()}


@router.delete("")
async def delete_by_pattern(
    request: Request,
    pattern: str = Query(..., min_length=1, description="Glob; only '*' is a wildcard"),
) -> dict[str, Any]:
    """Delete every counter whose key matches the pattern."""
    deleted = await _admin(request).delete_by_pattern(pattern)
    return {"pattern": pattern, "deleted": deleted}


@router.delete("/keys/{key:path}")
async def reset_key(request: Request, key: str) -> dict[str, Any]:
    """Reset a single client's counter."""
    if not await _admin(request).reset_key(key):
        raise HTTPException(status_code=404, detail="Rate limit key not found")
    return {"key": key, "deleted": True}


@router.get("/tiers")
async def list_tiers(request: Request) -> dict[str, Any]:
    """Effective policy per tier."""
    limiter: RateLimiter = request.app.state.rate_limiter
    return limiter.registry.to_dict()


@router.get("/routes")
async def describe_route(
    request: Request,
    path: str = Query(..., min_length=1),
) -> dict[str, Any]:
    """How a request path is rate limited."""
    routes: RouteTierMap = request.app.state.rate_limit_routes
    limiter: RateLimiter = request.app.state.rate_limiter
    return routes.info(path, registry=limiter.registry)
