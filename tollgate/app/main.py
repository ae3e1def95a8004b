import asyncio
import traceback
from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tollgate.app.api.admin import router as admin_router
from tollgate.app.core.config import Settings, settings as default_settings
from tollgate.app.core.logging import get_logger, setup_logging
from tollgate.app.core.utils import Clock, system_clock
from tollgate.app.exceptions import RateLimitExceededError
from tollgate.app.middleware.rate_limit import RateLimitMiddleware, build_rate_limit_response
from tollgate.app.middleware.request_id import RequestIdMiddleware
from tollgate.app.services.rate_limit.admin import RateLimitAdmin
from tollgate.app.services.rate_limit.keys import KeyDeriver
from tollgate.app.services.rate_limit.limiter import RateLimiter
from tollgate.app.services.rate_limit.policies import PolicyRegistry
from tollgate.app.services.rate_limit.routes import RouteTierMap
from tollgate.app.store.base import CounterStore
from tollgate.app.store.factory import create_store


async def _cleanup_loop(store: CounterStore, interval_seconds: int, logger) -> None:
    """Periodically drop expired in-process counters."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = await store.cleanup_expired()
        except Exception as e:
            logger.error(f"Counter store cleanup failed: {e}")
            continue
        if removed:
            logger.debug(f"Removed {removed} expired rate limit entries")


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[CounterStore] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    The counter store is built once here and shared by the middleware,
    per-route dependencies and the admin API.

    Args:
        settings: Settings to use; defaults to the environment-loaded ones.
        store: Pre-built counter store, e.g. a fake in tests.
        clock: Time source in seconds; defaults to the system clock.

    Returns:
        Configured FastAPI application instance

    Raises:
        ConfigError: If the tier overrides or route table are invalid.
    """
    config = settings or default_settings
    clock = clock or system_clock

    setup_logging(config)
    logger = get_logger(__name__)

    store = store or create_store(config, clock=clock)
    registry = PolicyRegistry.from_settings(config)
    key_deriver = KeyDeriver(prefix=config.rate_limit_key_prefix)
    limiter = RateLimiter(store, registry=registry, key_deriver=key_deriver, clock=clock)
    routes = RouteTierMap(ignored=config.rate_limit_ignored_routes, registry=registry)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Connect the store on startup; stop the sweep and close it on shutdown."""
        await limiter.store.ensure_ready()

        cleanup_task = None
        interval = config.memory_store_cleanup_interval_seconds
        if interval > 0:
            cleanup_task = asyncio.create_task(_cleanup_loop(limiter.store, interval, logger))

        logger.info(
            "Application startup complete",
            extra={
                "store": limiter.store.describe(),
                "tiers": registry.tiers(),
                "rate_limit_enabled": config.rate_limit_enabled,
            },
        )

        yield

        if cleanup_task is not None:
            cleanup_task.cancel()
            with suppress(asyncio.CancelledError):
                await cleanup_task

        await limiter.store.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Tollgate",
        description="Tiered request admission control with durable and in-process counter stores",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.rate_limiter = limiter
    app.state.rate_limit_routes = routes
    app.state.rate_limit_admin = RateLimitAdmin(store, key_deriver)

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(
        RateLimitMiddleware,
        limiter=limiter,
        routes=routes,
        enabled=config.rate_limit_enabled,
        include_headers=config.rate_limit_include_headers,
    )

    # Request ID middleware (outermost so rate limit logs carry the ID)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(admin_router)

    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        """Health check reporting the active counter store."""
        store_info = limiter.store.describe()
        status = "degraded" if store_info.get("state") == "degraded" else "ok"
        return {"status": status, "components": {"store": store_info}}

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_exceeded_handler(
        request: Request, exc: RateLimitExceededError
    ) -> JSONResponse:
        """Render RateLimitExceededError as the standard 429 response."""
        return build_rate_limit_response(exc.decision)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns a traceback to the client; debug mode adds the
        exception message and type.
        """
        request_id = getattr(request.state, "request_id", "unknown")

        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
                "traceback": traceback.format_exc(),
            },
        )

        if config.debug:
            return JSONResponse(
                status_code=500,
                content={
                    "error": "internal_error",
                    "message": str(exc),
                    "exception_type": type(exc).__name__,
                    "request_id": request_id,
                },
            )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "Internal server error",
                "request_id": request_id,
            },
        )

    return app


# Create the application instance
app = create_app()
