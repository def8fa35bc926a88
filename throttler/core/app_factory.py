"""Application factory for the FastAPI app.

Centralizes app construction (limiters, middleware, handlers, routers) so
tests can build isolated apps with their own limiters and clocks.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from throttler.api.routes import health_router, limits_router
from throttler.core.config import ThrottleSettings, settings
from throttler.core.exception_handlers import setup_exception_handlers
from throttler.core.logging import configure_logging
from throttler.core.middleware import request_id_middleware
from throttler.core.openapi import apply_openapi_customizations
from throttler.core.rate_limit import RequestThrottler, create_limiters

logger = logging.getLogger(__name__)

# Limiters the bundled routers depend on
REQUIRED_LIMITERS = frozenset({"standard"})


def create_app(
    *,
    throttle_settings: ThrottleSettings | None = None,
    limiters: dict[str, RequestThrottler] | None = None,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        throttle_settings: Settings for the named limiters; defaults to global settings.
        limiters: Prebuilt limiters, used instead of building them from settings.
        configure_logs: Configure the root logger from settings.

    Returns:
        Configured FastAPI app. Limiter sweepers stop when the app shuts down.

    Raises:
        ValueError: If ``limiters`` lacks a limiter the bundled routes use.
    """
    # Logging first so subsequent init logs are formatted as desired
    if configure_logs:
        configure_logging(settings.log)

    app_limiters = limiters if limiters is not None else create_limiters(throttle_settings)
    missing = sorted(REQUIRED_LIMITERS - set(app_limiters))
    if missing:
        raise ValueError(f"missing required limiters: {', '.join(missing)}")

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "app.startup",
            extra={
                "limiters": sorted(app_limiters),
                "throttle_enabled": {name: limiter.enabled for name, limiter in app_limiters.items()},
            },
        )
        try:
            yield
        finally:
            for limiter in app_limiters.values():
                limiter.close()
            logger.info("app.shutdown")

    app = FastAPI(
        title="Request Throttler",
        description=(
            "Fixed-window request throttling for HTTP APIs. Throttled routes "
            "return X-RateLimit-Limit, X-RateLimit-Remaining and "
            "X-RateLimit-Reset headers, and 429 with Retry-After once a "
            "caller's quota for the window is used up."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )
    app.state.limiters = app_limiters

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(limits_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
