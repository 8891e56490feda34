"""FastAPI application entry-point for the router's admin surface.

Assembles routers, exception handlers, and lifecycle hooks around an
explicitly constructed ``ProviderRouter``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from provider_router import __version__
from provider_router.adapters.inbound.rest.routers import health_router, providers_router
from provider_router.config import Settings, get_settings
from provider_router.dependencies import build_router
from provider_router.shared.errors import register_exception_handlers
from provider_router.shared.observability import configure_logging
from provider_router.shared.providers.router import ProviderRouter

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifecycle — startup & shutdown hooks."""
    settings: Settings = app.state.settings
    configure_logging(log_level=settings.log_level, json_logs=settings.json_logs)
    logger.info("application_starting", slots=len(app.state.router.all_slots()))
    yield
    await app.state.router.close()
    logger.info("application_shutdown")


def create_app(
    settings: Settings | None = None,
    router: ProviderRouter | None = None,
) -> FastAPI:
    """Application factory — the app owns the router it serves."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Provider Router",
        description=(
            "Admin API for the LLM provider router: slot health, cooldowns, "
            "suspensions, forced-local mode and health probes."
        ),
        version=__version__,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.router = router or build_router(settings)

    register_exception_handlers(app)

    api_v1 = "/api/v1"
    app.include_router(health_router, prefix=api_v1)
    app.include_router(providers_router, prefix=api_v1)

    return app
