"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from echat.auth.router import router as auth_router
from echat.chat.router import router as chat_router
from echat.config import get_settings
from echat.devices.router import router as devices_router
from echat.health.router import router as health_router
from echat.middleware import setup_middleware
from echat.services.factory import ServiceRegistry
from echat.users.router import router as users_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the service registry on startup and close its stores on shutdown.

    A registry already placed on ``app.state`` (tests) is used as is.
    """
    settings = get_settings()
    owned = getattr(app.state, "registry", None) is None
    if owned:
        app.state.registry = ServiceRegistry(settings)
    registry: ServiceRegistry = app.state.registry

    region = registry.configured_region
    if region is not None:
        # Fail fast on missing credentials for the deployment region.
        await registry.for_region(region)
    logger.info("app_started", region=region.value if region else "auto", environment=settings.environment)

    yield

    if owned:
        await registry.close()
        app.state.registry = None
    logger.info("app_stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Enterprise Chat Core API",
        description="Region-aware chat backend: users, privacy, permissions, verification codes and devices",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(chat_router)
    app.include_router(devices_router)

    return app
