"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from rideon.auth.router import router as auth_router
from rideon.config import get_settings
from rideon.health.router import router as health_router
from rideon.invitations.router import router as invitations_router
from rideon.leaderboard.router import router as leaderboard_router
from rideon.middleware import setup_middleware
from rideon.mileage.router import router as mileage_router
from rideon.redis_client import close_redis, init_redis
from rideon.registration.router import router as registration_router
from rideon.usernames.router import router as usernames_router
from rideon.users.router import router as users_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_redis(settings.redis_url)
    logger.info("app_started", version=settings.app_version, environment=settings.environment)

    yield

    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="RideOn API",
        description="Backend API for RideOn, an invitation-only team cycling mileage tracker",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(registration_router)
    app.include_router(invitations_router)
    app.include_router(usernames_router)
    app.include_router(users_router)
    app.include_router(mileage_router)
    app.include_router(leaderboard_router)

    return app


app = create_app()
