"""
ASGI entry point: `uvicorn events_platform.main:app`.

Wires the event, ticket and payment routers under /api/v1, the request
correlation middleware, the AppError handlers, plus /health and /metrics.
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from events_platform.api.middleware import RequestLoggingMiddleware
from events_platform.api.router import api_router
from events_platform.core.config import Settings, get_settings
from events_platform.core.exceptions import register_exception_handlers
from events_platform.core.logging import get_logger, setup_logging
from events_platform.core.metrics import metrics_endpoint
from events_platform.db.session import engine, get_db
from events_platform.services.cache_service import close_redis, get_cache_stats, get_redis

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    setup_logging(settings)
    logger.info(
        "application_starting",
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        payments_enabled=settings.payments_enabled,
        email_enabled=settings.email_enabled,
    )
    if not settings.payments_enabled:
        logger.warning("stripe_not_configured")
    if await get_redis() is None:
        logger.warning("cache_disabled", redis_enabled=settings.REDIS_ENABLED)

    yield

    await close_redis()
    await engine.dispose()
    logger.info("application_stopped")


def create_app(settings: Settings) -> FastAPI:
    application = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Event registration with capacity-safe admission and payment reconciliation",
        lifespan=lifespan,
    )
    application.state.settings = settings

    # Only the ticketing frontend calls this API from a browser
    application.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    application.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(application)
    application.include_router(api_router)

    @application.get("/health", tags=["Health"])
    async def health_check(db: AsyncSession = Depends(get_db)):
        """Liveness plus a database round trip; the cache is reported, never required."""
        try:
            await db.execute(text("SELECT 1"))
            database = "ok"
        except SQLAlchemyError as exc:
            logger.error("health_database_unreachable", error=str(exc))
            database = "unreachable"
        return {
            "status": "healthy" if database == "ok" else "degraded",
            "version": settings.APP_VERSION,
            "database": database,
            "cache": await get_cache_stats(),
        }

    @application.get("/metrics", tags=["Health"], include_in_schema=False)
    async def metrics():
        return metrics_endpoint()

    return application


app = create_app(get_settings())
