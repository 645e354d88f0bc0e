from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from superfan_api.core.settings import settings
from superfan_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .workers import HoldExpiryWorker


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    hold_worker = HoldExpiryWorker(
        session_factory=_session_factory,
        interval_seconds=settings.hold_expiry_interval_seconds,
        batch_size=settings.hold_expiry_batch_size,
    )
    app.state.hold_expiry_worker = hold_worker

    hold_worker_enabled = settings.hold_expiry_worker_enabled
    if hold_worker_enabled:
        hold_worker.start()
    else:
        logger.info(
            "Hold expiry worker disabled",
            reason="hold_expiry_worker_enabled is false",
        )

    try:
        yield
    finally:
        if hold_worker_enabled and hold_worker.is_running:
            await hold_worker.stop()


def create_app() -> FastAPI:
    """Application factory for the Superfan points API."""
    configure_logging(
        service_name=settings.otel_service_name,
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="Superfan API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name=settings.otel_service_name,
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
