"""FastAPI application initialization and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.database import close_db, engine, init_db, ping_db
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    SERVICE_NAME,
    SERVICE_VERSION,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .routers import (
    booking_router,
    deals_router,
    health_router,
    metrics_router,
    settings_router,
    sync_router,
    webhooks_router,
)
from .workers.manager import worker_manager

setup_structured_logging()

logger = logging.getLogger(__name__)


async def _close_collaborators(app: FastAPI) -> None:
    for name in ("provider_client", "notification_gateway"):
        collaborator = getattr(app.state, name, None)
        if collaborator is not None:
            await collaborator.aclose()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Handles startup and shutdown events for the FastAPI application.
    """
    logger.info(
        "Starting FastAPI application",
        extra={"environment": settings.environment, "debug": settings.debug}
    )

    try:
        setup_tracing()
        setup_metrics()
        instrument_sqlalchemy(engine)
        logger.info("Observability setup completed")

        if not settings.is_production:
            await init_db()
            logger.info("Database initialized successfully")

        if settings.workers_enabled:
            await worker_manager.start_all()
            logger.info("Background workers started", extra={"workers": worker_manager.get_worker_status()})
    except Exception as e:
        logger.error("Failed to initialize application", extra={"error": str(e)}, exc_info=True)
        raise

    yield

    logger.info("Shutting down FastAPI application")

    try:
        await worker_manager.stop_all()
        await _close_collaborators(app)
        await close_db()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error("Error during application cleanup", extra={"error": str(e)}, exc_info=True)

    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Empty-Leg Engine",
        description=(
            "RPC-over-HTTP API for empty-leg charter inventory: provider reconciliation, "
            "deal expiry and the booking approval and payment lifecycle"
        ),
        version=SERVICE_VERSION,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "traceparent", "tracestate"],
    )

    setup_middleware(app)
    instrument_fastapi(app)

    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Health Check",
        response_model=dict,
    )
    async def health_check():
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "environment": settings.environment,
        }

    @app.get(
        "/ready",
        tags=["Health"],
        summary="Readiness Check",
        description="Verifies the database answers before traffic is routed here",
        response_model=dict,
    )
    async def readiness_check():
        try:
            database_ok = await ping_db()
        except Exception as e:
            logger.warning("Readiness check failed", extra={"error": str(e)})
            database_ok = False

        body = {
            "status": "ready" if database_ok else "not_ready",
            "service": SERVICE_NAME,
            "checks": {
                "database": "ok" if database_ok else "unavailable",
                "workers": worker_manager.get_worker_status(),
            },
        }
        return JSONResponse(
            status_code=status.HTTP_200_OK if database_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
            content=body,
        )

    @app.get(
        "/info",
        status_code=status.HTTP_200_OK,
        tags=["Info"],
        summary="Service Information",
        response_model=dict,
    )
    async def service_info():
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "environment": settings.environment,
            "provider": settings.provider_base_url,
            "notification_gateway": settings.notification_gateway,
            "features": {
                "auto_expire_overdue_bookings": settings.auto_expire_overdue_bookings,
                "enforce_payment_deadline": settings.enforce_payment_deadline,
                "require_payment_evidence": settings.require_payment_evidence,
                "workers_enabled": settings.workers_enabled,
            },
        }

    app.include_router(health_router)
    app.include_router(sync_router)
    app.include_router(deals_router)
    app.include_router(booking_router)
    app.include_router(webhooks_router)
    app.include_router(settings_router)
    app.include_router(metrics_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "emptyleg.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
