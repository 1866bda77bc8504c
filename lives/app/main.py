from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lives.app.api import admin_router, lives_router
from lives.app.core.config import settings
from lives.app.core.logging import get_logger, setup_logging
from lives.app.db import models  # noqa: F401 - import to register models
from lives.app.db.async_session import close_async_engine
from lives.app.db.init_db import init_database, verify_connection
from lives.app.exceptions import AuthenticationError, QuotaExhaustedError, QuotaStoreError
from lives.app.middleware.lives_gate import LivesGateMiddleware
from lives.app.middleware.request_id import RequestIdMiddleware, get_request_id
from lives.app.services.reset_scheduler import ResetScheduler, get_reset_scheduler


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan context manager.

        Creates tables and starts the daily reset scheduler on startup;
        stops the scheduler and disposes the engine on shutdown.
        """
        if not await verify_connection():
            logger.error("Database connection failed!")
            raise RuntimeError("Cannot connect to database")

        await init_database()

        scheduler = get_reset_scheduler()
        if settings.scheduler_enabled:
            await scheduler.start()

        logger.info(
            "Application startup complete",
            extra={
                "scheduler_enabled": settings.scheduler_enabled,
                "max_units": settings.max_units,
                "debug_mode": settings.debug,
            }
        )

        yield

        await scheduler.stop()
        await close_async_engine()

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Daily Lives Service",
        description="Per-learner daily lives with a scheduled reset",
        version="1.0.0",
        lifespan=lifespan
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(LivesGateMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
        max_age=600,
    )

    app.include_router(lives_router)
    app.include_router(admin_router)

    @app.get("/health")
    async def health(
        scheduler: ResetScheduler = Depends(get_reset_scheduler),
    ) -> dict[str, Any]:
        """Health check with database and reset scheduler status."""
        health_status = {
            "status": "ok",
            "components": {}
        }

        if await verify_connection():
            health_status["components"]["database"] = {"status": "ok"}
        else:
            health_status["status"] = "degraded"
            health_status["components"]["database"] = {"status": "error"}

        scheduler_status = scheduler.status()
        if scheduler_status.consecutive_failures >= scheduler.alert_threshold:
            health_status["status"] = "degraded"
        health_status["components"]["reset_scheduler"] = scheduler_status.to_dict()

        return health_status

    @app.exception_handler(QuotaExhaustedError)
    async def quota_exhausted_handler(request: Request, exc: QuotaExhaustedError) -> JSONResponse:
        """Handle QuotaExhaustedError and return HTTP 403 response."""
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    @app.exception_handler(QuotaStoreError)
    async def quota_store_error_handler(request: Request, exc: QuotaStoreError) -> JSONResponse:
        """Handle QuotaStoreError and return HTTP 503 response."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "quota_store_unavailable", "message": "Lives are temporarily unavailable"}
        )

    @app.exception_handler(AuthenticationError)
    async def auth_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
        """Handle AuthenticationError and return HTTP 401 response."""
        return JSONResponse(
            status_code=401,
            content={"error": "authentication_failed", "message": exc.detail}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns a traceback to the client; full details are logged.
        """
        request_id = get_request_id(request)

        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
            }
        )

        if settings.debug:
            return JSONResponse(
                status_code=500,
                content={
                    "error": "internal_error",
                    "message": str(exc),
                    "exception_type": type(exc).__name__,
                    "request_id": request_id,
                }
            )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "Internal server error",
                "request_id": request_id,
            }
        )

    return app


# Create the application instance
app = create_app()
