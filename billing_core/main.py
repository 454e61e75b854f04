"""FastAPI application entry point and lifecycle management."""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from billing_core.config import Config, get_config
from billing_core.container import build_container
from billing_core.logging_config import configure_logging, get_logger
from billing_core.middleware import ContextMiddleware, RequestLoggingMiddleware
from billing_core.models import HealthResponse
from billing_core.services.time_controller import TimeController

logger = get_logger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the container (migrate, seed, wire), start the scheduler, and tear down on exit."""
    logger.info("billing_core_starting", version=VERSION)

    config = app.state.config or get_config()
    container = build_container(config, time_controller=app.state.time_controller)
    app.state.container = container
    container.start()
    logger.info("billing_core_started", status="ready")
    try:
        yield
    finally:
        logger.info("billing_core_shutting_down")
        container.shutdown()
        logger.info("billing_core_stopped")


def create_app(config: Optional[Config] = None, time_controller: Optional[TimeController] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Nothing touches the store until the lifespan runs.

    Args:
        config: configuration to use (default: global get_config() at startup)
        time_controller: clock to use (default: real time)
    """
    log_level = os.getenv("LOG_LEVEL", "INFO")
    json_format = os.getenv("LOG_FORMAT", "json").lower() == "json"
    configure_logging(log_level=log_level, json_format=json_format)

    app = FastAPI(
        title="Billing Core",
        description="Recurring billing scheduler, invoice generation and payment fulfillment",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.time_controller = time_controller

    include_request_details = os.getenv("LOG_REQUEST_DETAILS", "true").lower() == "true"
    app.add_middleware(RequestLoggingMiddleware, include_request_details=include_request_details)
    app.add_middleware(ContextMiddleware)

    from billing_core.api.billing import router as billing_router
    from billing_core.api.control import router as control_router

    app.include_router(billing_router)
    app.include_router(control_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        logger.debug("root_endpoint_called")
        return {"service": "billing-core", "status": "running", "version": VERSION}

    @app.get("/health", response_model=HealthResponse)
    def health(request: Request) -> HealthResponse:
        """Detailed health check."""
        container = request.app.state.container
        database_status = "ok"
        try:
            with container.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("health_database_error", error=str(e))
            database_status = "error"

        return HealthResponse(
            status="healthy" if database_status == "ok" else "degraded",
            database=database_status,
            scheduler_running=container.scheduler.is_running,
            current_time=container.time_controller.now(),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"error": "internal_server_error", "message": "An unexpected error occurred"},
        )

    logger.info("app_created", endpoints=len(app.routes))
    return app


app = create_app()
