"""
Run Ingest Engine - FastAPI Application

Main application entry point. Creates the FastAPI app, wires up routers,
opens the store and builds the service container on startup.

Run with: uvicorn backend.main:app --reload

Middleware order: RequestLoggingMiddleware is the only middleware; it assigns
the request id that error envelopes and log lines carry.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from . import __version__
from .container import build_container
from .core.config import Settings, configure_logging, get_settings, log_startup_diagnostics
from .core.errors import setup_error_handlers
from .core.metrics import InMemoryMetrics
from .core.middleware import RequestLoggingMiddleware
from .db import close_db_pool
from .routers import admin_router, health_router, ingest_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    - Startup: open the store and build the ServiceContainer on app.state
    - Shutdown: close the database pool (no-op for the memory store)
    """
    settings: Settings = app.state.settings

    logger.info(f"Starting Run Ingest Engine v{__version__}")
    log_startup_diagnostics(settings)

    app.state.container = await build_container(settings, metrics=app.state.metrics)
    if app.state.container.ready:
        logger.info(f"Store ready ({settings.STORE_BACKEND})")
    else:
        logger.error("Store unavailable - serving health endpoints only until restart")

    yield

    logger.info("Shutting down Run Ingest Engine...")
    await close_db_pool()
    logger.info("Shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application with:
    - Request logging middleware (request id, request/error counters)
    - Global exception handlers rendering the shared error envelope
    - Health, ingest and admin routers

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Run Ingest Engine",
        description=(
            "Multi-tenant test-run ingestion. Accepts CI test results per project "
            "and stores each run exactly once."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    metrics = InMemoryMetrics()
    app.state.settings = settings
    app.state.metrics = metrics

    app.add_middleware(RequestLoggingMiddleware, metrics=metrics)

    setup_error_handlers(app)

    # ==========================================================================
    # ROUTERS
    # ==========================================================================

    # Health check - no auth required, root-level for load balancers
    app.include_router(health_router)

    # v1 API - routers carry their own /api/v1 prefix
    app.include_router(ingest_router)
    app.include_router(admin_router)

    @app.get("/", tags=["root"])
    async def root() -> dict[str, str]:
        """Root endpoint - service info."""
        return {
            "service": "Run Ingest Engine",
            "version": __version__,
            "status": "running",
            "docs": "/docs",
        }

    logger.info(f"FastAPI app created: {app.title} (env={settings.environment})")

    return app


# Create the application instance
app = create_app()


# =============================================================================
# CLI Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "backend.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower(),
    )
