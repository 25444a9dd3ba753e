"""
FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from job_engine import __version__
from job_engine.api.errors import register_exception_handlers
from job_engine.api.routes import health_router, jobs_router
from job_engine.config import get_settings
from job_engine.db import close_db, get_engine, init_db
from job_engine.observability.logging import setup_logging
from job_engine.observability.metrics import setup_metrics
from job_engine.observability.tracing import (
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_tracing,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    setup_logging()
    setup_metrics()
    setup_tracing()
    await init_db()
    instrument_sqlalchemy(get_engine().sync_engine)

    logger.info("Application started")

    yield

    # Shutdown
    await close_db()
    logger.info("Application shutdown")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: The configured application instance.
    """
    app = FastAPI(
        title="Job Engine API",
        description="Durable job queue with atomic claims, retries and stale-claim recovery",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(health_router)
    app.include_router(jobs_router)

    # Instrument with OpenTelemetry
    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()
    app = create_app()

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    run()
