"""
Application entry point.

Creates the FastAPI application and wires together:
- Routers (health, anomaly API)
- Error handlers (centralized domain-to-HTTP mapping)
- Rate limiting
- Logging configuration
- Pipeline loops (optional, when run_pipeline_in_api is set)

No business logic belongs here.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi.errors import RateLimitExceeded

from marketwatch.core.config import settings
from marketwatch.interfaces.anomaly.dependencies import (
    build_pipeline_scheduler,
    get_job_store,
    set_pipeline_scheduler,
)
from marketwatch.interfaces.anomaly.router import router as anomaly_router
from marketwatch.interfaces.health import router as health_router
from marketwatch.shared.errors.handlers import register_error_handlers
from marketwatch.shared.logging import configure_logging
from marketwatch.shared.security.rate_limiting import (
    limiter,
    rate_limit_exceeded_handler,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: prepare the job store, start/stop the loops."""
    get_job_store().init_schema()

    scheduler = None
    if settings.run_pipeline_in_api:
        scheduler = build_pipeline_scheduler()
        scheduler.start()
        set_pipeline_scheduler(scheduler)

    yield

    if scheduler is not None:
        scheduler.stop(wait=True)
        set_pipeline_scheduler(None)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Registers routers, error handlers, and rate limiting.
    This is the composition root of the application.

    Returns:
        A fully configured FastAPI application instance.
    """
    configure_logging(level=settings.log_level)

    app = FastAPI(
        title=settings.project_name,
        version=settings.version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # --- Rate Limiting ---
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # --- Error Handlers ---
    register_error_handlers(app)

    # --- Routers ---
    app.include_router(health_router, prefix="/api/v1")
    app.include_router(anomaly_router, prefix="/api/v1")

    return app


app = create_app()
