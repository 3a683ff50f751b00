"""
Application Entry Point

Defines the FastAPI application, registers routers and global exception
handling, and provides a test-friendly application factory.
"""

from __future__ import annotations

import logging
from fastapi import FastAPI

from .config import settings
from .core.errors import reference_not_found_handler, unhandled_exception_handler
from .recommend.references import ReferenceNotFoundError

from .api import (
    health_routes,
    metrics_routes,
    recommendation_routes,
    seeder_routes,
)
from .api.dependencies import get_seeding_orchestrator


logger = logging.getLogger("nextwatch.app")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    app = FastAPI(
        title="nextwatch",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # --------------------------------------------------------------
    # Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(ReferenceNotFoundError, reference_not_found_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(recommendation_routes.router)
    app.include_router(seeder_routes.router)
    app.include_router(metrics_routes.router)

    # --------------------------------------------------------------
    # Startup Validation Hook
    # --------------------------------------------------------------

    @app.on_event("startup")
    async def _startup_validation() -> None:
        """
        Check critical configuration before the first request is served.
        """
        logger.info("Starting nextwatch")

        if not settings.openai_api_key.get_secret_value():
            logger.warning("OPENAI_API_KEY is not set; embeddings and explanations will fail")
        if not settings.tmdb_api_key.get_secret_value():
            logger.warning("TMDB_API_KEY is not set; seeding and title lookup will fail")

        logger.info("Configuration validated")

    # --------------------------------------------------------------
    # Shutdown Hook
    # --------------------------------------------------------------

    @app.on_event("shutdown")
    async def _shutdown_cleanup() -> None:
        """
        Stop a running seeding pass and let it finish its shutdown sequence.
        """
        orchestrator = get_seeding_orchestrator()
        if orchestrator.is_running:
            logger.info("Stopping in-progress seeding run")
            orchestrator.request_stop()
            await orchestrator.wait()
        logger.info("Shutting down nextwatch")

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
