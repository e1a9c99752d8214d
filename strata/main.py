"""STRATA — FastAPI Application Entry Point.

Multi-resolution progression store: raw snapshots roll up into hourly,
daily and weekly tiers; trend queries stitch the tiers back together.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from strata.api.progression_routes import router as progression_router
from strata.config import Settings, settings
from strata.core.logging import configure_logging, get_logger
from strata.database import mask_url, test_connection
from strata.scheduler.jobs import start_scheduler, stop_scheduler
from strata.services import ProgressionServices, build_services

logger = get_logger("main")


def create_app(
    app_settings: Optional[Settings] = None,
    services: Optional[ProgressionServices] = None,
) -> FastAPI:
    """Build the app. Pass `services` to reuse an existing service graph."""
    app_settings = app_settings or (services.settings if services else settings)
    configure_logging(app_settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown lifecycle."""
        logger.info("🚀 STRATA starting up...")
        svc = services or build_services(app_settings)
        if not test_connection(svc.store.engine):
            logger.error("❌ Database NOT connected — writes and queries will return empty results")
        svc.history.sync()
        app.state.services = svc
        start_scheduler(svc)
        yield
        stop_scheduler()
        if services is None:
            svc.shutdown()
        logger.info("STRATA shut down")

    app = FastAPI(
        title="STRATA",
        description="Multi-resolution progression store — ingest skill snapshots, compact them into hourly/daily/weekly tiers, query trends across all tiers.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.include_router(progression_router)

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "strata",
            "version": "1.0.0",
            "database": mask_url(app_settings.effective_database_url),
        }

    return app


app = create_app()
