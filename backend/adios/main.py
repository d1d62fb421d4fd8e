"""FastAPI entrypoint for the Just Adios backend."""

from __future__ import annotations

import logging

from fastapi import FastAPI

from . import database
from .config import get_settings
from .jobs import JobContext, JobRegistry, JobRuntime, register_periodic_jobs
from .routers import meetings_router, oauth_router, settings_router
from .webhook import router as webhook_router
from .zoom import ZoomClient

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Just Adios API",
    description="Ends Zoom meetings that run past their allowed length",
    version="1.0.0",
)

# Register routers
app.include_router(meetings_router)
app.include_router(settings_router)
app.include_router(oauth_router)
app.include_router(webhook_router, prefix="/webhooks", tags=["webhooks"])


@app.on_event("startup")
async def startup_event() -> None:
    """Initialize database, Zoom client and job runtime on startup."""
    logger.info("Starting Just Adios API...")
    settings = get_settings()
    settings.warn_if_incomplete()

    await database.init_db()
    logger.info("Database initialized")

    app.state.zoom = ZoomClient.from_settings(settings)
    runtime = JobRuntime(max_attempts=settings.job_max_attempts)
    app.state.runtime = runtime

    if database.async_session_maker is None:
        logger.warning("Running without database - background jobs are disabled")
        return

    runtime.bind(
        JobContext(
            session_maker=database.async_session_maker,
            zoom=app.state.zoom,
            runtime=runtime,
        )
    )
    if settings.cron_disabled:
        logger.info("Cron disabled")
    else:
        logger.info("Cron enabled")
        register_periodic_jobs(runtime)
    runtime.start()


@app.on_event("shutdown")
async def shutdown_event() -> None:
    runtime = getattr(app.state, "runtime", None)
    if runtime is not None:
        runtime.shutdown()
    zoom = getattr(app.state, "zoom", None)
    if zoom is not None:
        await zoom.aclose()


@app.get("/")
async def root() -> dict[str, object]:
    """Root endpoint with API info."""
    return {
        "name": "Just Adios API",
        "version": "1.0.0",
        "docs": "/docs",
        "jobs": JobRegistry.list_names(),
    }


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
