"""
FastAPI Production Application

Main entry point for the Unified Dashboard API.
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI
import structlog

from unified_dashboard.config import get_settings
from unified_dashboard.config.logging import configure_logging
from unified_dashboard.database import close_database, get_session_factory, init_database
from unified_dashboard.database.settings_store import DatabaseSettingsStore
from unified_dashboard.pipeline.factory import (
    create_cache,
    create_http_client,
    create_orchestrator,
    create_refresh_job,
)
from unified_dashboard.serving.api import create_api_app
from unified_dashboard.serving.cache import close_redis

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    configure_logging()

    logger.info("Starting Unified Dashboard API", environment=settings.app_env)

    await init_database(create_tables=settings.is_development)
    session_factory = get_session_factory()

    client = create_http_client(settings)
    cache = await create_cache(settings, session_factory)
    store = DatabaseSettingsStore(session_factory)
    orchestrator = create_orchestrator(settings, client, cache, store)
    app.state.orchestrator = orchestrator

    refresh_task = None
    if settings.pipeline.refresh_enabled:
        job = create_refresh_job(settings, orchestrator)
        refresh_task = asyncio.create_task(job.run_forever())
        logger.info("Background cache refresh started", interval_minutes=settings.pipeline.refresh_interval_minutes)

    yield

    logger.info("Shutting down...")
    if refresh_task is not None:
        refresh_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await refresh_task
    app.state.orchestrator = None
    await client.aclose()
    await close_redis()
    await close_database()


app = create_api_app(lifespan=lifespan)


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
