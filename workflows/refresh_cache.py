"""
Prefect Workflow Orchestration - Dashboard Cache Refresh

Scheduled alternative to the in-process refresh loop: run with
``PIPELINE_REFRESH_ENABLED=false`` on the API and deploy this flow on an
interval instead.
"""

from dataclasses import asdict
from typing import List, Optional

from prefect import flow, task, get_run_logger

from unified_dashboard.config import get_settings
from unified_dashboard.config.logging import configure_logging
from unified_dashboard.database import close_database, get_session_factory, init_database
from unified_dashboard.database.settings_store import DatabaseSettingsStore
from unified_dashboard.pipeline import CacheRefreshJob
from unified_dashboard.pipeline.factory import (
    create_cache,
    create_http_client,
    create_orchestrator,
    create_refresh_job,
)
from unified_dashboard.serving.cache import close_redis


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="refresh_snapshots",
    description="Purge expired snapshots and force-refresh every configured account",
    retries=1,
    retry_delay_seconds=60,
)
async def refresh_snapshots(job: CacheRefreshJob) -> dict:
    logger = get_run_logger()

    summary = await job.run_once()

    logger.info(
        f"Refreshed {summary.refreshed} snapshots for {summary.identities} accounts "
        f"({summary.degraded} degraded, {summary.failed} failed, {summary.purged} purged)"
    )
    return asdict(summary)


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="refresh_dashboard_cache",
    description="Keep dashboard snapshots warm for configured accounts",
)
async def refresh_dashboard_cache(
    batch_size: Optional[int] = None,
    date_ranges: Optional[List[int]] = None,
) -> dict:
    """
    One refresh pass.

    Steps:
    1. Connect to the database and snapshot cache
    2. Purge expired snapshots
    3. Force-refresh each account and date range
    """
    settings = get_settings()
    configure_logging()

    await init_database()
    client = create_http_client(settings)
    try:
        session_factory = get_session_factory()
        cache = await create_cache(settings, session_factory)
        orchestrator = create_orchestrator(settings, client, cache, DatabaseSettingsStore(session_factory))

        job = create_refresh_job(settings, orchestrator)
        if batch_size is not None:
            job.batch_size = batch_size
        if date_ranges is not None:
            job.date_ranges = list(date_ranges)

        return await refresh_snapshots(job)
    finally:
        await client.aclose()
        await close_redis()
        await close_database()


# =============================================================================
# DEPLOYMENT CONFIGURATION
# =============================================================================

if __name__ == "__main__":
    import asyncio

    asyncio.run(refresh_dashboard_cache())
