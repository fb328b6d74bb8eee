"""
Pipeline assembly from application settings.

Shared by the API lifespan and the Prefect refresh flow.
"""

from datetime import timedelta
from typing import Optional

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from unified_dashboard.config.settings import Settings
from unified_dashboard.connectors import AdsConnector, OrdersConnector, ShipmentsConnector
from unified_dashboard.database.settings_store import DatabaseSettingsStore
from unified_dashboard.serving.cache import (
    DatabaseSnapshotCache,
    RedisSnapshotCache,
    SnapshotCache,
    init_redis,
)
from .circuit_breaker import CircuitBreaker
from .orchestrator import AggregationOrchestrator
from .refresh import CacheRefreshJob

logger = structlog.get_logger(__name__)


def create_http_client(settings: Settings) -> httpx.AsyncClient:
    """Shared client for all connectors"""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.connectors.http_timeout_seconds),
        headers={"User-Agent": f"{settings.app_name}/{settings.version}"},
    )


async def create_cache(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
) -> SnapshotCache:
    ttl = timedelta(minutes=settings.pipeline.cache_ttl_minutes)
    if settings.pipeline.cache_backend == "redis":
        client = await init_redis()
        logger.info("Using Redis snapshot cache", ttl_minutes=settings.pipeline.cache_ttl_minutes)
        return RedisSnapshotCache(client, ttl=ttl)
    logger.info("Using database snapshot cache", ttl_minutes=settings.pipeline.cache_ttl_minutes)
    return DatabaseSnapshotCache(session_factory, ttl=ttl)


def create_orchestrator(
    settings: Settings,
    client: httpx.AsyncClient,
    cache: SnapshotCache,
    settings_store: DatabaseSettingsStore,
    breaker: Optional[CircuitBreaker] = None,
) -> AggregationOrchestrator:
    pipeline = settings.pipeline
    connectors = [
        OrdersConnector(client, settings.connectors),
        AdsConnector(client, settings.connectors, settings_store=settings_store),
        ShipmentsConnector(client, settings.connectors),
    ]
    return AggregationOrchestrator(
        connectors=connectors,
        cache=cache,
        settings_store=settings_store,
        breaker=breaker or CircuitBreaker(
            failure_threshold=pipeline.breaker_failure_threshold,
            cooldown=timedelta(minutes=pipeline.breaker_cooldown_minutes),
        ),
        retry_attempts=pipeline.source_retry_attempts,
        retry_backoff_seconds=pipeline.source_retry_backoff_seconds,
        top_n=pipeline.top_n,
    )


def create_refresh_job(
    settings: Settings,
    orchestrator: AggregationOrchestrator,
) -> CacheRefreshJob:
    pipeline = settings.pipeline
    return CacheRefreshJob(
        orchestrator=orchestrator,
        settings_store=orchestrator.settings_store,
        cache=orchestrator.cache,
        batch_size=pipeline.refresh_batch_size,
        date_ranges=pipeline.refresh_date_ranges,
        interval_seconds=pipeline.refresh_interval_minutes * 60,
    )
