"""
Background Cache Refresh

Keeps the snapshot cache warm for configured accounts so interactive
requests mostly hit the cache. Each (identity, date range) is refreshed
independently; one failure never aborts the batch.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import structlog

from unified_dashboard.config.accounts import AccountSettingsStore
from unified_dashboard.models import DateRange
from unified_dashboard.serving.cache import SnapshotCache
from .orchestrator import AggregationOrchestrator

logger = structlog.get_logger(__name__)

DEFAULT_DATE_RANGES: Tuple[DateRange, ...] = (7, 30, 90)


@dataclass
class RefreshSummary:
    """Outcome of one refresh pass"""
    identities: int = 0
    refreshed: int = 0
    degraded: int = 0
    failed: int = 0
    purged: int = 0
    duration_seconds: float = 0.0
    failures: List[str] = field(default_factory=list)


class CacheRefreshJob:
    """
    Periodic refresh of cached snapshots.

    Example:
        job = CacheRefreshJob(orchestrator, store, cache)
        summary = await job.run_once()
    """

    def __init__(
        self,
        orchestrator: AggregationOrchestrator,
        settings_store: AccountSettingsStore,
        cache: SnapshotCache,
        batch_size: int = 100,
        date_ranges: Sequence[DateRange] = DEFAULT_DATE_RANGES,
        interval_seconds: float = 300.0,
    ):
        self.orchestrator = orchestrator
        self.settings_store = settings_store
        self.cache = cache
        self.batch_size = batch_size
        self.date_ranges = list(date_ranges)
        self.interval_seconds = interval_seconds

    async def run_once(self) -> RefreshSummary:
        """
        One pass: purge expired entries, then force-refresh every
        identity/range combination in sequence.
        """
        started = time.perf_counter()
        summary = RefreshSummary()

        summary.purged = await self.cache.purge_expired()
        identities = await self.settings_store.list_identities(self.batch_size)
        summary.identities = len(identities)

        logger.info("Cache refresh started", identities=len(identities), date_ranges=self.date_ranges)

        for identity in identities:
            for date_range in self.date_ranges:
                try:
                    result = await self.orchestrator.get_aggregated_snapshot(
                        identity, date_range, force_refresh=True
                    )
                except Exception as e:
                    summary.failed += 1
                    summary.failures.append(f"{identity.key}/{date_range}: {e}")
                    logger.error(
                        "Cache refresh failed",
                        identity=identity.key,
                        date_range=date_range,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    continue

                summary.refreshed += 1
                if result.snapshot.is_degraded:
                    summary.degraded += 1

        summary.duration_seconds = round(time.perf_counter() - started, 3)
        logger.info(
            "Cache refresh completed",
            identities=summary.identities,
            refreshed=summary.refreshed,
            degraded=summary.degraded,
            failed=summary.failed,
            purged=summary.purged,
            duration_seconds=summary.duration_seconds,
        )
        return summary

    async def run_forever(self, max_runs: Optional[int] = None) -> None:
        """Run passes every ``interval_seconds`` until cancelled"""
        runs = 0
        while max_runs is None or runs < max_runs:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Cache refresh pass crashed")
            runs += 1
            if max_runs is not None and runs >= max_runs:
                break
            await asyncio.sleep(self.interval_seconds)
