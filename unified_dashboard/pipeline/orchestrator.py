"""
Aggregation Orchestrator

Serves one dashboard request: cache lookup, concurrent fan-out to the source
connectors, fan-in of partial results, cache write, reconciliation. Source
failures degrade the snapshot; they never fail the request.
"""

import asyncio
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

import structlog
from prometheus_client import Counter, Histogram
from pydantic import BaseModel, Field

from unified_dashboard.clock import Clock, utcnow
from unified_dashboard.config.accounts import AccountSettings, AccountSettingsStore, FeeSettings
from unified_dashboard.connectors import SourceConnector
from unified_dashboard.errors import ConfigurationMissing, SourceCoolingDown, SourceUnavailable
from unified_dashboard.models import (
    AggregatedSnapshot,
    DateRange,
    Identity,
    SourceError,
    SourceErrorKind,
    SourceName,
    parse_date_range,
)
from unified_dashboard.reconciliation import ReconciliationReport, reconcile, scope_to_vendor
from unified_dashboard.serving.cache import SnapshotCache
from .circuit_breaker import CircuitBreaker

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

SOURCE_FETCHES = Counter(
    "dashboard_source_fetches_total",
    "Source connector fetch attempts",
    ["source", "outcome"],
)

SOURCE_FETCH_SECONDS = Histogram(
    "dashboard_source_fetch_seconds",
    "Time spent in one source connector fetch",
    ["source"],
)

SNAPSHOT_REQUESTS = Counter(
    "dashboard_snapshot_requests_total",
    "Snapshot requests by cache outcome",
    ["cache"],
)


class DashboardResult(BaseModel):
    """What a dashboard request gets back"""
    snapshot: AggregatedSnapshot
    source_errors: Dict[str, SourceError] = Field(default_factory=dict)
    report: ReconciliationReport
    cache_hit: bool = False
    expires_at: Optional[datetime] = None


def _error_kind(error: BaseException) -> SourceErrorKind:
    if isinstance(error, ConfigurationMissing):
        return SourceErrorKind.NOT_CONFIGURED
    if isinstance(error, SourceCoolingDown):
        return SourceErrorKind.COOLING_DOWN
    return SourceErrorKind.UNAVAILABLE


class AggregationOrchestrator:
    """
    Coordinates connectors, cache, breaker and reconciliation.

    Example:
        orchestrator = AggregationOrchestrator(connectors, cache, store)
        result = await orchestrator.get_aggregated_snapshot(identity, 30)
    """

    def __init__(
        self,
        connectors: Sequence[SourceConnector],
        cache: SnapshotCache,
        settings_store: AccountSettingsStore,
        breaker: Optional[CircuitBreaker] = None,
        retry_attempts: int = 0,
        retry_backoff_seconds: float = 1.0,
        top_n: int = 10,
        clock: Clock = utcnow,
    ):
        self.connectors = list(connectors)
        self.cache = cache
        self.settings_store = settings_store
        self.breaker = breaker or CircuitBreaker(clock=clock)
        self.retry_attempts = retry_attempts
        self.retry_backoff_seconds = retry_backoff_seconds
        self.top_n = top_n
        self._clock = clock

    async def _fetch_source(
        self,
        connector: SourceConnector,
        identity: Identity,
        date_range: DateRange,
        account: AccountSettings,
    ) -> List[Any]:
        """
        Run one connector behind the breaker, retrying transient failures.

        Raises:
            ConfigurationMissing: No credentials; never retried or counted
            SourceCoolingDown: Breaker open
            SourceUnavailable: Fetch failed after all attempts
        """
        source = connector.name
        try:
            self.breaker.check(identity.key, source)
        except SourceCoolingDown:
            SOURCE_FETCHES.labels(source=source, outcome="cooling_down").inc()
            raise

        attempt = 0
        while True:
            started = time.perf_counter()
            try:
                records = await connector.fetch(identity, date_range, account)
            except ConfigurationMissing:
                SOURCE_FETCHES.labels(source=source, outcome="not_configured").inc()
                raise
            except SourceUnavailable:
                SOURCE_FETCHES.labels(source=source, outcome="failure").inc()
                if attempt < self.retry_attempts:
                    attempt += 1
                    logger.info("Retrying source", source=source, identity=identity.key, attempt=attempt)
                    await asyncio.sleep(self.retry_backoff_seconds * attempt)
                    continue
                self.breaker.record_failure(identity.key, source)
                raise
            except Exception as e:
                SOURCE_FETCHES.labels(source=source, outcome="failure").inc()
                logger.exception("Connector raised unexpectedly", source=source, identity=identity.key)
                self.breaker.record_failure(identity.key, source)
                raise SourceUnavailable(source, e) from e
            finally:
                SOURCE_FETCH_SECONDS.labels(source=source).observe(time.perf_counter() - started)

            self.breaker.record_success(identity.key, source)
            SOURCE_FETCHES.labels(source=source, outcome="success").inc()
            return records

    async def _aggregate(
        self,
        identity: Identity,
        date_range: DateRange,
        account: AccountSettings,
    ) -> AggregatedSnapshot:
        results = await asyncio.gather(
            *(self._fetch_source(connector, identity, date_range, account) for connector in self.connectors),
            return_exceptions=True,
        )

        records: Dict[str, List[Any]] = {}
        errors: Dict[str, SourceError] = {}
        for connector, result in zip(self.connectors, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                errors[connector.name] = SourceError(
                    source=connector.source,
                    kind=_error_kind(result),
                    message=str(result),
                )
                logger.warning(
                    "Source failed",
                    identity=identity.key,
                    source=connector.name,
                    kind=errors[connector.name].kind.value,
                    error=str(result),
                )
                records[connector.name] = []
            else:
                records[connector.name] = result

        return AggregatedSnapshot(
            identity_key=identity.key,
            date_range=date_range,
            orders=records.get(SourceName.ORDERS.value, []),
            shipments=records.get(SourceName.SHIPMENTS.value, []),
            campaigns=records.get(SourceName.ADS.value, []),
            source_errors=errors,
            fetched_at=self._clock(),
        )

    def _is_total_outage(self, snapshot: AggregatedSnapshot) -> bool:
        """Every source failed and none merely lacks configuration"""
        errors = snapshot.source_errors
        return (
            bool(self.connectors)
            and len(errors) == len(self.connectors)
            and all(error.kind != SourceErrorKind.NOT_CONFIGURED for error in errors.values())
        )

    async def _load_settings(self, identity: Identity) -> AccountSettings:
        """
        Account settings from the configuration store.

        Raises:
            SourceUnavailable: The store could not be read
        """
        try:
            return await self.settings_store.get_settings(identity)
        except Exception as e:
            logger.exception("Account settings unavailable", identity=identity.key)
            raise SourceUnavailable("settings", e) from e

    def _settings_failure_snapshot(
        self,
        identity: Identity,
        date_range: DateRange,
        error: SourceUnavailable,
    ) -> AggregatedSnapshot:
        """Every source fails when nothing is known about the account"""
        return AggregatedSnapshot(
            identity_key=identity.key,
            date_range=date_range,
            source_errors={
                connector.name: SourceError(
                    source=connector.source,
                    kind=SourceErrorKind.UNAVAILABLE,
                    message=str(error),
                )
                for connector in self.connectors
            },
            fetched_at=self._clock(),
        )

    def _result(
        self,
        identity: Identity,
        snapshot: AggregatedSnapshot,
        fees: FeeSettings,
        cache_hit: bool,
        expires_at: Optional[datetime],
    ) -> DashboardResult:
        """Reconcile the snapshot the identity is allowed to see"""
        if identity.vendor_scope:
            snapshot = scope_to_vendor(snapshot, identity.vendor_scope)
        return DashboardResult(
            snapshot=snapshot,
            source_errors=snapshot.source_errors,
            report=reconcile(snapshot, fees, self.top_n),
            cache_hit=cache_hit,
            expires_at=expires_at,
        )

    async def get_aggregated_snapshot(
        self,
        identity: Identity,
        date_range: Union[DateRange, str],
        force_refresh: bool = False,
    ) -> DashboardResult:
        """
        Snapshot and report for an identity and date range.

        A fresh cache entry is served without touching any connector unless
        ``force_refresh`` is set. Otherwise all connectors run concurrently
        and the result is cached, degraded or not, unless every source
        failed outright. Vendor-role identities get their vendor's share
        of the snapshot; the cache always holds the full one. An unreadable
        settings store degrades the result instead of failing it: cached
        snapshots are reported with default fees, and a refresh marks every
        source unavailable.

        Raises:
            ValueError: Invalid date range
        """
        date_range = parse_date_range(date_range)

        if not force_refresh:
            entry = await self.cache.get_entry(identity.key, date_range)
            if entry is not None:
                SNAPSHOT_REQUESTS.labels(cache="hit").inc()
                logger.info("Serving cached snapshot", identity=identity.key, date_range=date_range)
                try:
                    fees = (await self._load_settings(identity)).fees
                except SourceUnavailable:
                    logger.warning("Reporting cached snapshot with default fees", identity=identity.key)
                    fees = FeeSettings()
                return self._result(identity, entry.snapshot, fees, cache_hit=True, expires_at=entry.expires_at)

        SNAPSHOT_REQUESTS.labels(cache="refresh" if force_refresh else "miss").inc()
        try:
            account = await self._load_settings(identity)
        except SourceUnavailable as e:
            account = AccountSettings()
            snapshot = self._settings_failure_snapshot(identity, date_range, e)
        else:
            snapshot = await self._aggregate(identity, date_range, account)

        expires_at = None
        if self._is_total_outage(snapshot):
            logger.error(
                "All sources failed, keeping previous cache entry",
                identity=identity.key,
                date_range=date_range,
            )
        else:
            expires_at = await self.cache.put(identity.key, date_range, snapshot)

        logger.info(
            "Aggregated snapshot",
            identity=identity.key,
            date_range=date_range,
            orders=len(snapshot.orders),
            shipments=len(snapshot.shipments),
            campaigns=len(snapshot.campaigns),
            degraded=snapshot.is_degraded,
        )

        return self._result(identity, snapshot, account.fees, cache_hit=False, expires_at=expires_at)

    async def invalidate(self, identity: Identity, date_range: Union[DateRange, str]) -> bool:
        """Drop the cached snapshot so the next request recomputes it"""
        return await self.cache.invalidate(identity.key, parse_date_range(date_range))

    def retry_all(self, identity: Identity) -> None:
        """Close every breaker for the identity"""
        self.breaker.reset(identity.key)
