"""
Dashboard Endpoints

Snapshot retrieval, cache invalidation and breaker reset for the caller's
identity.
"""

from typing import Dict, Union

from fastapi import APIRouter, Depends, HTTPException, Query
import structlog

from unified_dashboard.models import Identity
from unified_dashboard.pipeline import AggregationOrchestrator, DashboardResult
from ..dependencies import get_identity, get_orchestrator

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/snapshot", response_model=DashboardResult)
async def get_snapshot(
    date_range: str = Query("30", description="today, 7, 30 or 90"),
    force_refresh: bool = Query(False, description="Bypass the cache"),
    identity: Identity = Depends(get_identity),
    orchestrator: AggregationOrchestrator = Depends(get_orchestrator),
) -> DashboardResult:
    """
    Aggregated snapshot with derived metrics.

    Always 200 once the date range is valid; failed sources show up in
    ``source_errors``.
    """
    try:
        return await orchestrator.get_aggregated_snapshot(identity, date_range, force_refresh=force_refresh)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.delete("/snapshot")
async def invalidate_snapshot(
    date_range: str = Query("30", description="today, 7, 30 or 90"),
    identity: Identity = Depends(get_identity),
    orchestrator: AggregationOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Union[str, bool]]:
    """Drop the cached snapshot for one date range"""
    try:
        removed = await orchestrator.invalidate(identity, date_range)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    logger.info("Snapshot invalidated", identity=identity.key, date_range=date_range, removed=removed)
    return {"identity": identity.key, "date_range": date_range, "removed": removed}


@router.post("/sources/retry")
async def retry_sources(
    identity: Identity = Depends(get_identity),
    orchestrator: AggregationOrchestrator = Depends(get_orchestrator),
) -> Dict[str, str]:
    """Close every source breaker for the caller so the next fetch tries again"""
    orchestrator.retry_all(identity)
    return {"identity": identity.key, "status": "reset"}
