"""
Aggregation pipeline: circuit breaker, orchestrator and background refresh.
"""

from .circuit_breaker import CircuitBreaker
from .orchestrator import AggregationOrchestrator, DashboardResult
from .refresh import CacheRefreshJob, RefreshSummary

__all__ = [
    "CircuitBreaker",
    "AggregationOrchestrator",
    "DashboardResult",
    "CacheRefreshJob",
    "RefreshSummary",
]
