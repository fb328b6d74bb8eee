"""
Pipeline Error Taxonomy

Connector failures are recovered by the orchestrator and reported in the
snapshot's error manifest; they never fail a dashboard request.
"""

from datetime import datetime
from typing import Optional


class DashboardPipelineError(Exception):
    """Base class for pipeline errors"""


class SourceUnavailable(DashboardPipelineError):
    """A source connector could not complete its fetch"""

    def __init__(self, source: str, cause: Optional[object] = None):
        self.source = source
        self.cause = cause
        super().__init__(f"{source} unavailable: {cause}" if cause else f"{source} unavailable")


class ConfigurationMissing(SourceUnavailable):
    """No credentials are configured for a source"""

    def __init__(self, source: str, identity_key: str, detail: Optional[str] = None):
        self.identity_key = identity_key
        super().__init__(source, detail or "credentials not configured")


class SourceCoolingDown(SourceUnavailable):
    """The circuit breaker is holding calls to a repeatedly failing source"""

    def __init__(self, source: str, until: datetime):
        self.until = until
        super().__init__(source, f"cooling down until {until.isoformat()}")
