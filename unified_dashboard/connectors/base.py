"""
Source Connector Base

Every connector wraps one upstream API: authentication, pagination until
exhaustion, and raw-to-normalized mapping. A connector either completes its
full sweep or raises ``SourceUnavailable``; it never retries on its own.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
import structlog

from unified_dashboard.config.accounts import AccountSettings
from unified_dashboard.errors import SourceUnavailable
from unified_dashboard.models import DateRange, Identity, SourceName

logger = structlog.get_logger(__name__)


def to_float(value: Any) -> float:
    """Parse an upstream numeric field, treating blanks and junk as 0"""
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def to_int(value: Any) -> int:
    return int(to_float(value))


def to_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


class SourceConnector(ABC):
    """
    Abstract base class for source connectors.

    Subclasses implement ``fetch``; ``_request`` turns transport errors,
    non-success statuses and malformed bodies into ``SourceUnavailable``.
    """

    source: SourceName

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    @property
    def name(self) -> str:
        return self.source.value

    @abstractmethod
    async def fetch(
        self,
        identity: Identity,
        date_range: DateRange,
        account: AccountSettings,
    ) -> List[Any]:
        """Fetch and normalize the full record set for the date window"""

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Source request failed", source=self.name, error=str(e), error_type=type(e).__name__)
            raise SourceUnavailable(self.name, e) from e

        if response.is_error:
            body = response.text[:500]
            logger.warning(
                "Source returned an error status",
                source=self.name,
                status_code=response.status_code,
                body=body,
            )
            raise SourceUnavailable(self.name, f"HTTP {response.status_code}: {body}")

        return response

    def _json(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise SourceUnavailable(self.name, f"invalid JSON body: {e}") from e
        if not isinstance(data, dict):
            raise SourceUnavailable(self.name, "unexpected response shape")
        return data
