"""
Identity, Date Range and Snapshot Models
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from .records import Campaign, Order, Shipment

DateRange = Union[Literal["today"], int]

TODAY = "today"
STANDARD_DATE_RANGES = (TODAY, 7, 30, 90)


def parse_date_range(value: Union[str, int]) -> DateRange:
    """
    Validate a caller-supplied date range.

    Accepts ``"today"`` or one of 7, 30, 90 (as int or numeric string).

    Raises:
        ValueError: For any other value
    """
    if isinstance(value, str):
        value = value.strip().lower()
        if value == TODAY:
            return TODAY
        if not value.isdigit():
            raise ValueError(f"Invalid date range: {value!r}")
        value = int(value)
    if isinstance(value, bool) or value not in STANDARD_DATE_RANGES:
        raise ValueError(f"Date range must be one of {list(STANDARD_DATE_RANGES)}, got {value!r}")
    return value


def window_start(date_range: DateRange, now: datetime) -> datetime:
    """
    Lower bound of the records to keep.

    ``today`` means local midnight of ``now``; an integer means exactly that
    many 24h periods before ``now``.
    """
    if date_range == TODAY:
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    return now - timedelta(days=int(date_range))


def cache_key(date_range: DateRange) -> str:
    return f"snapshot_{date_range}"


class Identity(BaseModel):
    """
    Whose data is being aggregated, as supplied by the auth provider.

    ``vendor_name`` is the storefront vendor label the auth provider
    resolved for ``vendor_id``; vendor-role callers only see that vendor's
    line items.
    """
    user_id: str
    role: str = "user"
    company_id: Optional[str] = None
    vendor_id: Optional[str] = None
    vendor_name: Optional[str] = None

    @property
    def vendor_scope(self) -> Optional[str]:
        if self.role == "vendor" and self.vendor_name:
            return self.vendor_name
        return None

    @property
    def key(self) -> str:
        """Scope key used for cache rows and breaker state"""
        if self.company_id:
            return f"{self.user_id}:company:{self.company_id}"
        if self.vendor_id:
            return f"{self.user_id}:vendor:{self.vendor_id}"
        return self.user_id


class SourceName(str, Enum):
    """Upstream sources feeding a snapshot"""
    ORDERS = "orders"
    ADS = "ads"
    SHIPMENTS = "shipments"


class SourceErrorKind(str, Enum):
    """Why a source contributed no data"""
    NOT_CONFIGURED = "not_configured"
    UNAVAILABLE = "unavailable"
    COOLING_DOWN = "cooling_down"


class SourceError(BaseModel):
    """Per-source entry of the error manifest"""
    source: SourceName
    kind: SourceErrorKind
    message: str


class AggregatedSnapshot(BaseModel):
    """
    The cached unit of work for one (identity, date range) pair.

    A source that failed contributes an empty list and an entry in
    ``source_errors``; sources that succeeded have no entry.
    """
    identity_key: str
    date_range: DateRange
    orders: List[Order] = Field(default_factory=list)
    shipments: List[Shipment] = Field(default_factory=list)
    campaigns: List[Campaign] = Field(default_factory=list)
    source_errors: Dict[str, SourceError] = Field(default_factory=dict)
    fetched_at: datetime

    @property
    def is_degraded(self) -> bool:
        return bool(self.source_errors)
