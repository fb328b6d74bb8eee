"""
Domain Models Module
"""
from .records import Campaign, CustomerIdentity, LineItem, Order, PaymentMethod, Shipment
from .snapshot import (
    AggregatedSnapshot,
    DateRange,
    Identity,
    SourceError,
    SourceErrorKind,
    SourceName,
    STANDARD_DATE_RANGES,
    TODAY,
    cache_key,
    parse_date_range,
    window_start,
)

__all__ = [
    "AggregatedSnapshot",
    "Campaign",
    "CustomerIdentity",
    "DateRange",
    "Identity",
    "LineItem",
    "Order",
    "PaymentMethod",
    "Shipment",
    "SourceError",
    "SourceErrorKind",
    "SourceName",
    "STANDARD_DATE_RANGES",
    "TODAY",
    "cache_key",
    "parse_date_range",
    "window_start",
]
