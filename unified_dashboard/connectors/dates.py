"""
Client-side date window filtering.

Upstream list endpoints are not trusted to filter by date, so connectors
fetch everything and filter here. A record whose date is missing, the
``0000-00-00`` sentinel, or unparseable is kept.
"""

from datetime import datetime
from typing import Callable, Iterable, List, Optional, TypeVar, Union

from unified_dashboard.models import DateRange, window_start

T = TypeVar("T")

ZERO_DATE_PREFIX = "0000-00-00"

_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
    "%d %b %Y, %I:%M %p",
    "%d %b %Y %I:%M %p",
    "%d %b %Y",
    "%d-%m-%Y %H:%M:%S",
    "%d-%m-%Y",
)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse an upstream timestamp.

    Returns None for empty values, the zero-date sentinel and anything that
    matches none of the known formats.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value

    text = str(value).strip()
    if not text or text.startswith(ZERO_DATE_PREFIX):
        return None

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass

    for fmt in _FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def _aware(value: datetime) -> datetime:
    # Naive upstream timestamps are taken as server-local time
    return value if value.tzinfo is not None else value.astimezone()


def filter_by_window(
    records: Iterable[T],
    date_range: Optional[DateRange],
    get_date: Callable[[T], Optional[datetime]],
    now: Optional[datetime] = None,
) -> List[T]:
    """
    Keep records created inside the date window.

    Args:
        records: Normalized records
        date_range: ``"today"``, days back, or None for no filtering
        get_date: Extracts the parsed creation time of a record
        now: Reference time, defaults to the current local time
    """
    records = list(records)
    if not date_range:
        return records

    now = _aware(now) if now is not None else datetime.now().astimezone()
    boundary = window_start(date_range, now)

    kept = []
    for record in records:
        created = get_date(record)
        if created is None or _aware(created) >= boundary:
            kept.append(record)
    return kept
