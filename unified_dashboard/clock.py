"""
Time helpers shared by the cache and the circuit breaker.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Naive UTC now, matching the naive DateTime columns of the cache table"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
