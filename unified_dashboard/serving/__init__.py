"""
Serving Module
"""
from .cache import (
    CacheEntry,
    DatabaseSnapshotCache,
    RedisSnapshotCache,
    SnapshotCache,
    close_redis,
    get_redis,
    init_redis,
)

__all__ = [
    "init_redis",
    "close_redis",
    "get_redis",
    "CacheEntry",
    "SnapshotCache",
    "RedisSnapshotCache",
    "DatabaseSnapshotCache",
]
