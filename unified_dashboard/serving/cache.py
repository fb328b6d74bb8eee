"""
Snapshot Cache Module

Keyed, TTL-based store for aggregated snapshots with:
- Lazy expiry (an expired entry reads as a miss)
- Unconditional last-write-wins overwrites
- Explicit invalidation for forced refreshes

Two backends share one contract: Redis (SETEX swaps the whole value) and
the ``api_cache`` table (single-statement upsert).
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import structlog
from redis.asyncio import Redis, ConnectionPool
from sqlalchemy import and_, delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from unified_dashboard.clock import Clock, utcnow
from unified_dashboard.config import get_settings
from unified_dashboard.database.connection import session_scope
from unified_dashboard.database.models import ApiCache
from unified_dashboard.models import AggregatedSnapshot, DateRange, cache_key

logger = structlog.get_logger(__name__)

DEFAULT_TTL = timedelta(minutes=10)


@dataclass
class CacheEntry:
    """A live cache entry and when it stops being served"""
    snapshot: AggregatedSnapshot
    expires_at: datetime


# Global Redis connection
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


async def init_redis() -> Redis:
    """Initialize Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client is not None:
        return _redis_client

    settings = get_settings()
    _redis_pool = ConnectionPool.from_url(
        settings.redis.get_url(),
        max_connections=settings.redis.max_connections,
        socket_timeout=settings.redis.socket_timeout,
        decode_responses=settings.redis.decode_responses,
    )

    _redis_client = Redis(connection_pool=_redis_pool)

    try:
        await _redis_client.ping()
        logger.info("Redis connection established")
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        raise

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None

    if _redis_pool:
        await _redis_pool.disconnect()
        _redis_pool = None

    logger.info("Redis connection closed")


def get_redis() -> Redis:
    """Get Redis client instance"""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


class SnapshotCache(ABC):
    """
    Cache contract for aggregated snapshots.

    Example:
        cache = DatabaseSnapshotCache(get_session_factory())
        await cache.put("u1", 30, snapshot)
        snapshot = await cache.get("u1", 30)
    """

    def __init__(self, ttl: timedelta = DEFAULT_TTL, clock: Clock = utcnow):
        self.ttl = ttl
        self._clock = clock

    @abstractmethod
    async def get_entry(self, identity_key: str, date_range: DateRange) -> Optional[CacheEntry]:
        """Cached entry, or None when missing or expired"""

    async def get(self, identity_key: str, date_range: DateRange) -> Optional[AggregatedSnapshot]:
        """Cached snapshot, or None when missing or expired"""
        entry = await self.get_entry(identity_key, date_range)
        return entry.snapshot if entry is not None else None

    @abstractmethod
    async def put(self, identity_key: str, date_range: DateRange, snapshot: AggregatedSnapshot) -> datetime:
        """Overwrite the entry; returns its expiry"""

    @abstractmethod
    async def invalidate(self, identity_key: str, date_range: DateRange) -> bool:
        """Drop the entry; True if one existed"""

    async def purge_expired(self) -> int:
        """Remove expired entries; backends with native expiry have nothing to do"""
        return 0


class RedisSnapshotCache(SnapshotCache):
    """
    Redis-backed snapshot cache.

    The envelope carries its own ``expires_at`` so expiry is decided by the
    injected clock; the Redis TTL only reclaims memory.
    """

    def __init__(
        self,
        client: Redis,
        namespace: str = "snapshot",
        ttl: timedelta = DEFAULT_TTL,
        clock: Clock = utcnow,
    ):
        super().__init__(ttl=ttl, clock=clock)
        self._client = client
        self.namespace = namespace

    def _key(self, identity_key: str, date_range: DateRange) -> str:
        """Generate namespaced key"""
        return f"{self.namespace}:{identity_key}:{cache_key(date_range)}"

    async def get_entry(self, identity_key: str, date_range: DateRange) -> Optional[CacheEntry]:
        key = self._key(identity_key, date_range)
        value = await self._client.get(key)
        if value is None:
            logger.debug("Cache miss", key=key)
            return None

        try:
            envelope = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable cache entry", key=key)
            return None

        expires_at = datetime.fromisoformat(envelope["expires_at"])
        if expires_at <= self._clock():
            logger.debug("Cache entry expired", key=key)
            return None

        logger.debug("Cache hit", key=key)
        return CacheEntry(AggregatedSnapshot.model_validate(envelope["snapshot"]), expires_at)

    async def put(self, identity_key: str, date_range: DateRange, snapshot: AggregatedSnapshot) -> datetime:
        now = self._clock()
        expires_at = now + self.ttl
        envelope: Dict[str, Any] = {
            "identity": identity_key,
            "cache_key": cache_key(date_range),
            "cached_at": now.isoformat(),
            "expires_at": expires_at.isoformat(),
            "snapshot": snapshot.model_dump(mode="json"),
        }
        await self._client.setex(
            self._key(identity_key, date_range),
            int(self.ttl.total_seconds()),
            json.dumps(envelope, default=str),
        )
        return expires_at

    async def invalidate(self, identity_key: str, date_range: DateRange) -> bool:
        result = await self._client.delete(self._key(identity_key, date_range))
        return result > 0


class DatabaseSnapshotCache(SnapshotCache):
    """
    Snapshot cache stored in the ``api_cache`` table.

    Writes are a single INSERT .. ON CONFLICT DO UPDATE on
    (identity_key, cache_key), so concurrent writers never leave a mixed row.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ttl: timedelta = DEFAULT_TTL,
        clock: Clock = utcnow,
    ):
        super().__init__(ttl=ttl, clock=clock)
        self._session_factory = session_factory

    @staticmethod
    def _insert(dialect_name: str):
        if dialect_name == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect_name == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            raise RuntimeError(f"Unsupported database dialect for cache upsert: {dialect_name}")
        return insert

    async def get_entry(self, identity_key: str, date_range: DateRange) -> Optional[CacheEntry]:
        key = cache_key(date_range)
        query = select(ApiCache).where(
            and_(
                ApiCache.identity_key == identity_key,
                ApiCache.cache_key == key,
                ApiCache.expires_at > self._clock(),
            )
        )
        async with session_scope(self._session_factory) as db:
            result = await db.execute(query)
            row = result.scalars().first()

        if row is None:
            logger.debug("Cache miss", identity=identity_key, cache_key=key)
            return None

        logger.debug("Cache hit", identity=identity_key, cache_key=key)
        return CacheEntry(AggregatedSnapshot.model_validate(row.cache_data), row.expires_at)

    async def put(self, identity_key: str, date_range: DateRange, snapshot: AggregatedSnapshot) -> datetime:
        now = self._clock()
        expires_at = now + self.ttl
        payload = snapshot.model_dump(mode="json")

        async with session_scope(self._session_factory) as db:
            insert = self._insert(db.get_bind().dialect.name)
            stmt = insert(ApiCache).values(
                identity_key=identity_key,
                cache_key=cache_key(date_range),
                cache_data=payload,
                cached_at=now,
                expires_at=expires_at,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["identity_key", "cache_key"],
                set_={
                    "cache_data": stmt.excluded.cache_data,
                    "cached_at": stmt.excluded.cached_at,
                    "expires_at": stmt.excluded.expires_at,
                },
            )
            await db.execute(stmt)

        return expires_at

    async def invalidate(self, identity_key: str, date_range: DateRange) -> bool:
        stmt = delete(ApiCache).where(
            and_(
                ApiCache.identity_key == identity_key,
                ApiCache.cache_key == cache_key(date_range),
            )
        )
        async with session_scope(self._session_factory) as db:
            result = await db.execute(stmt)
        return result.rowcount > 0

    async def purge_expired(self) -> int:
        stmt = delete(ApiCache).where(ApiCache.expires_at <= self._clock())
        async with session_scope(self._session_factory) as db:
            result = await db.execute(stmt)
        if result.rowcount:
            logger.info("Purged expired snapshots", rows=result.rowcount)
        return result.rowcount
