import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.exceptions import CacheStoreError
from app.core.redis import RedisClient
from app.models.cache.data_cache import DataCache
from app.utils.date_utils import ensure_aware, utcnow

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: str
    timestamp: datetime
    payload: Dict[str, Any]


class CacheStore(ABC):
    """Keyed store of JSON payloads with a write timestamp.

    Nothing here expires; callers decide what is stale. ``put_many`` is the
    atomic unit: either every entry is written or none is.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        ...

    async def put(self, key: str, payload: Dict[str, Any]) -> datetime:
        return await self.put_many({key: payload})

    @abstractmethod
    async def put_many(self, entries: Dict[str, Dict[str, Any]]) -> datetime:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def delete_by_prefix(self, prefix: str) -> int:
        ...


class DatabaseCacheStore(CacheStore):
    """Cache rows in the ``data_cache`` table, one transaction per write"""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def get(self, key: str) -> Optional[CacheEntry]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(select(DataCache).where(DataCache.key == key))
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Cache read failed for {key}: {e}") from e
        if row is None:
            return None
        return CacheEntry(key=row.key, timestamp=ensure_aware(row.cached_at), payload=row.data)

    async def put_many(self, entries: Dict[str, Dict[str, Any]]) -> datetime:
        now = utcnow()
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    await self._upsert(session, entries, now)
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Cache write failed for {sorted(entries)}: {e}") from e
        logger.debug(f"Cache committed {len(entries)} key(s)")
        return now

    async def _upsert(self, session: AsyncSession, entries: Dict[str, Dict[str, Any]], now: datetime):
        result = await session.execute(select(DataCache).where(DataCache.key.in_(list(entries))))
        existing = {row.key: row for row in result.scalars().all()}
        for key, payload in entries.items():
            row = existing.get(key)
            if row is None:
                session.add(DataCache(key=key, data=payload, cached_at=now))
            else:
                row.data = payload
                row.cached_at = now

    async def delete(self, key: str) -> None:
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    await session.execute(delete(DataCache).where(DataCache.key == key))
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Cache delete failed for {key}: {e}") from e

    async def delete_by_prefix(self, prefix: str) -> int:
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    result = await session.execute(delete(DataCache).where(DataCache.key.startswith(prefix)))
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Cache delete failed for prefix {prefix}: {e}") from e
        return result.rowcount or 0


class RedisCacheStore(CacheStore):
    """Entries stored as ``{"timestamp": iso, "data": payload}`` JSON strings"""

    def __init__(self, client: RedisClient):
        self.client = client

    async def get(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = await self.client.get(key)
        except RedisError as e:
            raise CacheStoreError(f"Cache read failed for {key}: {e}") from e
        if raw is None:
            return None
        try:
            doc = json.loads(raw)
            return CacheEntry(key=key, timestamp=datetime.fromisoformat(doc["timestamp"]), payload=doc["data"])
        except (ValueError, KeyError, TypeError) as e:
            raise CacheStoreError(f"Corrupt cache entry at {key}: {e}") from e

    async def put_many(self, entries: Dict[str, Dict[str, Any]]) -> datetime:
        now = utcnow()
        mapping = {
            key: json.dumps({"timestamp": now.isoformat(), "data": payload})
            for key, payload in entries.items()
        }
        try:
            await self.client.set_many(mapping)
        except RedisError as e:
            raise CacheStoreError(f"Cache write failed for {sorted(entries)}: {e}") from e
        return now

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except RedisError as e:
            raise CacheStoreError(f"Cache delete failed for {key}: {e}") from e

    async def delete_by_prefix(self, prefix: str) -> int:
        try:
            keys = await self.client.scan_keys(prefix)
            for key in keys:
                await self.client.delete(key)
        except RedisError as e:
            raise CacheStoreError(f"Cache delete failed for prefix {prefix}: {e}") from e
        return len(keys)


class InMemoryCacheStore(CacheStore):
    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}

    async def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    async def put_many(self, entries: Dict[str, Dict[str, Any]]) -> datetime:
        now = utcnow()
        staged = {
            key: CacheEntry(key=key, timestamp=now, payload=json.loads(json.dumps(payload)))
            for key, payload in entries.items()
        }
        self._entries.update(staged)
        return now

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def delete_by_prefix(self, prefix: str) -> int:
        doomed: List[str] = [k for k in self._entries if k.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def keys(self) -> List[str]:
        return sorted(self._entries)


def create_cache_store(backend: Optional[str] = None) -> CacheStore:
    backend = backend or settings.CACHE_BACKEND
    if backend == "redis":
        from app.core.redis import redis_client
        return RedisCacheStore(redis_client)
    if backend == "memory":
        return InMemoryCacheStore()
    from app.core.database import async_session_maker
    return DatabaseCacheStore(async_session_maker)
