import logging
from datetime import date, datetime
from typing import Dict, Optional, Tuple, Type, TypeVar

from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.exceptions import CacheStoreError
from app.schemas.cache.payloads import (
    CachePayload,
    POCachePayload,
    SalesCachePayload,
    SOCachePayload,
    WarehouseStockCachePayload,
    deserialize_payload,
    serialize_payload,
)
from app.services.cache.cache_store import CacheStore
from app.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

P = TypeVar("P", SalesCachePayload, WarehouseStockCachePayload, POCachePayload, SOCachePayload)

WAREHOUSE_STOCK_KEY = "warehouse-stock-cache"
SO_OUTSTANDING_KEY = "so-outstanding-cache"
SALES_KEY_PREFIX = "sales-cache-"
PO_KEY_PREFIX = "po-outstanding-cache"


def sales_key(from_date: date, branch_id: Optional[int] = None) -> str:
    key = f"{SALES_KEY_PREFIX}{from_date.isoformat()}"
    return f"{key}-branch{branch_id}" if branch_id else key


def po_key(branch_id: Optional[int] = None) -> str:
    return f"{PO_KEY_PREFIX}-branch{branch_id}" if branch_id else PO_KEY_PREFIX


def so_key(branch_id: Optional[int] = None) -> str:
    return f"{SO_OUTSTANDING_KEY}-branch{branch_id}" if branch_id else SO_OUTSTANDING_KEY


def is_fresh(timestamp: datetime, ttl_seconds: float, now: Optional[datetime] = None) -> bool:
    age = ((now or utcnow()) - timestamp).total_seconds()
    return age <= ttl_seconds


class CacheRepository:
    """Typed access to the cache store.

    ``load_*`` return ``(payload, cached_at)`` or ``None``. A read that fails
    (backend error, corrupt or unknown-version payload) is logged and reported
    as a miss. Per-branch keys never fall back to the combined key.
    """

    def __init__(self, store: CacheStore):
        self.store = store

    async def _load(self, key: str, model: Type[P], ttl_seconds: Optional[float] = None) -> Optional[Tuple[P, datetime]]:
        try:
            entry = await self.store.get(key)
        except CacheStoreError as e:
            logger.error(f"❌ {e} - treating as miss")
            return None
        if entry is None:
            return None
        if ttl_seconds is not None and not is_fresh(entry.timestamp, ttl_seconds):
            logger.info(f"Cache {key} is stale ({(utcnow() - entry.timestamp).total_seconds():.0f}s old)")
            return None
        try:
            payload = deserialize_payload(entry.payload)
        except (PydanticValidationError, ValueError) as e:
            logger.error(f"❌ Unreadable cache payload at {key}: {e} - treating as miss")
            return None
        if not isinstance(payload, model):
            logger.error(f"❌ Cache {key} holds {payload.kind!r}, expected {model.__name__} - treating as miss")
            return None
        return payload, entry.timestamp

    # ─── Sales ────────────────────────────────────────────────

    async def load_sales(
        self, from_date: date, branch_id: Optional[int] = None, ttl_seconds: Optional[float] = None
    ) -> Optional[Tuple[SalesCachePayload, datetime]]:
        return await self._load(sales_key(from_date, branch_id), SalesCachePayload, ttl_seconds)

    async def load_fresh_sales(self, from_date: date, branch_id: Optional[int] = None):
        return await self.load_sales(from_date, branch_id, ttl_seconds=settings.SALES_CACHE_TTL_SECONDS)

    # ─── Warehouse stock ──────────────────────────────────────

    async def load_warehouse_stock(self, ttl_seconds: Optional[float] = None):
        return await self._load(WAREHOUSE_STOCK_KEY, WarehouseStockCachePayload, ttl_seconds)

    # ─── PO / SO outstanding ──────────────────────────────────

    async def load_po_outstanding(self, branch_id: Optional[int] = None, ttl_seconds: Optional[float] = None):
        return await self._load(po_key(branch_id), POCachePayload, ttl_seconds)

    async def load_so_outstanding(self, branch_id: Optional[int] = None, ttl_seconds: Optional[float] = None):
        return await self._load(so_key(branch_id), SOCachePayload, ttl_seconds)

    # ─── Writes ───────────────────────────────────────────────

    @staticmethod
    def key_for(payload: CachePayload) -> str:
        if isinstance(payload, SalesCachePayload):
            return sales_key(payload.from_date, payload.branch_id)
        if isinstance(payload, WarehouseStockCachePayload):
            return WAREHOUSE_STOCK_KEY
        if isinstance(payload, POCachePayload):
            return po_key(payload.branch_id)
        return so_key(payload.branch_id)

    async def commit(self, *payloads: CachePayload) -> datetime:
        """Write all payloads in one atomic store call; raises CacheStoreError"""
        entries: Dict[str, dict] = {self.key_for(p): serialize_payload(p) for p in payloads}
        cached_at = await self.store.put_many(entries)
        logger.info(f"💾 Cache committed: {', '.join(entries)}")
        return cached_at

    async def invalidate_sales(self, from_date: date) -> int:
        return await self.store.delete_by_prefix(sales_key(from_date))
