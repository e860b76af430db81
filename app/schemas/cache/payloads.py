"""Versioned cache payload schemas.

Each cache key holds exactly one payload kind. Payloads are pydantic models
tagged by ``kind`` and stamped with ``schema_version``; the only way in or out
of the store is ``serialize_payload`` / ``deserialize_payload``. Nested maps
(item -> warehouse -> qty) become JSON objects with string keys on the way out
and are coerced back to their typed keys on the way in.
"""
from datetime import date
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from app.schemas.inventory.sales_aggregate import ItemSalesAggregate
from app.schemas.inventory.sales_order import SOOutstandingRecord

CACHE_SCHEMA_VERSION = 1


class SalesCachePayload(BaseModel):
    kind: Literal["sales"] = "sales"
    schema_version: Literal[1] = 1
    from_date: date
    branch_id: Optional[int] = None
    invoice_count: int = 0
    items: Dict[str, ItemSalesAggregate] = {}


class WarehouseStockCachePayload(BaseModel):
    kind: Literal["warehouse_stock"] = "warehouse_stock"
    schema_version: Literal[1] = 1
    items: Dict[str, Dict[int, float]] = {}   # item_no -> warehouse_id -> qty


class POCachePayload(BaseModel):
    kind: Literal["po_outstanding"] = "po_outstanding"
    schema_version: Literal[1] = 1
    branch_id: Optional[int] = None
    po_count: int = 0
    items: Dict[str, float] = {}              # item_no -> outstanding qty


class SOCachePayload(BaseModel):
    kind: Literal["so_outstanding"] = "so_outstanding"
    schema_version: Literal[1] = 1
    branch_id: Optional[int] = None
    so_count: int = 0
    orders: List[SOOutstandingRecord] = []


CachePayloadV1 = Annotated[
    Union[SalesCachePayload, WarehouseStockCachePayload, POCachePayload, SOCachePayload],
    Field(discriminator="kind"),
]
CachePayload = Union[SalesCachePayload, WarehouseStockCachePayload, POCachePayload, SOCachePayload]

_v1_adapter = TypeAdapter(CachePayloadV1)

_DESERIALIZERS: Dict[int, Callable[[Dict[str, Any]], CachePayload]] = {
    1: _v1_adapter.validate_python,
}


def serialize_payload(payload: CachePayload) -> Dict[str, Any]:
    """Payload model -> JSON-native dict"""
    return payload.model_dump(mode="json")


def deserialize_payload(data: Dict[str, Any]) -> CachePayload:
    """JSON-native dict -> payload model; raises ValueError on unknown versions"""
    version = data.get("schema_version")
    deserializer = _DESERIALIZERS.get(version)
    if deserializer is None:
        raise ValueError(f"Unsupported cache schema version: {version!r}")
    return deserializer(data)
