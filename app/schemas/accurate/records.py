from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.models.shared.enums import RecordStatus
from app.utils.date_utils import parse_accurate_date


def _num(value: Any) -> float:
    """Accurate sends null, "" or numbers for quantities; normalise to float"""
    if value in (None, ""):
        return 0.0
    return float(value)


class AccurateResponse(BaseModel):
    """Envelope of every Accurate call: {"s": bool, "d": payload}"""
    success: bool = Field(False, alias="s")
    data: Any = Field(None, alias="d")

    class Config:
        populate_by_name = True


class RemoteRecordRef(BaseModel):
    """Listing-phase reference; discarded once the detail is fetched"""
    id: int
    trans_date: Optional[date] = None
    branch_id: Optional[int] = None
    status: RecordStatus = RecordStatus.UNKNOWN
    status_name: Optional[str] = None

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> "RemoteRecordRef":
        return cls(
            id=row["id"],
            trans_date=parse_accurate_date(row.get("transDate")),
            branch_id=row.get("branchId") or None,
            status=RecordStatus.parse(row.get("statusName")),
            status_name=row.get("statusName"),
        )


class LineItem(BaseModel):
    item_no: str = ""
    item_name: str = ""
    quantity: float = 0                         # in sales unit (box, karung, ...)
    quantity_in_base: Optional[float] = None    # in base unit (pcs) when supplied
    unit_ratio: float = 1
    unit_price: float = 0
    total_price: Optional[float] = None
    unit_name: str = ""
    ship_quantity: float = 0                    # processed / received (PO, SO)

    @property
    def base_quantity(self) -> float:
        if self.quantity_in_base:
            return self.quantity_in_base
        if self.unit_ratio:
            return self.quantity * self.unit_ratio
        return self.quantity

    @property
    def outstanding(self) -> float:
        return max(0.0, self.quantity - self.ship_quantity)

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> "LineItem":
        item = row.get("item") or {}
        ship = row.get("shipQuantity")
        if ship is None:
            ship = row.get("quantityReceived")
        total_price = row.get("totalPrice")
        return cls(
            item_no=(item.get("no") or "").strip(),
            item_name=item.get("name") or "",
            quantity=_num(row.get("quantity")),
            quantity_in_base=_num(row.get("quantityInBase")) or None,
            unit_ratio=_num(row.get("unitRatio")) or 1,
            unit_price=_num(row.get("unitPrice")),
            total_price=_num(total_price) or None,
            unit_name=row.get("itemUnitName") or row.get("unitName") or "",
            ship_quantity=_num(ship),
        )


class RecordDetail(BaseModel):
    """Full invoice / purchase order / sales order"""
    id: int
    number: str = ""
    trans_date: Optional[date] = None
    branch_id: Optional[int] = None
    branch_name: Optional[str] = None
    status: RecordStatus = RecordStatus.UNKNOWN
    status_name: str = ""
    customer_name: str = ""
    line_items: List[LineItem] = []

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "RecordDetail":
        customer = d.get("customer") or {}
        branch = d.get("branch") or {}
        return cls(
            id=d["id"],
            number=d.get("number") or "",
            trans_date=parse_accurate_date(d.get("transDate")),
            branch_id=d.get("branchId") or branch.get("id") or None,
            branch_name=branch.get("name"),
            status=RecordStatus.parse(d.get("statusName")),
            status_name=d.get("statusName") or "",
            customer_name=customer.get("name") or d.get("customerName") or "",
            line_items=[LineItem.from_api(di) for di in d.get("detailItem") or []],
        )


class AccurateItem(BaseModel):
    """Row of the item master list (live stock snapshot)"""
    id: int
    no: str
    name: str = ""
    item_type: str = ""
    quantity: float = 0
    unit_price: float = 0
    cost: float = 0
    unit_name: Optional[str] = None

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> "AccurateItem":
        return cls(
            id=row["id"],
            no=(row.get("no") or "").strip(),
            name=row.get("name") or "",
            item_type=row.get("itemType") or "",
            quantity=_num(row.get("quantity")),
            unit_price=_num(row.get("unitPrice")),
            cost=_num(row.get("cost")),
            unit_name=row.get("unit1Name"),
        )


class WarehouseQuantity(BaseModel):
    warehouse_id: int
    warehouse_name: str = ""
    quantity: float = 0


def parse_item_warehouses(d: Dict[str, Any]) -> List[WarehouseQuantity]:
    """item/detail.do -> per-warehouse quantities (may be empty)"""
    rows = d.get("detailWarehouseData")
    if not isinstance(rows, list):
        return []
    return [
        WarehouseQuantity(
            warehouse_id=w["id"],
            warehouse_name=w.get("name") or "",
            quantity=_num(w.get("unit1Quantity")),
        )
        for w in rows
    ]


class Branch(BaseModel):
    id: int
    name: str
    default_branch: bool = False


class Warehouse(BaseModel):
    id: int
    name: str
    default_warehouse: bool = False
    description: Optional[str] = None
