from datetime import date
from typing import List, Optional
from pydantic import BaseModel


class SODetailItem(BaseModel):
    item_no: str
    item_name: str = ""
    quantity: float = 0          # ordered
    ship_quantity: float = 0     # processed / shipped
    outstanding: float = 0       # max(0, quantity - ship_quantity)
    unit_name: str = ""
    unit_price: float = 0
    total_price: float = 0
    stock: Optional[float] = None  # joined from the live item list on read


class SOOutstandingRecord(BaseModel):
    id: int
    so_number: str = ""
    trans_date: Optional[date] = None
    customer_name: str = ""
    branch_id: Optional[int] = None
    branch_name: Optional[str] = None
    status_name: str = ""
    detail_items: List[SODetailItem] = []
    total_outstanding: float = 0


class SalesOrderListResponse(BaseModel):
    so_list: List[SOOutstandingRecord] = []
    total: int = 0
    cached_at: Optional[str] = None
    message: Optional[str] = None
