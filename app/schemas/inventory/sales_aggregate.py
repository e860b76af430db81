from typing import Dict
from pydantic import BaseModel


class MonthlyBucket(BaseModel):
    qty: float = 0       # base unit (pcs)
    qty_box: float = 0   # sales unit (box / karung)
    revenue: float = 0


class ItemSalesAggregate(BaseModel):
    total_qty: float = 0
    total_qty_box: float = 0
    total_revenue: float = 0
    unit_conversion: int = 0        # pcs per sales unit, 0 = same unit
    sales_unit_name: str = ""
    monthly: Dict[str, MonthlyBucket] = {}   # "Jan|2025" -> bucket
