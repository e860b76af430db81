from typing import List, Optional
from pydantic import BaseModel

from app.models.shared.enums import AbcClass, DataSource, DemandCategory, StockStatus, XyzClass


class MonthlySales(BaseModel):
    month: str       # "Jan", "Feb", ...
    year: int
    qty: float       # base unit (pcs)
    qty_box: float   # sales unit (box)
    revenue: float


class InventoryAnalysisItem(BaseModel):
    id: str
    item_no: str
    name: str
    category: str
    unit: str

    # Stock
    stock: float
    cost: float
    price: float

    # ROP / Safety Stock
    reorder_point: int
    safety_stock: int
    min_stock: int
    max_stock: int
    average_daily_usage: float
    lead_time_days: int
    service_level: float
    standard_deviation: float

    # ABC-XYZ
    annual_revenue: float
    abc_class: AbcClass = AbcClass.C
    xyz_class: XyzClass

    # Advanced analysis
    eoq: int
    turnover_rate: float
    demand_category: DemandCategory
    stock_age_days: int
    total_sales_qty: float
    total_sales_qty_box: float
    total_sales_revenue: float
    unit_conversion: int
    sales_unit_name: str

    # PO outstanding
    po_outstanding: float
    net_shortage: float
    suggested_order: float

    # Computed
    days_of_supply: float
    stock_value: float
    status: StockStatus

    monthly_sales: List[MonthlySales]
    data_source: DataSource


class ClassShare(BaseModel):
    count: int = 0
    revenue: float = 0
    pct: float = 0


class InventorySummary(BaseModel):
    total_sku: int
    total_stock_value: float
    total_annual_revenue: float
    avg_turnover_rate: float
    critical_count: int
    reorder_count: int
    overstock_count: int
    dead_stock_count: int
    dead_stock_value: float
    fast_moving_count: int
    slow_moving_count: int
    class_a: ClassShare
    class_b: ClassShare
    class_c: ClassShare
    data_source: Optional[DataSource] = None
