"""Inventory analytics: ROP, safety stock, EOQ, ABC/XYZ, turnover, demand category.

Per-item figures depend only on that item's stock, prices and sales history.
ABC classification is the one global pass and runs after every item has been
analysed.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional

from app.core.config import settings
from app.models.shared.enums import AbcClass, DataSource, DemandCategory, StockStatus, XyzClass
from app.schemas.accurate.records import AccurateItem
from app.schemas.inventory.analysis import ClassShare, InventoryAnalysisItem, InventorySummary, MonthlySales
from app.schemas.inventory.sales_aggregate import ItemSalesAggregate, MonthlyBucket
from app.utils.date_utils import MonthHeader, month_headers

logger = logging.getLogger(__name__)

MAX_DAYS_OF_SUPPLY = 99999
OVERSTOCK_DAYS = 90
MAX_STOCK_FACTOR = 2.5
FALLBACK_COST_RATIO = 0.7


def fixed(value: float, digits: int) -> float:
    """Round half away from zero to ``digits`` decimals"""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class AnalyticsParams:
    lead_time_days: int = field(default_factory=lambda: settings.LEAD_TIME_DAYS)
    z_score: float = field(default_factory=lambda: settings.Z_SCORE)
    service_level: float = field(default_factory=lambda: settings.SERVICE_LEVEL)
    order_cost: float = field(default_factory=lambda: settings.ORDER_COST)
    holding_cost_pct: float = field(default_factory=lambda: settings.HOLDING_COST_PCT)


@dataclass(frozen=True)
class AnalysisWindow:
    start: date
    end: date

    @property
    def headers(self) -> List[MonthHeader]:
        return month_headers(self.start, self.end)

    @property
    def days(self) -> int:
        return max(1, (self.end - self.start).days)

    @property
    def months(self) -> int:
        return max(1, len(self.headers))


# ─── Formulas ─────────────────────────────────────────────────

def demand_std_dev(monthly_qtys: List[float]):
    """(mean, std_dev, daily_std_dev) of monthly quantities, population variance"""
    if not monthly_qtys:
        return 0.0, 0.0, 0.0
    mean = sum(monthly_qtys) / len(monthly_qtys)
    variance = sum((q - mean) ** 2 for q in monthly_qtys) / len(monthly_qtys)
    std_dev = fixed(math.sqrt(variance), 2)
    return mean, std_dev, fixed(std_dev / 30, 2)


def stock_status(stock: float, safety_stock: int, reorder_point: int, avg_daily_usage: float,
                 days_of_supply: float) -> StockStatus:
    # first match wins
    if stock <= safety_stock and avg_daily_usage > 0:
        return StockStatus.CRITICAL
    if stock <= reorder_point and avg_daily_usage > 0:
        return StockStatus.REORDER
    if days_of_supply > OVERSTOCK_DAYS or (avg_daily_usage == 0 and stock > 0):
        return StockStatus.OVERSTOCK
    return StockStatus.OK


def economic_order_quantity(avg_daily_usage: float, cost: float, order_cost: float, holding_cost_pct: float) -> int:
    holding_cost = cost * holding_cost_pct
    if holding_cost <= 0:
        return 0
    annual_demand = avg_daily_usage * 365
    return math.ceil(math.sqrt(2 * annual_demand * order_cost / holding_cost))


def demand_category(avg_daily_usage: float) -> DemandCategory:
    if avg_daily_usage >= 5:
        return DemandCategory.FAST
    if avg_daily_usage >= 0.5:
        return DemandCategory.SLOW
    if avg_daily_usage > 0:
        return DemandCategory.NON_MOVING
    return DemandCategory.DEAD


def xyz_class(mean: float, std_dev: float) -> XyzClass:
    cv = std_dev / mean if mean > 0 else 999
    if cv <= 0.5:
        return XyzClass.X
    if cv <= 1.0:
        return XyzClass.Y
    return XyzClass.Z


def abc_class_for_share(cumulative_share: float) -> AbcClass:
    if cumulative_share <= 0.80:
        return AbcClass.A
    if cumulative_share <= 0.95:
        return AbcClass.B
    return AbcClass.C


def suggested_order(net_shortage: float, eoq: int) -> float:
    if net_shortage <= 0:
        return 0
    if eoq > 0:
        return math.ceil(net_shortage / eoq) * eoq
    return net_shortage


def effective_cost(cost: float, price: float) -> float:
    if cost > 0:
        return cost
    if price > 0:
        return price * FALLBACK_COST_RATIO
    return 0


# ─── Engine ───────────────────────────────────────────────────

class AnalyticsEngine:
    def __init__(self, params: Optional[AnalyticsParams] = None):
        self.params = params or AnalyticsParams()

    def analyze_item(
        self,
        item: AccurateItem,
        sales: Optional[ItemSalesAggregate],
        window: AnalysisWindow,
        stock: Optional[float] = None,
        po_outstanding: float = 0,
        data_source: DataSource = DataSource.API,
    ) -> InventoryAnalysisItem:
        p = self.params
        sales = sales or ItemSalesAggregate()
        headers = window.headers
        days = window.days
        months = window.months

        quantity = item.quantity if stock is None else stock
        price = item.unit_price
        cost = effective_cost(item.cost, price)

        avg_daily_usage = fixed(sales.total_qty / days, 2)
        buckets = [sales.monthly.get(h.key) or MonthlyBucket() for h in headers]
        mean, std_dev, daily_std_dev = demand_std_dev([b.qty for b in buckets])

        safety_stock = math.ceil(p.z_score * daily_std_dev * math.sqrt(p.lead_time_days))
        reorder_point = math.ceil(avg_daily_usage * p.lead_time_days + safety_stock)
        max_stock = math.ceil(reorder_point * MAX_STOCK_FACTOR)

        raw_dos = quantity / avg_daily_usage if avg_daily_usage > 0 else MAX_DAYS_OF_SUPPLY
        days_of_supply = fixed(min(raw_dos, MAX_DAYS_OF_SUPPLY), 1)

        eoq = economic_order_quantity(avg_daily_usage, cost, p.order_cost, p.holding_cost_pct)

        annual_cogs = sales.total_qty * cost * (12 / months)
        inventory_value = quantity * cost
        turnover = fixed(annual_cogs / inventory_value, 2) if inventory_value > 0 else 0

        if avg_daily_usage > 0:
            stock_age = min(int(fixed(quantity / avg_daily_usage, 0)), days)
        else:
            stock_age = days if quantity > 0 else 0

        net_shortage = max(0.0, reorder_point - quantity - po_outstanding)

        return InventoryAnalysisItem(
            id=str(item.id),
            item_no=item.no,
            name=item.name,
            category=item.item_type or "General",
            unit=item.unit_name or "PCS",
            stock=quantity,
            cost=cost,
            price=price,
            reorder_point=reorder_point,
            safety_stock=safety_stock,
            min_stock=safety_stock,
            max_stock=max_stock,
            average_daily_usage=avg_daily_usage,
            lead_time_days=p.lead_time_days,
            service_level=p.service_level,
            standard_deviation=daily_std_dev,
            annual_revenue=sales.total_revenue,
            xyz_class=xyz_class(mean, std_dev),
            eoq=eoq,
            turnover_rate=turnover,
            demand_category=demand_category(avg_daily_usage),
            stock_age_days=stock_age,
            total_sales_qty=sales.total_qty,
            total_sales_qty_box=sales.total_qty_box,
            total_sales_revenue=sales.total_revenue,
            unit_conversion=sales.unit_conversion,
            sales_unit_name=sales.sales_unit_name,
            po_outstanding=po_outstanding,
            net_shortage=net_shortage,
            suggested_order=suggested_order(net_shortage, eoq),
            days_of_supply=days_of_supply,
            stock_value=fixed(quantity * cost, 0),
            status=stock_status(quantity, safety_stock, reorder_point, avg_daily_usage, days_of_supply),
            monthly_sales=[
                MonthlySales(month=h.month, year=h.year, qty=b.qty, qty_box=b.qty_box, revenue=b.revenue)
                for h, b in zip(headers, buckets)
            ],
            data_source=data_source,
        )

    @staticmethod
    def classify_abc(items: List[InventoryAnalysisItem]) -> List[InventoryAnalysisItem]:
        """Sort by annual revenue (desc) and assign A/B/C on cumulative revenue share"""
        items.sort(key=lambda i: i.annual_revenue, reverse=True)
        total = sum(i.annual_revenue for i in items)
        cumulative = 0.0
        for item in items:
            cumulative += item.annual_revenue
            item.abc_class = abc_class_for_share(cumulative / total if total > 0 else 0)
        return items

    def analyze(
        self,
        items: Iterable[AccurateItem],
        sales: Dict[str, ItemSalesAggregate],
        window: AnalysisWindow,
        stock_by_item: Optional[Dict[str, float]] = None,
        po_outstanding: Optional[Dict[str, float]] = None,
        data_source: DataSource = DataSource.API,
    ) -> List[InventoryAnalysisItem]:
        po_outstanding = po_outstanding or {}
        analysed = [
            self.analyze_item(
                item,
                sales.get(item.no),
                window,
                stock=None if stock_by_item is None else stock_by_item.get(item.no, 0),
                po_outstanding=po_outstanding.get(item.no, 0),
                data_source=data_source,
            )
            for item in items
        ]
        return self.classify_abc(analysed)

    @staticmethod
    def summarize(items: List[InventoryAnalysisItem]) -> InventorySummary:
        total_revenue = sum(i.annual_revenue for i in items)
        with_turnover = [i.turnover_rate for i in items if i.turnover_rate > 0]
        dead = [i for i in items if i.demand_category == DemandCategory.DEAD]

        def share(cls: AbcClass) -> ClassShare:
            members = [i for i in items if i.abc_class == cls]
            revenue = sum(i.annual_revenue for i in members)
            return ClassShare(
                count=len(members),
                revenue=revenue,
                pct=fixed(revenue / total_revenue * 100, 1) if total_revenue > 0 else 0,
            )

        sources = {i.data_source for i in items}
        return InventorySummary(
            total_sku=len(items),
            total_stock_value=sum(i.stock_value for i in items),
            total_annual_revenue=total_revenue,
            avg_turnover_rate=fixed(sum(with_turnover) / len(with_turnover), 2) if with_turnover else 0,
            critical_count=sum(1 for i in items if i.status == StockStatus.CRITICAL),
            reorder_count=sum(1 for i in items if i.status == StockStatus.REORDER),
            overstock_count=sum(1 for i in items if i.status == StockStatus.OVERSTOCK),
            dead_stock_count=len(dead),
            dead_stock_value=sum(i.stock_value for i in dead),
            fast_moving_count=sum(1 for i in items if i.demand_category == DemandCategory.FAST),
            slow_moving_count=sum(1 for i in items if i.demand_category == DemandCategory.SLOW),
            class_a=share(AbcClass.A),
            class_b=share(AbcClass.B),
            class_c=share(AbcClass.C),
            data_source=sources.pop() if len(sources) == 1 else None,
        )
