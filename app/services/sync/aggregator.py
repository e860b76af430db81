"""Reduce fetched records into per-item summaries.

All functions here are pure. Quantities and revenue are summed as Decimals so
the totals do not depend on the order in which batches completed.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Mapping, Optional

from app.models.shared.enums import RecordStatus
from app.schemas.accurate.records import LineItem, RecordDetail, WarehouseQuantity
from app.schemas.inventory.sales_aggregate import ItemSalesAggregate, MonthlyBucket
from app.schemas.inventory.sales_order import SODetailItem, SOOutstandingRecord
from app.utils.date_utils import month_key

logger = logging.getLogger(__name__)

ZERO = Decimal(0)


def _dec(value: float) -> Decimal:
    return Decimal(str(value))


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


@dataclass
class _MonthTotals:
    qty: Decimal = ZERO
    qty_box: Decimal = ZERO
    revenue: Decimal = ZERO


@dataclass
class _ItemAccumulator:
    qty: Decimal = ZERO
    qty_box: Decimal = ZERO
    revenue: Decimal = ZERO
    unit_conversion: int = 0
    sales_unit_name: str = ""
    monthly: Dict[str, _MonthTotals] = field(default_factory=dict)

    def add(self, month: str, qty_base: Decimal, qty_box: Decimal, revenue: Decimal, ratio: int, unit_name: str):
        self.qty += qty_base
        self.qty_box += qty_box
        self.revenue += revenue
        # A line that cannot tell the ratio never clears one learned earlier
        if ratio > 0:
            self.unit_conversion = ratio
        if unit_name:
            self.sales_unit_name = unit_name
        bucket = self.monthly.setdefault(month, _MonthTotals())
        bucket.qty += qty_base
        bucket.qty_box += qty_box
        bucket.revenue += revenue

    def to_aggregate(self) -> ItemSalesAggregate:
        return ItemSalesAggregate(
            total_qty=float(self.qty),
            total_qty_box=float(self.qty_box),
            total_revenue=float(self.revenue),
            unit_conversion=self.unit_conversion,
            sales_unit_name=self.sales_unit_name,
            monthly={
                key: MonthlyBucket(qty=float(b.qty), qty_box=float(b.qty_box), revenue=float(b.revenue))
                for key, b in self.monthly.items()
            },
        )


@dataclass
class SalesAggregation:
    combined: Dict[str, ItemSalesAggregate]
    by_branch: Dict[int, Dict[str, ItemSalesAggregate]]
    invoice_count: int = 0
    skipped_lines: int = 0


def line_quantities(line: LineItem):
    """(qty in base unit, qty in sales unit, revenue, inferred pcs-per-unit ratio)"""
    qty_box = _dec(line.quantity)
    qty_base = _dec(line.base_quantity)
    if line.total_price:
        revenue = _dec(line.total_price)
    else:
        revenue = qty_box * _dec(line.unit_price)
    ratio = 0
    if qty_box > 0 and qty_base != qty_box:
        ratio = _round_half_up(qty_base / qty_box)
    return qty_base, qty_box, revenue, ratio


def aggregate_sales(records: Iterable[RecordDetail], scoped_branch_id: Optional[int] = None) -> SalesAggregation:
    """Invoices -> item totals (all branches) plus a per-branch split.

    The per-branch split is only built when the fetch was not already scoped
    to one branch.
    """
    combined: Dict[str, _ItemAccumulator] = {}
    by_branch: Dict[int, Dict[str, _ItemAccumulator]] = {}
    invoice_count = 0
    skipped = 0

    for record in records:
        invoice_count += 1
        if record.trans_date is None:
            skipped += len(record.line_items)
            logger.warning(f"Invoice {record.number or record.id} has no transaction date - skipped")
            continue
        month = month_key(record.trans_date)
        split_branch = record.branch_id if (scoped_branch_id is None and record.branch_id) else None

        for line in record.line_items:
            item_no = line.item_no.strip()
            if not item_no:
                skipped += 1
                continue
            qty_base, qty_box, revenue, ratio = line_quantities(line)
            combined.setdefault(item_no, _ItemAccumulator()).add(
                month, qty_base, qty_box, revenue, ratio, line.unit_name
            )
            if split_branch is not None:
                by_branch.setdefault(split_branch, {}).setdefault(item_no, _ItemAccumulator()).add(
                    month, qty_base, qty_box, revenue, ratio, line.unit_name
                )

    return SalesAggregation(
        combined={no: acc.to_aggregate() for no, acc in combined.items()},
        by_branch={
            branch: {no: acc.to_aggregate() for no, acc in items.items()}
            for branch, items in by_branch.items()
        },
        invoice_count=invoice_count,
        skipped_lines=skipped,
    )


def _skip_closed(record: RecordDetail, label: str) -> bool:
    if record.status.is_closed:
        return True
    if record.status is RecordStatus.UNKNOWN and record.status_name:
        logger.debug(f"{label} {record.number or record.id}: unrecognised status {record.status_name!r}, treated as not closed")
    return False


def aggregate_po_outstanding(records: Iterable[RecordDetail]) -> Dict[str, float]:
    """Outstanding qty per item over open purchase orders.

    Outstanding per line = max(0, ordered - processed). Closed, void and draft
    orders contribute nothing, even if listing already filtered them out.
    """
    totals: Dict[str, Decimal] = {}
    for record in records:
        if _skip_closed(record, "PO"):
            continue
        for line in record.line_items:
            item_no = line.item_no.strip()
            if not item_no:
                continue
            outstanding = _dec(line.outstanding)
            if outstanding > 0:
                totals[item_no] = totals.get(item_no, ZERO) + outstanding
    return {no: float(qty) for no, qty in totals.items()}


def aggregate_so_outstanding(records: Iterable[RecordDetail]) -> List[SOOutstandingRecord]:
    """Open sales orders with per-line outstanding; fully shipped orders are dropped"""
    orders: List[SOOutstandingRecord] = []
    for record in records:
        if _skip_closed(record, "SO"):
            continue
        details = []
        total = ZERO
        for line in record.line_items:
            item_no = line.item_no.strip()
            if not item_no:
                continue
            outstanding = _dec(line.outstanding)
            total += outstanding
            details.append(SODetailItem(
                item_no=item_no,
                item_name=line.item_name,
                quantity=line.quantity,
                ship_quantity=line.ship_quantity,
                outstanding=float(outstanding),
                unit_name=line.unit_name,
                unit_price=line.unit_price,
                total_price=line.total_price or line.quantity * line.unit_price,
            ))
        if total <= 0:
            continue
        orders.append(SOOutstandingRecord(
            id=record.id,
            so_number=record.number,
            trans_date=record.trans_date,
            customer_name=record.customer_name,
            branch_id=record.branch_id,
            branch_name=record.branch_name,
            status_name=record.status_name,
            detail_items=details,
            total_outstanding=float(total),
        ))
    orders.sort(key=lambda so: (so.trans_date is not None, so.trans_date, so.id), reverse=True)
    return orders


def build_warehouse_stock_map(stock: Mapping[str, List[WarehouseQuantity]]) -> Dict[str, Dict[int, float]]:
    """item_no -> {warehouse_id: qty}; zero quantities and items with no stock anywhere are dropped"""
    stock_map: Dict[str, Dict[int, float]] = {}
    for item_no, rows in stock.items():
        per_warehouse = {w.warehouse_id: w.quantity for w in rows if w.quantity != 0}
        if per_warehouse:
            stock_map[item_no] = per_warehouse
    return stock_map
