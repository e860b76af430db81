from datetime import date

import pytest

from app.models.shared.enums import AbcClass, DataSource, DemandCategory, StockStatus, XyzClass
from app.schemas.accurate.records import AccurateItem
from app.schemas.inventory.sales_aggregate import ItemSalesAggregate, MonthlyBucket
from app.services.analytics.analytics_engine import (
    AnalysisWindow,
    AnalyticsEngine,
    AnalyticsParams,
    abc_class_for_share,
    demand_category,
    demand_std_dev,
    economic_order_quantity,
    effective_cost,
    fixed,
    stock_status,
    suggested_order,
    xyz_class,
)

# Jan 1 .. Mar 31: 89 days, three month buckets
WINDOW = AnalysisWindow(start=date(2025, 1, 1), end=date(2025, 3, 31))


def item(no="BRG-1", quantity=100, unit_price=1500, cost=1000):
    return AccurateItem(id=1, no=no, name=f"Item {no}", item_type="INVENTORY",
                        quantity=quantity, unit_price=unit_price, cost=cost, unit_name="PCS")


def sales(jan=0, feb=0, mar=0, revenue=None):
    monthly = {
        key: MonthlyBucket(qty=qty, qty_box=qty, revenue=qty * 1500)
        for key, qty in (("Jan|2025", jan), ("Feb|2025", feb), ("Mar|2025", mar)) if qty
    }
    total = jan + feb + mar
    return ItemSalesAggregate(
        total_qty=total, total_qty_box=total,
        total_revenue=total * 1500 if revenue is None else revenue,
        monthly=monthly,
    )


@pytest.fixture
def engine():
    return AnalyticsEngine(AnalyticsParams(lead_time_days=14, z_score=1.645, service_level=0.95,
                                           order_cost=150000, holding_cost_pct=0.25))


class TestFormulas:
    def test_fixed_rounds_half_up(self):
        assert fixed(2.675, 2) == 2.68
        assert fixed(0.125, 2) == 0.13
        assert fixed(29.5, 0) == 30

    def test_status_precedence(self):
        # also satisfies REORDER and days_of_supply == 0, CRITICAL wins
        assert stock_status(0, 5, 33, 2, 0) == StockStatus.CRITICAL
        assert stock_status(10, 5, 33, 2, 5) == StockStatus.REORDER
        assert stock_status(500, 5, 33, 2, 250) == StockStatus.OVERSTOCK
        assert stock_status(3, 0, 0, 0, 99999) == StockStatus.OVERSTOCK
        assert stock_status(0, 0, 0, 0, 99999) == StockStatus.OVERSTOCK
        assert stock_status(50, 5, 33, 2, 25) == StockStatus.OK

    def test_eoq_worked_example(self):
        assert economic_order_quantity(10, 100000, 150000, 0.25) == 210

    def test_eoq_without_holding_cost(self):
        assert economic_order_quantity(10, 0, 150000, 0.25) == 0

    def test_abc_boundaries(self):
        assert [abc_class_for_share(s) for s in (0.79, 0.81, 0.94, 0.96)] == [
            AbcClass.A, AbcClass.B, AbcClass.B, AbcClass.C
        ]
        assert abc_class_for_share(0.80) == AbcClass.A
        assert abc_class_for_share(0.95) == AbcClass.B

    def test_demand_category_thresholds(self):
        assert demand_category(5) == DemandCategory.FAST
        assert demand_category(4.99) == DemandCategory.SLOW
        assert demand_category(0.5) == DemandCategory.SLOW
        assert demand_category(0.01) == DemandCategory.NON_MOVING
        assert demand_category(0) == DemandCategory.DEAD

    def test_xyz_thresholds(self):
        assert xyz_class(10, 5) == XyzClass.X
        assert xyz_class(10, 10) == XyzClass.Y
        assert xyz_class(10, 10.1) == XyzClass.Z
        assert xyz_class(0, 0) == XyzClass.Z

    def test_population_std_dev(self):
        mean, std_dev, daily = demand_std_dev([0, 60, 0])
        assert mean == 20
        assert std_dev == 28.28
        assert daily == 0.94
        assert demand_std_dev([]) == (0.0, 0.0, 0.0)

    def test_suggested_order_rounds_up_to_eoq(self):
        assert suggested_order(38, 1215) == 1215
        assert suggested_order(250, 100) == 300
        assert suggested_order(7.5, 0) == 7.5
        assert suggested_order(0, 100) == 0

    def test_effective_cost_falls_back_to_price(self):
        assert effective_cost(800, 1000) == 800
        assert effective_cost(0, 1000) == pytest.approx(700)
        assert effective_cost(0, 0) == 0

    def test_window(self):
        assert WINDOW.days == 89
        assert WINDOW.months == 3
        assert [h.key for h in WINDOW.headers] == ["Jan|2025", "Feb|2025", "Mar|2025"]
        same_day = AnalysisWindow(start=date(2025, 5, 1), end=date(2025, 5, 1))
        assert same_day.days == 1
        assert same_day.months == 1


class TestAnalyzeItem:
    def test_steady_seller(self, engine):
        result = engine.analyze_item(item(), sales(100, 100, 100), WINDOW)
        assert result.average_daily_usage == 3.37
        assert result.standard_deviation == 0
        assert result.safety_stock == 0
        assert result.reorder_point == 48
        assert result.max_stock == 120
        assert result.days_of_supply == 29.7
        assert result.eoq == 1215
        assert result.turnover_rate == 12
        assert result.xyz_class == XyzClass.X
        assert result.demand_category == DemandCategory.SLOW
        assert result.stock_age_days == 30
        assert result.stock_value == 100000
        assert result.net_shortage == 0
        assert result.suggested_order == 0
        assert result.status == StockStatus.OK
        assert [(m.month, m.qty) for m in result.monthly_sales] == [("Jan", 100), ("Feb", 100), ("Mar", 100)]
        assert result.data_source == DataSource.API

    def test_stock_out_with_incoming_purchase_order(self, engine):
        result = engine.analyze_item(item(quantity=0), sales(100, 100, 100), WINDOW, po_outstanding=10)
        assert result.status == StockStatus.CRITICAL
        assert result.net_shortage == 38
        assert result.suggested_order == 1215
        assert result.turnover_rate == 0

    def test_erratic_demand(self, engine):
        result = engine.analyze_item(item(quantity=10), sales(feb=60), WINDOW)
        assert result.standard_deviation == 0.94
        assert result.safety_stock == 6
        assert result.average_daily_usage == 0.67
        assert result.reorder_point == 16
        assert result.xyz_class == XyzClass.Z
        assert result.status == StockStatus.REORDER

    def test_dead_stock(self, engine):
        result = engine.analyze_item(item(quantity=5), None, WINDOW)
        assert result.demand_category == DemandCategory.DEAD
        assert result.status == StockStatus.OVERSTOCK
        assert result.days_of_supply == 99999
        assert result.stock_age_days == 89
        assert result.eoq == 0
        assert result.annual_revenue == 0

    def test_stock_override(self, engine):
        result = engine.analyze_item(item(quantity=100), sales(100, 100, 100), WINDOW, stock=7)
        assert result.stock == 7
        assert result.status == StockStatus.REORDER


class TestGlobalPasses:
    def test_classify_abc_by_cumulative_revenue(self, engine):
        revenues = {"A1": 79, "C1": 2, "B1": 13, "C2": 2, "C3": 4}
        items = [item(no) for no in revenues]
        sales_map = {no: sales(1, revenue=rev) for no, rev in revenues.items()}

        analysed = engine.analyze(items, sales_map, WINDOW)
        assert [i.item_no for i in analysed][:3] == ["A1", "B1", "C3"]
        classes = {i.item_no: i.abc_class for i in analysed}
        assert classes == {"A1": AbcClass.A, "B1": AbcClass.B, "C3": AbcClass.C, "C1": AbcClass.C, "C2": AbcClass.C}

    def test_zero_revenue_everywhere_is_class_a(self, engine):
        analysed = engine.analyze([item("X"), item("Y")], {}, WINDOW)
        assert {i.abc_class for i in analysed} == {AbcClass.A}

    def test_missing_warehouse_entry_means_zero_stock(self, engine):
        analysed = engine.analyze([item("BRG-1"), item("BRG-2")], {}, WINDOW, stock_by_item={"BRG-1": 4})
        stock = {i.item_no: i.stock for i in analysed}
        assert stock == {"BRG-1": 4, "BRG-2": 0}

    def test_summary(self, engine):
        items = [item("FAST", quantity=0), item("DEAD", quantity=20), item("OK", quantity=100)]
        sales_map = {"FAST": sales(300, 300, 300), "OK": sales(100, 100, 100)}
        analysed = engine.analyze(items, sales_map, WINDOW)
        summary = engine.summarize(analysed)

        assert summary.total_sku == 3
        assert summary.critical_count == 1
        assert summary.overstock_count == 1
        assert summary.dead_stock_count == 1
        assert summary.dead_stock_value == 20000
        assert summary.fast_moving_count == 1
        assert summary.slow_moving_count == 1
        assert summary.avg_turnover_rate == 12
        assert summary.class_a.count + summary.class_b.count + summary.class_c.count == 3
        assert summary.class_a.pct == 75.0
        assert summary.data_source == DataSource.API
