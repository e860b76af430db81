import logging
from datetime import date
from typing import Callable, Dict, List, Optional

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.models.shared.enums import DataSource
from app.schemas.accurate.records import AccurateItem
from app.schemas.inventory.analysis import InventoryAnalysisItem, InventorySummary
from app.schemas.inventory.sales_aggregate import ItemSalesAggregate
from app.services.accurate.client import AccurateClient
from app.services.accurate.gateway import AccurateGateway
from app.services.analytics.analytics_engine import AnalysisWindow, AnalyticsEngine
from app.services.analytics.demand_estimator import DemandEstimator
from app.services.cache.cache_repository import CacheRepository
from app.utils.date_utils import to_date, utcnow

logger = logging.getLogger(__name__)


class InventoryAnalysisService:
    """Live item list + committed caches -> analysed inventory.

    Caches are read regardless of age here (the age is logged); a missing
    sales cache switches every item to estimated demand.
    """

    def __init__(
        self,
        cache: CacheRepository,
        client_factory: Callable[[], AccurateClient] = AccurateClient,
        engine: Optional[AnalyticsEngine] = None,
        estimator: Optional[DemandEstimator] = None,
    ):
        self.cache = cache
        self.client_factory = client_factory
        self.engine = engine or AnalyticsEngine()
        self.estimator = estimator or DemandEstimator()

    async def fetch_items(self) -> List[AccurateItem]:
        async with self.client_factory() as client:
            return await AccurateGateway(client).list_items()

    async def analyze(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        branch_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
    ) -> List[InventoryAnalysisItem]:
        start = from_date or to_date_setting(settings.DEFAULT_ANALYSIS_START)
        end = to_date or utcnow().date()
        if start > end:
            raise ValidationError("'from' must not be after 'to'")
        window = AnalysisWindow(start=start, end=end)
        logger.info(
            f"📈 Inventory analysis {start} → {end}"
            f"{f' (branch {branch_id})' if branch_id else ''}{f' (warehouse {warehouse_id})' if warehouse_id else ''}"
        )

        items = await self.fetch_items()
        if not items:
            logger.warning("⚠️ Item list is empty - nothing to analyse")
            return []

        sales, data_source = await self._sales_for(items, window, branch_id)
        stock = await self._warehouse_stock_for(items, warehouse_id)
        po_outstanding = await self._po_outstanding_for(branch_id)

        analysed = self.engine.analyze(items, sales, window, stock, po_outstanding, data_source)
        logger.info(f"Returning {len(analysed)} analysed items (source: {data_source.value})")
        return analysed

    async def summary(self, **filters) -> InventorySummary:
        return self.engine.summarize(await self.analyze(**filters))

    async def _sales_for(self, items: List[AccurateItem], window: AnalysisWindow, branch_id: Optional[int]):
        cached = await self.cache.load_sales(window.start, branch_id)
        if cached and cached[0].items:
            payload, cached_at = cached
            age_minutes = (utcnow() - cached_at).total_seconds() / 60
            logger.info(f"Sales cache for {len(payload.items)} items, {age_minutes:.0f} min old")
            return payload.items, DataSource.API

        logger.info("No sales cache found - using estimated demand. Run a sync to populate.")
        headers = window.headers
        estimated: Dict[str, ItemSalesAggregate] = {
            item.no: self.estimator.estimate(item, headers) for item in items
        }
        return estimated, DataSource.ESTIMATED

    async def _warehouse_stock_for(self, items: List[AccurateItem], warehouse_id: Optional[int]) -> Optional[Dict[str, float]]:
        if not warehouse_id:
            return None
        cached = await self.cache.load_warehouse_stock()
        if not cached:
            logger.info(f"Warehouse {warehouse_id} selected but no warehouse stock cache - showing total stock")
            return None
        stock_map = cached[0].items
        return {item.no: stock_map.get(item.no, {}).get(warehouse_id, 0) for item in items}

    async def _po_outstanding_for(self, branch_id: Optional[int]) -> Dict[str, float]:
        cached = await self.cache.load_po_outstanding(branch_id)
        return cached[0].items if cached else {}


def to_date_setting(value: str) -> date:
    parsed = to_date(value)
    if parsed is None:
        raise ValueError(f"Invalid date setting: {value!r}")
    return parsed
