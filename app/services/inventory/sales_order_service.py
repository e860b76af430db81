import logging
from datetime import date
from typing import Callable, List, Optional

from app.schemas.inventory.sales_order import SalesOrderListResponse, SOOutstandingRecord
from app.services.accurate.client import AccurateClient
from app.services.accurate.gateway import AccurateGateway
from app.services.cache.cache_repository import CacheRepository

logger = logging.getLogger(__name__)


def filter_orders(
    orders: List[SOOutstandingRecord],
    branch_id: Optional[int] = None,
    status: Optional[str] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
) -> List[SOOutstandingRecord]:
    """Orders without a transaction date pass the date filters"""
    wanted_status = status.lower() if status else None
    return [
        so for so in orders
        if (branch_id is None or so.branch_id == branch_id)
        and (wanted_status is None or so.status_name.lower() == wanted_status)
        and (from_date is None or so.trans_date is None or so.trans_date >= from_date)
        and (to_date is None or so.trans_date is None or so.trans_date <= to_date)
    ]


class SalesOrderService:
    def __init__(self, cache: CacheRepository, client_factory: Callable[[], AccurateClient] = AccurateClient):
        self.cache = cache
        self.client_factory = client_factory

    async def list_outstanding(
        self,
        branch_id: Optional[int] = None,
        status: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> SalesOrderListResponse:
        # branch-scoped sync first, else the all-branch entry filtered below
        cached = await self.cache.load_so_outstanding(branch_id) if branch_id else None
        cached = cached or await self.cache.load_so_outstanding()
        if not cached:
            return SalesOrderListResponse(message="No sales order data yet. Run a sales order sync to fetch it.")
        payload, cached_at = cached

        orders = filter_orders(payload.orders, branch_id, status, from_date, to_date)
        await self._join_stock(orders)
        return SalesOrderListResponse(so_list=orders, total=len(orders), cached_at=cached_at.isoformat())

    async def _join_stock(self, orders: List[SOOutstandingRecord]):
        if not orders:
            return
        async with self.client_factory() as client:
            items = await AccurateGateway(client).list_items()
        if not items:
            logger.warning("⚠️ Could not join stock data: item list is empty")
            return
        stock = {item.no: item.quantity for item in items}
        for so in orders:
            for line in so.detail_items:
                line.stock = stock.get(line.item_no)
