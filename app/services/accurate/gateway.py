import asyncio
import logging
from datetime import date
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from app.core.config import settings
from app.models.shared.enums import RecordStatus
from app.schemas.accurate.records import (
    AccurateItem,
    RecordDetail,
    RemoteRecordRef,
    WarehouseQuantity,
    parse_item_warehouses,
)
from app.services.accurate.batch_runner import BatchResult, BatchRunner, ProgressCallback
from app.services.accurate.client import AccurateClient
from app.services.accurate.detail_fetcher import DetailFetcher
from app.services.accurate.paged_lister import ListFilter, PagedLister

logger = logging.getLogger(__name__)

CLOSED_STATUSES = frozenset({RecordStatus.CLOSED, RecordStatus.VOID, RecordStatus.DRAFT})

REF_FIELDS = "id,number,transDate,branchId,statusName"
ITEM_FIELDS = "id,no,name,itemType,quantity,unitPrice,cost,unit1Name"


class AccurateGateway:
    """Per-domain listing and detail fetching on top of one AccurateClient"""

    def __init__(
        self,
        client: AccurateClient,
        backoff_seconds: Optional[float] = None,
        retry_delay_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.backoff_seconds = backoff_seconds
        self.retry_delay_seconds = retry_delay_seconds
        self.sleep = sleep

    def _runner(self, path: str, batch_size: int, label: str, parse=RecordDetail.from_api, key_param: str = "id") -> BatchRunner:
        fetcher = DetailFetcher(
            self.client,
            path,
            parse=parse,
            key_param=key_param,
            backoff_seconds=self.backoff_seconds,
            label=label,
            sleep=self.sleep,
        )
        return BatchRunner(fetcher, batch_size, retry_delay_seconds=self.retry_delay_seconds, sleep=self.sleep)

    # ─── Sales invoices ───────────────────────────────────────

    async def list_invoices(self, from_date: date, to_date: Optional[date] = None, branch_id: Optional[int] = None) -> List[RemoteRecordRef]:
        lister = PagedLister(
            self.client, "/sales-invoice/list.do", "id,transDate,branchId",
            max_pages=settings.INVOICE_MAX_PAGES, label="Invoice",
        )
        logger.info(f"📄 Listing invoices from {from_date}{f' branch={branch_id}' if branch_id else ''}...")
        return await lister.collect(ListFilter(date_from=from_date, date_to=to_date, branch_id=branch_id))

    async def fetch_invoices(self, ids: Sequence[int], on_progress: Optional[ProgressCallback] = None) -> BatchResult[RecordDetail]:
        runner = self._runner("/sales-invoice/detail.do", settings.INVOICE_BATCH_SIZE, "Invoice")
        return await runner.run(ids, on_progress)

    # ─── Purchase orders ──────────────────────────────────────

    async def list_purchase_orders(self, branch_id: Optional[int] = None) -> List[RemoteRecordRef]:
        lister = PagedLister(
            self.client, "/purchase-order/list.do", REF_FIELDS,
            max_pages=settings.PO_MAX_PAGES, label="PO",
        )
        return await lister.collect(ListFilter(branch_id=branch_id, exclude_statuses=CLOSED_STATUSES))

    async def fetch_purchase_orders(self, ids: Sequence[int], on_progress: Optional[ProgressCallback] = None) -> BatchResult[RecordDetail]:
        runner = self._runner("/purchase-order/detail.do", settings.PO_BATCH_SIZE, "PO")
        return await runner.run(ids, on_progress)

    # ─── Sales orders ─────────────────────────────────────────

    async def list_sales_orders(
        self,
        branch_id: Optional[int] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> List[RemoteRecordRef]:
        lister = PagedLister(
            self.client, "/sales-order/list.do", REF_FIELDS,
            max_pages=settings.SO_MAX_PAGES, label="SO",
        )
        return await lister.collect(
            ListFilter(date_from=from_date, date_to=to_date, branch_id=branch_id, exclude_statuses=CLOSED_STATUSES)
        )

    async def fetch_sales_orders(self, ids: Sequence[int], on_progress: Optional[ProgressCallback] = None) -> BatchResult[RecordDetail]:
        runner = self._runner("/sales-order/detail.do", settings.SO_BATCH_SIZE, "SO")
        return await runner.run(ids, on_progress)

    # ─── Items & warehouse stock ──────────────────────────────

    async def list_items(self) -> List[AccurateItem]:
        lister = PagedLister(
            self.client, "/item/list.do", ITEM_FIELDS,
            parse_row=AccurateItem.from_api,
            max_pages=settings.ITEM_MAX_PAGES,
            stop_on_short_page=True,
            label="Item",
        )
        items = await lister.collect()
        logger.info(f"📦 Total items fetched: {len(items)}")
        return items

    async def fetch_warehouse_stock(
        self, item_nos: Sequence[str], on_progress: Optional[ProgressCallback] = None
    ) -> BatchResult[List[WarehouseQuantity]]:
        runner = self._runner(
            "/item/detail.do", settings.WAREHOUSE_BATCH_SIZE, "Item stock",
            parse=parse_item_warehouses, key_param="no",
        )
        return await runner.run(item_nos, on_progress)
