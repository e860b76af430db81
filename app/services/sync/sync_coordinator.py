import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.exceptions import CacheStoreError, SyncError, SyncInProgressError, SyncTimeoutError
from app.models.shared.enums import SyncJobStatus, SyncPhase, SyncTrigger
from app.schemas.accurate.records import RecordDetail, RemoteRecordRef
from app.schemas.cache.payloads import (
    POCachePayload,
    SalesCachePayload,
    SOCachePayload,
    WarehouseStockCachePayload,
)
from app.schemas.sync.sync_schema import SyncScope, SyncStatusResponse
from app.services.accurate.batch_runner import ProgressCallback
from app.services.accurate.client import AccurateClient
from app.services.accurate.gateway import AccurateGateway
from app.services.cache.cache_repository import CacheRepository
from app.services.sync.aggregator import (
    aggregate_po_outstanding,
    aggregate_sales,
    aggregate_so_outstanding,
    build_warehouse_stock_map,
)
from app.services.sync.job_state import JobState
from app.services.sync.sync_log_repository import SyncLogRepository

logger = logging.getLogger(__name__)

INVENTORY_JOB = "inventory"
SALES_ORDER_JOB = "sales-orders"


@dataclass
class InventorySnapshot:
    """Everything one inventory attempt produced, held in memory until commit"""
    sales: SalesCachePayload
    branch_sales: List[SalesCachePayload] = field(default_factory=list)
    warehouse_stock: Optional[WarehouseStockCachePayload] = None
    po: Optional[POCachePayload] = None
    failed_invoices: int = 0
    cached_at: Optional[datetime] = None
    committed: bool = False

    @property
    def payloads(self) -> list:
        payloads = [self.sales, *self.branch_sales, self.warehouse_stock]
        if self.po is not None:
            payloads.append(self.po)
        return payloads

    @property
    def item_count(self) -> int:
        return len(self.sales.items)

    @property
    def invoice_count(self) -> int:
        return self.sales.invoice_count


@dataclass
class SalesOrderSnapshot:
    so: SOCachePayload
    failed_orders: int = 0
    cached_at: Optional[datetime] = None
    committed: bool = False

    @property
    def payloads(self) -> list:
        return [self.so]


def with_listed_branch(records: List[RecordDetail], refs: List[RemoteRecordRef]) -> List[RecordDetail]:
    """Detail payloads sometimes omit the branch; take it from the listing row"""
    branch_by_id = {ref.id: ref.branch_id for ref in refs if ref.branch_id}
    return [
        record if record.branch_id or record.id not in branch_by_id
        else record.model_copy(update={"branch_id": branch_by_id[record.id]})
        for record in records
    ]


class SyncCoordinator:
    """Runs sync jobs against Accurate and commits their results to the cache.

    One job at a time per coordinator. A job is a sequence of attempts; each
    attempt builds its full result in memory and only a finished attempt is
    committed, with a single atomic cache write. A failed attempt leaves the
    previously committed snapshot untouched.
    """

    def __init__(
        self,
        cache: CacheRepository,
        logs: Optional[SyncLogRepository] = None,
        client_factory: Callable[[], AccurateClient] = AccurateClient,
        max_attempts: Optional[int] = None,
        retry_delay_seconds: Optional[float] = None,
        attempt_timeout_seconds: Optional[float] = None,
        stale_lock_seconds: Optional[float] = None,
        fetch_backoff_seconds: Optional[float] = None,
        fetch_retry_delay_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.cache = cache
        self.logs = logs
        self.client_factory = client_factory
        self.max_attempts = max_attempts or settings.SYNC_MAX_ATTEMPTS
        self.retry_delay_seconds = settings.SYNC_RETRY_DELAY_SECONDS if retry_delay_seconds is None else retry_delay_seconds
        self.attempt_timeout_seconds = attempt_timeout_seconds or settings.SYNC_ATTEMPT_TIMEOUT_SECONDS
        self.fetch_backoff_seconds = fetch_backoff_seconds
        self.fetch_retry_delay_seconds = fetch_retry_delay_seconds
        self.sleep = sleep
        self.state = JobState(stale_after_seconds=stale_lock_seconds or settings.SYNC_STALE_LOCK_SECONDS)
        self._tasks: Set[asyncio.Task] = set()

    # ─── Status ───────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self.state.is_held

    def status(self) -> SyncStatusResponse:
        return self.state.snapshot()

    # ─── Entry points ─────────────────────────────────────────

    async def sync_inventory(self, scope: SyncScope, trigger: SyncTrigger = SyncTrigger.MANUAL) -> Optional[InventorySnapshot]:
        """Run an inventory job to completion.

        Returns None when a scheduled trigger was skipped because another job
        holds the flag. Raises SyncInProgressError for a busy manual trigger and
        SyncError once every attempt has failed.
        """
        token = self._acquire(INVENTORY_JOB, trigger)
        if token is None:
            return None
        return await self._run_job(INVENTORY_JOB, trigger, token, lambda: self._inventory_attempt(scope))

    async def sync_sales_orders(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        trigger: SyncTrigger = SyncTrigger.MANUAL,
        branch_id: Optional[int] = None,
    ) -> Optional[SalesOrderSnapshot]:
        token = self._acquire(SALES_ORDER_JOB, trigger)
        if token is None:
            return None
        return await self._run_job(
            SALES_ORDER_JOB, trigger, token, lambda: self._sales_order_attempt(from_date, to_date, branch_id)
        )

    def trigger_inventory_sync(self, scope: SyncScope, trigger: SyncTrigger = SyncTrigger.MANUAL) -> Optional[asyncio.Task]:
        """Fire-and-forget variant; the busy check happens before returning"""
        token = self._acquire(INVENTORY_JOB, trigger)
        if token is None:
            return None
        return self._spawn(token, self._run_job(INVENTORY_JOB, trigger, token, lambda: self._inventory_attempt(scope)))

    def trigger_sales_order_sync(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        trigger: SyncTrigger = SyncTrigger.MANUAL,
        branch_id: Optional[int] = None,
    ) -> Optional[asyncio.Task]:
        token = self._acquire(SALES_ORDER_JOB, trigger)
        if token is None:
            return None
        return self._spawn(token, self._run_job(
            SALES_ORDER_JOB, trigger, token, lambda: self._sales_order_attempt(from_date, to_date, branch_id)
        ))

    async def get_sales_data(self, scope: SyncScope, force: bool = False) -> SalesCachePayload:
        """Sales aggregate for the scope: a fresh cache entry unless ``force``, else a new sync"""
        if not force:
            cached = await self.cache.load_fresh_sales(scope.from_date, scope.branch_id)
            if cached:
                payload, cached_at = cached
                logger.info(f"Using cached sales for {scope.from_date} (cached at {cached_at.isoformat()})")
                return payload
        snapshot = await self.sync_inventory(scope, SyncTrigger.MANUAL)
        return snapshot.sales

    async def shutdown(self):
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # ─── Job machinery ────────────────────────────────────────

    def _acquire(self, job_name: str, trigger: SyncTrigger) -> Optional[int]:
        if trigger == SyncTrigger.MANUAL:
            token = self.state.try_acquire(job_name)
            if token is None:
                raise SyncInProgressError()
            return token

        held_for = self.state.held_for()
        token = self.state.try_acquire(job_name, break_stale=True)
        if token is None:
            logger.info(f"⏭️ Scheduled {job_name} sync skipped: another sync is running ({held_for or 0:.0f}s)")
        elif held_for is not None:
            logger.warning(f"⚠️ Sync flag held for {held_for:.0f}s looks stale - force-cleared for scheduled {job_name} sync")
        return token

    def _spawn(self, token: int, coro) -> asyncio.Task:
        async def guarded():
            try:
                return await coro
            except SyncError as e:
                logger.error(f"❌ Background sync failed: {e}")
                return None
            finally:
                coro.close()
                self.state.release(token)

        task = asyncio.create_task(guarded())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_job(self, job_name: str, trigger: SyncTrigger, token: int, attempt_fn: Callable[[], Awaitable[Any]]):
        log_id = await self._log_start(job_name, trigger)
        last_error = ""
        error_type = SyncError
        logger.info(f"🔄 {job_name} sync started ({trigger.value})")
        try:
            for attempt in range(1, self.max_attempts + 1):
                if attempt > 1:
                    self.state.mark_retrying(attempt, last_error)
                    await self._log_update(log_id, status=SyncJobStatus.RETRYING, attempts=attempt, message=last_error)
                    logger.warning(f"🔁 {job_name} sync retry {attempt}/{self.max_attempts} in {self.retry_delay_seconds:.0f}s")
                    await self.sleep(self.retry_delay_seconds)
                self.state.mark_attempt(attempt)

                try:
                    snapshot = await asyncio.wait_for(attempt_fn(), timeout=self.attempt_timeout_seconds)
                except asyncio.TimeoutError:
                    error_type = SyncTimeoutError
                    last_error = f"Attempt {attempt} timed out after {self.attempt_timeout_seconds:.0f}s"
                    logger.error(f"❌ {job_name} sync: {last_error}")
                    continue
                except Exception as e:
                    error_type = SyncError
                    last_error = f"{type(e).__name__}: {e}"
                    logger.error(f"❌ {job_name} sync attempt {attempt} failed: {last_error}")
                    continue

                return await self._commit(job_name, log_id, token, attempt, snapshot)

            message = f"Failed after {self.max_attempts} attempts: {last_error}"
            logger.error(f"❌ {job_name} sync {message}")
            if self.state.owns(token):
                self.state.finish(False, message, error=last_error)
            await self._log_update(log_id, status=SyncJobStatus.FAILED, attempts=self.max_attempts, message=message)
            raise error_type(message)
        except asyncio.CancelledError:
            message = "Sync cancelled"
            logger.warning(f"⚠️ {job_name} sync cancelled")
            if self.state.owns(token):
                self.state.finish(False, message, error=message)
            await self._log_update(log_id, status=SyncJobStatus.FAILED, message=message)
            raise
        finally:
            self.state.release(token)

    async def _commit(self, job_name: str, log_id: Optional[int], token: int, attempt: int, snapshot):
        counts = self._counts(snapshot)
        if not self.state.owns(token):
            # a newer run took the flag over; its data must not be overwritten
            message = "Superseded by a newer sync run, results discarded"
            logger.warning(f"⚠️ {job_name} sync: {message}")
            await self._log_update(log_id, status=SyncJobStatus.FAILED, attempts=attempt, message=message, **counts)
            return snapshot

        self.state.update(phase=SyncPhase.COMMIT, message="Saving to cache...")
        try:
            snapshot.cached_at = await self.cache.commit(*snapshot.payloads)
            snapshot.committed = True
        except CacheStoreError as e:
            message = f"Cache commit failed: {e}"
            logger.error(f"❌ {job_name} sync: {message}")
            if self.state.owns(token):
                self.state.finish(False, message, error=str(e), **counts)
            await self._log_update(log_id, status=SyncJobStatus.FAILED, attempts=attempt, message=message, **counts)
            return snapshot

        message = self._summary(snapshot)
        logger.info(f"✅ {job_name} sync complete: {message}")
        if self.state.owns(token):
            self.state.finish(True, message, **counts)
        await self._log_update(log_id, status=SyncJobStatus.SUCCESS, attempts=attempt, message=message, **counts)
        return snapshot

    @staticmethod
    def _counts(snapshot) -> Dict[str, int]:
        if isinstance(snapshot, InventorySnapshot):
            return {"item_count": snapshot.item_count, "invoice_count": snapshot.invoice_count}
        return {"item_count": snapshot.so.so_count}

    @staticmethod
    def _summary(snapshot) -> str:
        if isinstance(snapshot, InventorySnapshot):
            text = f"{snapshot.item_count} items from {snapshot.invoice_count} invoices"
            if snapshot.failed_invoices:
                text += f" ({snapshot.failed_invoices} invoices could not be fetched)"
            if snapshot.po is None:
                text += "; PO outstanding not refreshed"
            return text
        return f"{snapshot.so.so_count} open sales orders"

    async def _log_start(self, job_name: str, trigger: SyncTrigger) -> Optional[int]:
        if self.logs is None:
            return None
        try:
            return await self.logs.start(job_name, trigger)
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Could not record sync job start: {e}")
            return None

    async def _log_update(self, log_id: Optional[int], **fields):
        if self.logs is None or log_id is None:
            return
        try:
            await self.logs.update(log_id, **fields)
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Could not update sync log {log_id}: {e}")

    def _progress(self) -> ProgressCallback:
        return lambda done, total: self.state.update(done=done, total=total)

    def _gateway(self, client: AccurateClient) -> AccurateGateway:
        return AccurateGateway(
            client,
            backoff_seconds=self.fetch_backoff_seconds,
            retry_delay_seconds=self.fetch_retry_delay_seconds,
            sleep=self.sleep,
        )

    # ─── Attempts ─────────────────────────────────────────────

    async def _inventory_attempt(self, scope: SyncScope) -> InventorySnapshot:
        async with self.client_factory() as client:
            gateway = self._gateway(client)

            self.state.update(phase=SyncPhase.LISTING, message="Listing sales invoices...")
            refs = await gateway.list_invoices(scope.from_date, scope.to_date, scope.branch_id)

            self.state.update(phase=SyncPhase.DETAILS, total=len(refs), message=f"Fetching {len(refs)} invoice details...")
            fetched = await gateway.fetch_invoices([ref.id for ref in refs], self._progress())
            invoices = with_listed_branch(fetched.records, refs)

            self.state.update(phase=SyncPhase.AGGREGATING, message="Aggregating sales...")
            aggregation = aggregate_sales(invoices, scope.branch_id)
            per_branch_invoices = Counter(inv.branch_id for inv in invoices if inv.branch_id)
            snapshot = InventorySnapshot(
                sales=SalesCachePayload(
                    from_date=scope.from_date,
                    branch_id=scope.branch_id,
                    invoice_count=aggregation.invoice_count,
                    items=aggregation.combined,
                ),
                branch_sales=[
                    SalesCachePayload(
                        from_date=scope.from_date,
                        branch_id=branch_id,
                        invoice_count=per_branch_invoices[branch_id],
                        items=items,
                    )
                    for branch_id, items in sorted(aggregation.by_branch.items())
                ],
                failed_invoices=fetched.failed_count,
            )
            logger.info(
                f"📊 Aggregated {snapshot.item_count} items from {snapshot.invoice_count} invoices"
                f" ({len(snapshot.branch_sales)} branch split(s))"
            )

            snapshot.warehouse_stock = await self._warehouse_stock_phase(gateway)
            snapshot.po = await self._po_phase(gateway, scope.branch_id)
            return snapshot

    async def _warehouse_stock_phase(self, gateway: AccurateGateway) -> WarehouseStockCachePayload:
        self.state.update(phase=SyncPhase.WAREHOUSE_STOCK, message="Listing items...")
        items = await gateway.list_items()
        if not items:
            raise SyncError("Item list came back empty, warehouse stock cannot be refreshed")
        item_nos = [item.no for item in items if item.no]
        self.state.update(total=len(item_nos), message=f"Fetching warehouse stock for {len(item_nos)} items...")
        fetched = await gateway.fetch_warehouse_stock(item_nos, self._progress())
        stock_map = build_warehouse_stock_map(fetched.results)
        logger.info(f"🏬 Warehouse stock for {len(stock_map)} items ({fetched.failed_count} failed)")
        return WarehouseStockCachePayload(items=stock_map)

    async def _po_phase(self, gateway: AccurateGateway, branch_id: Optional[int]) -> Optional[POCachePayload]:
        """Outstanding PO quantities; a failure here keeps the previous PO cache"""
        try:
            self.state.update(phase=SyncPhase.PO_OUTSTANDING, message="Listing open purchase orders...")
            refs = await gateway.list_purchase_orders(branch_id)
            self.state.update(total=len(refs), message=f"Fetching {len(refs)} purchase orders...")
            fetched = await gateway.fetch_purchase_orders([ref.id for ref in refs], self._progress())
            outstanding = aggregate_po_outstanding(fetched.records)
        except Exception as e:
            logger.warning(f"⚠️ PO outstanding phase failed, keeping previous PO cache: {type(e).__name__}: {e}")
            return None
        logger.info(f"📦 PO outstanding for {len(outstanding)} items from {len(fetched.results)} POs")
        return POCachePayload(branch_id=branch_id, po_count=len(fetched.results), items=outstanding)

    async def _sales_order_attempt(
        self, from_date: Optional[date], to_date: Optional[date], branch_id: Optional[int] = None
    ) -> SalesOrderSnapshot:
        async with self.client_factory() as client:
            gateway = self._gateway(client)

            self.state.update(phase=SyncPhase.LISTING, message="Listing open sales orders...")
            refs = await gateway.list_sales_orders(branch_id, from_date=from_date, to_date=to_date)

            self.state.update(phase=SyncPhase.DETAILS, total=len(refs), message=f"Fetching {len(refs)} sales orders...")
            fetched = await gateway.fetch_sales_orders([ref.id for ref in refs], self._progress())

            self.state.update(phase=SyncPhase.AGGREGATING, message="Computing outstanding quantities...")
            orders = aggregate_so_outstanding(with_listed_branch(fetched.records, refs))
            return SalesOrderSnapshot(
                so=SOCachePayload(branch_id=branch_id, so_count=len(orders), orders=orders),
                failed_orders=fetched.failed_count,
            )
