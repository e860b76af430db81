import logging
from typing import Any, Callable, Dict, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.services.accurate.branch_directory import BranchDirectory
from app.services.accurate.client import AccurateClient
from app.services.cache.cache_repository import CacheRepository
from app.services.cache.cache_store import CacheStore, create_cache_store
from app.services.inventory.inventory_analysis_service import InventoryAnalysisService
from app.services.inventory.sales_order_service import SalesOrderService
from app.services.sync.scheduler_service import SchedulerService
from app.services.sync.sync_coordinator import SyncCoordinator
from app.services.sync.sync_log_repository import SyncLogRepository

logger = logging.getLogger(__name__)


class ServiceContainer:
    """One instance per running app; holds the single coordinator and scheduler"""

    def __init__(
        self,
        session_maker: async_sessionmaker,
        cache_store: Optional[CacheStore] = None,
        client_factory: Callable[[], AccurateClient] = AccurateClient,
        coordinator_options: Optional[Dict[str, Any]] = None,
    ):
        self.cache = CacheRepository(cache_store or create_cache_store())
        self.sync_logs = SyncLogRepository(session_maker)
        self.coordinator = SyncCoordinator(
            self.cache, self.sync_logs, client_factory=client_factory, **(coordinator_options or {})
        )
        self.scheduler = SchedulerService(session_maker, self.coordinator, self.sync_logs)
        self.inventory = InventoryAnalysisService(self.cache, client_factory)
        self.sales_orders = SalesOrderService(self.cache, client_factory)
        self.branches = BranchDirectory(client_factory)

    async def shutdown(self):
        await self.scheduler.stop()
        await self.coordinator.shutdown()


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_coordinator(request: Request) -> SyncCoordinator:
    return get_services(request).coordinator


def get_scheduler(request: Request) -> SchedulerService:
    return get_services(request).scheduler
