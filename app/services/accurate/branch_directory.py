import logging
import time
from typing import Callable, List, Optional

from pydantic import BaseModel

from app.schemas.accurate.records import Branch, Warehouse
from app.services.accurate.client import AccurateClient

logger = logging.getLogger(__name__)

BRANCH_CACHE_TTL_SECONDS = 30 * 60


class BranchListing(BaseModel):
    branches: List[Branch] = []
    warehouses: List[Warehouse] = []


class BranchDirectory:
    """Branches and warehouses, kept in process memory for 30 minutes"""

    def __init__(
        self,
        client_factory: Callable[[], AccurateClient] = AccurateClient,
        ttl_seconds: float = BRANCH_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client_factory = client_factory
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._listing: Optional[BranchListing] = None
        self._loaded_at = 0.0

    async def get(self) -> BranchListing:
        if self._listing is not None and self.clock() - self._loaded_at < self.ttl_seconds:
            return self._listing
        async with self.client_factory() as client:
            branches = await client.list_branches()
            warehouses = await client.list_warehouses()
        self._listing = BranchListing(branches=branches, warehouses=warehouses)
        self._loaded_at = self.clock()
        logger.info(f"Loaded {len(branches)} branches, {len(warehouses)} warehouses")
        return self._listing
