import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, AsyncIterator, Callable, Dict, FrozenSet, Generic, List, Optional, TypeVar

import httpx

from app.core.config import settings
from app.models.shared.enums import RecordStatus
from app.schemas.accurate.records import RemoteRecordRef
from app.services.accurate.client import AccurateClient
from app.utils.date_utils import format_accurate_date

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ListFilter:
    """Server-side filters (date range, branch) plus an optional client-side status filter"""
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    branch_id: Optional[int] = None
    include_statuses: Optional[FrozenSet[RecordStatus]] = None
    exclude_statuses: Optional[FrozenSet[RecordStatus]] = None

    @property
    def filters_status(self) -> bool:
        return bool(self.include_statuses or self.exclude_statuses)

    def accepts(self, status: RecordStatus) -> bool:
        if self.include_statuses and status not in self.include_statuses:
            return False
        if self.exclude_statuses and status in self.exclude_statuses:
            return False
        return True


class PagedLister(Generic[T]):
    """Pages through an Accurate ``list.do`` endpoint.

    ``iter_rows`` is an async generator: lazy, finite and single-use. Listing
    stops on the first empty page, at ``max_pages``, after ``max_empty_pages``
    consecutive pages in which the client-side status filter matched nothing,
    or (when ``stop_on_short_page``) after a page shorter than ``page_size``.

    A failing page (transport error, HTTP error or ``s=false``) ends listing
    early; whatever was yielded so far is the result. There is no retry here,
    the job-level retry covers the whole pipeline.
    """

    def __init__(
        self,
        client: AccurateClient,
        path: str,
        fields: str,
        parse_row: Callable[[Dict[str, Any]], T] = RemoteRecordRef.from_api,
        page_size: Optional[int] = None,
        max_pages: int = 500,
        max_empty_pages: Optional[int] = None,
        stop_on_short_page: bool = False,
        label: str = "records",
    ):
        self.client = client
        self.path = path
        self.fields = fields
        self.parse_row = parse_row
        self.page_size = page_size or settings.LIST_PAGE_SIZE
        self.max_pages = max_pages
        self.max_empty_pages = max_empty_pages or settings.MAX_CONSECUTIVE_EMPTY_PAGES
        self.stop_on_short_page = stop_on_short_page
        self.label = label

    def build_params(self, page: int, list_filter: ListFilter) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "fields": self.fields,
            "sp.page": page,
            "sp.pageSize": self.page_size,
        }
        if list_filter.date_from:
            params["filter.transDate.op"] = "BETWEEN"
            params["filter.transDate.val[0]"] = format_accurate_date(list_filter.date_from)
            params["filter.transDate.val[1]"] = format_accurate_date(list_filter.date_to or date.today())
        if list_filter.branch_id:
            params["filter.branchId.op"] = "EQUAL"
            params["filter.branchId.val"] = list_filter.branch_id
        return params

    async def iter_rows(self, list_filter: Optional[ListFilter] = None) -> AsyncIterator[T]:
        list_filter = list_filter or ListFilter()
        collected = 0
        empty_streak = 0

        for page in range(1, self.max_pages + 1):
            try:
                result = await self.client.get(self.path, params=self.build_params(page, list_filter))
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"❌ {self.label} list page {page} error: {e} - stopping with {collected} collected")
                return

            if not result.success:
                logger.warning(f"⚠️ {self.label} list returned s=false on page {page}: {result.data} - stopping with {collected} collected")
                return

            rows = result.data or []
            if not rows:
                logger.info(f"{self.label} listing done: {collected} collected over {page - 1} page(s)")
                return

            matched = 0
            for row in rows:
                if list_filter.filters_status and not list_filter.accepts(RecordStatus.parse(row.get("statusName"))):
                    continue
                try:
                    parsed = self.parse_row(row)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping malformed {self.label} row on page {page}: {e}")
                    continue
                matched += 1
                collected += 1
                yield parsed

            if list_filter.filters_status:
                empty_streak = 0 if matched else empty_streak + 1
                if empty_streak >= self.max_empty_pages:
                    logger.info(f"{self.label}: {empty_streak} consecutive pages without a match - stopping at {collected}")
                    return

            if self.stop_on_short_page and len(rows) < self.page_size:
                return

            if page % 50 == 0:
                logger.info(f"   ... {self.label} page {page}, collected {collected} so far")

        logger.info(f"{self.label}: hit {self.max_pages} pages, stopping at {collected}")

    async def collect(self, list_filter: Optional[ListFilter] = None) -> List[T]:
        return [row async for row in self.iter_rows(list_filter)]
