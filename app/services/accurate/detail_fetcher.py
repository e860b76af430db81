import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar, Union

import httpx

from app.core.config import settings
from app.schemas.accurate.records import RecordDetail
from app.services.accurate.client import AccurateClient

logger = logging.getLogger(__name__)

T = TypeVar("T")
RecordKey = Union[int, str]


class DetailFetcher(Generic[T]):
    """Fetch one record's detail with linear backoff (1s, 2s, ...).

    Returns ``None`` when the record could not be fetched: either the API
    answered ``s=false`` (no point retrying) or every attempt failed. Callers
    treat ``None`` as a soft failure.
    """

    def __init__(
        self,
        client: AccurateClient,
        path: str,
        parse: Callable[[Dict[str, Any]], T] = RecordDetail.from_api,
        key_param: str = "id",
        max_retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        label: str = "record",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.path = path
        self.parse = parse
        self.key_param = key_param
        self.max_retries = max_retries or settings.DETAIL_MAX_RETRIES
        self.backoff_seconds = settings.DETAIL_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        self.label = label
        self.sleep = sleep

    async def fetch(self, key: RecordKey) -> Optional[T]:
        for attempt in range(1, self.max_retries + 1):
            try:
                result = await self.client.get(self.path, params={self.key_param: key})
                if result.success and result.data:
                    return self.parse(result.data)
                return None
            except (httpx.HTTPError, ValueError, KeyError) as e:
                if attempt < self.max_retries:
                    delay = self.backoff_seconds * attempt
                    logger.warning(
                        f"{self.label} {key} fetch failed (attempt {attempt}/{self.max_retries}): {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    await self.sleep(delay)
                else:
                    logger.error(f"❌ {self.label} {key} FAILED after {self.max_retries} attempts: {e}")
        return None
