import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

from app.core.config import settings
from app.services.accurate.detail_fetcher import DetailFetcher, RecordKey

logger = logging.getLogger(__name__)

T = TypeVar("T")
ProgressCallback = Callable[[int, int], None]


@dataclass
class BatchResult(Generic[T]):
    results: Dict[RecordKey, T] = field(default_factory=dict)
    failed: List[RecordKey] = field(default_factory=list)
    recovered: int = 0

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def records(self) -> List[T]:
        return list(self.results.values())


class BatchRunner(Generic[T]):
    """Drive a DetailFetcher over many keys with bounded concurrency.

    Main pass: fixed-size batches, members fetched concurrently, batch N+1
    starts only after batch N has fully resolved. Retry pass: keys that came
    back as ``None`` are retried one by one with a short pause before each.
    Keys still failing after both passes are reported, never raised.
    """

    def __init__(
        self,
        fetcher: DetailFetcher[T],
        batch_size: int,
        retry_delay_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.fetcher = fetcher
        self.batch_size = batch_size
        self.retry_delay_seconds = settings.RETRY_PASS_DELAY_SECONDS if retry_delay_seconds is None else retry_delay_seconds
        self.sleep = sleep

    async def run(self, keys: Sequence[RecordKey], on_progress: Optional[ProgressCallback] = None) -> BatchResult[T]:
        outcome: BatchResult[T] = BatchResult()
        pending_retry: List[RecordKey] = []
        total = len(keys)

        for start in range(0, total, self.batch_size):
            batch = keys[start:start + self.batch_size]
            fetched = await asyncio.gather(*(self.fetcher.fetch(key) for key in batch))
            for key, detail in zip(batch, fetched):
                if detail is None:
                    pending_retry.append(key)
                else:
                    outcome.results[key] = detail
            if on_progress:
                on_progress(min(start + self.batch_size, total), total)

        if not pending_retry:
            return outcome

        label = self.fetcher.label
        logger.warning(f"⚠️ {len(pending_retry)} {label}(s) failed in main pass. Retrying individually...")
        for key in pending_retry:
            await self.sleep(self.retry_delay_seconds)
            detail = await self.fetcher.fetch(key)
            if detail is None:
                outcome.failed.append(key)
            else:
                outcome.results[key] = detail
                outcome.recovered += 1

        logger.info(
            f"{label} retry pass done: recovered {outcome.recovered}/{len(pending_retry)}. "
            f"Still failed: {outcome.failed_count}"
        )
        if outcome.failed:
            logger.warning(f"⚠️ {outcome.failed_count} {label}(s) could NOT be fetched. Data may be incomplete.")
        return outcome
