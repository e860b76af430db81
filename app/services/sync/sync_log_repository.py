import logging
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import settings
from app.models.shared.enums import SyncJobStatus, SyncTrigger
from app.models.sync.sync_log import SyncLog
from app.schemas.sync.sync_schema import SyncJobRecord
from app.utils.date_utils import ensure_aware, utcnow

logger = logging.getLogger(__name__)


def to_record(log: SyncLog) -> SyncJobRecord:
    started = ensure_aware(log.started_at)
    completed = ensure_aware(log.completed_at) if log.completed_at else None
    duration = int((completed - started).total_seconds()) if completed else None
    return SyncJobRecord(
        id=log.id,
        job_name=log.job_name,
        started_at=started,
        completed_at=completed,
        status=log.status,
        trigger=log.trigger,
        attempts=log.attempts or 1,
        duration_sec=duration,
        item_count=log.item_count,
        invoice_count=log.invoice_count,
        message=log.message,
        error=log.message if log.status == SyncJobStatus.FAILED else None,
    )


class SyncLogRepository:
    """Persistent job history, newest first, capped at ``SYNC_HISTORY_LIMIT`` rows"""

    def __init__(self, session_maker: async_sessionmaker, limit: Optional[int] = None):
        self.session_maker = session_maker
        self.limit = limit or settings.SYNC_HISTORY_LIMIT

    async def start(self, job_name: str, trigger: SyncTrigger) -> int:
        async with self.session_maker() as session:
            log = SyncLog(
                job_name=job_name,
                trigger=trigger,
                status=SyncJobStatus.RUNNING,
                started_at=utcnow(),
                attempts=1,
            )
            session.add(log)
            await session.commit()
            await session.refresh(log)
            log_id = log.id
        await self._trim()
        return log_id

    async def update(self, log_id: int, **fields) -> None:
        async with self.session_maker() as session:
            log = await session.get(SyncLog, log_id)
            if log is None:
                logger.warning(f"Sync log {log_id} disappeared before update")
                return
            for name, value in fields.items():
                setattr(log, name, value)
            if fields.get("status") in (SyncJobStatus.SUCCESS, SyncJobStatus.FAILED):
                log.completed_at = utcnow()
            await session.commit()

    async def list_recent(self, limit: Optional[int] = None) -> List[SyncJobRecord]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(SyncLog).order_by(SyncLog.started_at.desc(), SyncLog.id.desc()).limit(limit or self.limit)
            )
            return [to_record(log) for log in result.scalars().all()]

    async def _trim(self) -> None:
        async with self.session_maker() as session:
            keep = select(SyncLog.id).order_by(SyncLog.started_at.desc(), SyncLog.id.desc()).limit(self.limit)
            await session.execute(delete(SyncLog).where(SyncLog.id.not_in(keep)))
            await session.commit()
