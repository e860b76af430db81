import asyncio
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

from celery.schedules import ParseException, crontab
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.celery_app import celery_app
from app.core.exceptions import ValidationError
from app.models.shared.enums import SyncTrigger
from app.models.system.system_setting import SystemSetting
from app.schemas.sync.sync_schema import (
    SchedulerConfig,
    SchedulerConfigUpdate,
    SchedulerStatusResponse,
    SyncScope,
)
from app.services.sync.sync_coordinator import SyncCoordinator
from app.services.sync.sync_log_repository import SyncLogRepository
from app.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

CONFIG_KEY = "scheduler_config"
HISTORY_SIZE = 20


def parse_cron(expression: str) -> crontab:
    """Standard 5-field cron -> celery crontab in the app timezone; raises ValueError"""
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"Cron expression needs 5 fields, got {len(fields)}: {expression!r}")
    minute, hour, day_of_month, month_of_year, day_of_week = fields
    try:
        return crontab(
            minute=minute,
            hour=hour,
            day_of_month=day_of_month,
            month_of_year=month_of_year,
            day_of_week=day_of_week,
            app=celery_app,
        )
    except ParseException as e:
        raise ValueError(f"Invalid cron expression {expression!r}: {e}") from e


def seconds_until_next_run(schedule: crontab) -> float:
    # last run = start of the current minute, so a match in this minute is not fired twice
    last_run = schedule.now().replace(second=0, microsecond=0)
    return max(0.0, schedule.remaining_estimate(last_run).total_seconds())


class SchedulerService:
    """Cron-driven inventory sync.

    The config is persisted in ``system_settings``; the loop is an asyncio
    task that sleeps until the next cron occurrence and then runs a
    scheduled job through the coordinator (which skips it when busy).
    """

    def __init__(
        self,
        session_maker: async_sessionmaker,
        coordinator: SyncCoordinator,
        logs: Optional[SyncLogRepository] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.session_maker = session_maker
        self.coordinator = coordinator
        self.logs = logs
        self.sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self.next_run_at: Optional[datetime] = None

    # ─── Config ───────────────────────────────────────────────

    async def load_config(self) -> SchedulerConfig:
        async with self.session_maker() as session:
            result = await session.execute(select(SystemSetting).where(SystemSetting.setting_key == CONFIG_KEY))
            setting = result.scalar_one_or_none()
        if setting is None or not setting.setting_value:
            return SchedulerConfig()
        try:
            stored = json.loads(setting.setting_value)
            return SchedulerConfig.model_validate({**SchedulerConfig().model_dump(), **stored})
        except ValueError as e:
            logger.error(f"❌ Stored scheduler config is unreadable, using defaults: {e}")
            return SchedulerConfig()

    async def save_config(self, config: SchedulerConfig):
        async with self.session_maker() as session:
            result = await session.execute(select(SystemSetting).where(SystemSetting.setting_key == CONFIG_KEY))
            setting = result.scalar_one_or_none()
            value = config.model_dump_json()
            if setting is None:
                session.add(SystemSetting(
                    category="SCHEDULER",
                    setting_key=CONFIG_KEY,
                    setting_value=value,
                    data_type="JSON",
                    description="Automatic inventory sync schedule",
                ))
            else:
                setting.setting_value = value
            await session.commit()
        logger.info("Scheduler config saved")

    async def update_config(self, update: SchedulerConfigUpdate) -> SchedulerConfig:
        current = await self.load_config()
        config = current.model_copy(update=update.model_dump(exclude_unset=True))
        try:
            parse_cron(config.cron_expression)
        except ValueError as e:
            raise ValidationError(str(e))
        if config.branch_id is not None and config.branch_id <= 0:
            raise ValidationError("branch_id must be positive")
        await self.save_config(config)
        await self.restart()
        return config

    # ─── Loop ─────────────────────────────────────────────────

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        config = await self.load_config()
        if not config.enabled:
            logger.info("⏸️ Scheduler disabled - not starting")
            return
        try:
            schedule = parse_cron(config.cron_expression)
        except ValueError as e:
            logger.error(f"❌ Scheduler not started: {e}")
            return
        await self.stop()
        logger.info(f"⏰ Scheduler started: {config.cron_expression!r} ({config.interval_label})")
        self._task = asyncio.create_task(self._run(config, schedule))

    async def stop(self):
        task, self._task = self._task, None
        self.next_run_at = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Scheduler stopped")

    async def restart(self):
        await self.stop()
        await self.start()

    async def _run(self, config: SchedulerConfig, schedule: crontab):
        scope = SyncScope(from_date=config.from_date, branch_id=config.branch_id)
        while True:
            delay = seconds_until_next_run(schedule)
            self.next_run_at = utcnow() + timedelta(seconds=delay)
            await self.sleep(delay)
            # the job task belongs to the coordinator; stopping the loop leaves it running
            job = self.coordinator.trigger_inventory_sync(scope, SyncTrigger.SCHEDULED)
            if job is not None:
                await asyncio.shield(job)

    # ─── Operator actions ─────────────────────────────────────

    async def trigger_now(self) -> None:
        """Manual sync with the scheduler's scope; raises SyncInProgressError when busy"""
        config = await self.load_config()
        self.coordinator.trigger_inventory_sync(
            SyncScope(from_date=config.from_date, branch_id=config.branch_id), SyncTrigger.MANUAL
        )

    async def status(self) -> SchedulerStatusResponse:
        config = await self.load_config()
        history = await self.logs.list_recent(HISTORY_SIZE) if self.logs else []
        return SchedulerStatusResponse(
            config=config,
            is_running=self.is_active,
            is_syncing=self.coordinator.is_running,
            cron_active=self.is_active and config.enabled,
            next_run_at=self.next_run_at if self.is_active else None,
            history=history,
        )
