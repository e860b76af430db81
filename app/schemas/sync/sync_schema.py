from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, validator

from app.models.shared.enums import SyncJobStatus, SyncPhase, SyncRunState, SyncTrigger


class SyncScope(BaseModel):
    """What a sync job covers: sales from ``from_date``, optionally one branch"""
    from_date: date
    to_date: Optional[date] = None
    branch_id: Optional[int] = None


class SyncRequest(BaseModel):
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    branch_id: Optional[int] = None

    @validator('branch_id')
    def validate_branch(cls, v):
        if v is not None and v <= 0:
            raise ValueError('branch_id must be positive')
        return v


class SchedulerConfig(BaseModel):
    enabled: bool = False
    cron_expression: str = "0 */4 * * *"   # every 4 hours
    interval_label: str = "Every 4 hours"
    branch_id: Optional[int] = None        # None = all branches
    from_date: date = date(2025, 1, 1)


class SchedulerConfigUpdate(BaseModel):
    enabled: Optional[bool] = None
    cron_expression: Optional[str] = None
    interval_label: Optional[str] = None
    branch_id: Optional[int] = None
    from_date: Optional[date] = None


class SyncJobRecord(BaseModel):
    id: int
    job_name: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    status: SyncJobStatus
    trigger: SyncTrigger
    attempts: int = 1
    duration_sec: Optional[int] = None
    item_count: Optional[int] = None
    invoice_count: Optional[int] = None
    message: Optional[str] = None
    error: Optional[str] = None

    class Config:
        from_attributes = True


class SyncStatusResponse(BaseModel):
    status: SyncRunState
    job_name: Optional[str] = None
    phase: SyncPhase = SyncPhase.IDLE
    done: int = 0
    total: int = 0
    progress: int = 0
    attempt: int = 0
    message: str = "Idle"
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    elapsed_sec: Optional[int] = None
    error: Optional[str] = None
    item_count: Optional[int] = None
    invoice_count: Optional[int] = None


class SchedulerStatusResponse(BaseModel):
    config: SchedulerConfig
    is_running: bool
    is_syncing: bool
    cron_active: bool
    next_run_at: Optional[datetime] = None
    history: List[SyncJobRecord] = []
