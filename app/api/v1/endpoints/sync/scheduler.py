from typing import Any, Dict

from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_scheduler
from app.schemas.sync.sync_schema import SchedulerConfigUpdate, SchedulerStatusResponse
from app.services.sync.scheduler_service import SchedulerService

router = APIRouter()


@router.get("", response_model=SchedulerStatusResponse)
async def get_scheduler_status(scheduler: SchedulerService = Depends(get_scheduler)):
    """Scheduler config, loop state, next run and recent job history"""
    return await scheduler.status()


@router.put("/config")
async def update_scheduler_config(
    update: SchedulerConfigUpdate,
    scheduler: SchedulerService = Depends(get_scheduler),
) -> Dict[str, Any]:
    config = await scheduler.update_config(update)
    return {"message": "Config updated", "config": config}


@router.post("/trigger", status_code=status.HTTP_202_ACCEPTED)
async def trigger_scheduled_sync(scheduler: SchedulerService = Depends(get_scheduler)) -> Dict[str, Any]:
    """Run the scheduler's sync now, as a manual job"""
    await scheduler.trigger_now()
    return {"message": "Manual sync started"}
