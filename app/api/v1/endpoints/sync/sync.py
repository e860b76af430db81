from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, status

from app.api.dependencies import get_coordinator
from app.core.config import settings
from app.models.shared.enums import SyncTrigger
from app.schemas.sync.sync_schema import SyncRequest, SyncScope, SyncStatusResponse
from app.services.sync.sync_coordinator import SyncCoordinator
from app.utils.date_utils import to_date

router = APIRouter()


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Poll progress of the current (or last) sync job"""
    return coordinator.status()


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def start_sync(
    request: Optional[SyncRequest] = Body(None),
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    """Start a full inventory sync in the background; 409 while one is running"""
    request = request or SyncRequest()
    scope = SyncScope(
        from_date=request.from_date or to_date(settings.DEFAULT_SYNC_FROM_DATE),
        to_date=request.to_date,
        branch_id=request.branch_id,
    )
    coordinator.trigger_inventory_sync(scope, SyncTrigger.MANUAL)
    return {
        "message": f"Sync started{f' (branch {scope.branch_id})' if scope.branch_id else ''}",
        "state": coordinator.status(),
    }
