from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from app.api.dependencies import ServiceContainer, get_services
from app.models.shared.enums import SyncTrigger
from app.schemas.inventory.sales_order import SalesOrderListResponse
from app.schemas.sync.sync_schema import SyncRequest

router = APIRouter()


@router.get("", response_model=SalesOrderListResponse)
async def list_sales_orders(
    branch: Optional[int] = Query(None, gt=0),
    status_name: Optional[str] = Query(None, alias="status"),
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    services: ServiceContainer = Depends(get_services),
):
    """Cached open sales orders, filtered, with current stock joined per line"""
    return await services.sales_orders.list_outstanding(branch, status_name, from_date, to_date)


@router.post("/sync", status_code=status.HTTP_202_ACCEPTED)
async def sync_sales_orders(
    request: Optional[SyncRequest] = Body(None),
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    request = request or SyncRequest()
    services.coordinator.trigger_sales_order_sync(
        request.from_date, request.to_date, SyncTrigger.MANUAL, branch_id=request.branch_id
    )
    return {"message": "Sales order sync started", "state": services.coordinator.status()}
