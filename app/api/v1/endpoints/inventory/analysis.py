from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import ServiceContainer, get_services
from app.schemas.inventory.analysis import InventoryAnalysisItem, InventorySummary

router = APIRouter()


@router.get("/analysis", response_model=List[InventoryAnalysisItem])
async def get_inventory_analysis(
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    branch: Optional[int] = Query(None, gt=0),
    warehouse: Optional[int] = Query(None, gt=0),
    services: ServiceContainer = Depends(get_services),
):
    """Per-item ROP, safety stock, EOQ, ABC/XYZ and demand analysis"""
    return await services.inventory.analyze(from_date, to_date, branch, warehouse)


@router.get("/summary", response_model=InventorySummary)
async def get_inventory_summary(
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    branch: Optional[int] = Query(None, gt=0),
    warehouse: Optional[int] = Query(None, gt=0),
    services: ServiceContainer = Depends(get_services),
):
    return await services.inventory.summary(
        from_date=from_date, to_date=to_date, branch_id=branch, warehouse_id=warehouse
    )
