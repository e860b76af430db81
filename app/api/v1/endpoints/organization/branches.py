from fastapi import APIRouter, Depends

from app.api.dependencies import ServiceContainer, get_services
from app.services.accurate.branch_directory import BranchListing

router = APIRouter()


@router.get("", response_model=BranchListing)
async def list_branches(services: ServiceContainer = Depends(get_services)):
    """Branches and warehouses for filter dropdowns"""
    return await services.branches.get()
