from fastapi import APIRouter
from app.api.v1.endpoints.inventory import analysis, sales_orders
from app.api.v1.endpoints.organization import branches
from app.api.v1.endpoints.sync import scheduler, sync

api_router = APIRouter()

# Sync routes
api_router.include_router(sync.router, prefix="/sync", tags=["Sync"])
api_router.include_router(scheduler.router, prefix="/scheduler", tags=["Sync"])

# Inventory routes
api_router.include_router(analysis.router, prefix="/inventory", tags=["Inventory"])
api_router.include_router(sales_orders.router, prefix="/sales-orders", tags=["Inventory"])

# Organization routes
api_router.include_router(branches.router, prefix="/branches", tags=["Organization"])
