import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.core.config import settings
from app.core.database import async_session_maker, engine
from app.core.logging_config import setup_logging
from app.api.dependencies import ServiceContainer
from app.api.v1.api import api_router
from app.db.base import Base
from app.models import DataCache, SyncLog, SystemSetting  # noqa: F401  registers tables

logger = logging.getLogger(__name__)


async def create_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await create_tables()
    services = ServiceContainer(async_session_maker)
    app.state.services = services
    await services.scheduler.start()
    logger.info(f"🚀 Inventory sync service started ({settings.ENVIRONMENT}, cache={settings.CACHE_BACKEND})")
    try:
        yield
    finally:
        await services.shutdown()
        await engine.dispose()
        logger.info("Inventory sync service stopped")


def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title="Inventory Sync & Analytics",
        description="Accurate Online sync pipeline with ROP / EOQ / ABC-XYZ inventory analytics",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=settings.ALLOWED_METHODS,
        allow_headers=settings.ALLOWED_HEADERS,
    )

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/")
    async def root():
        return {
            "message": "📦 Inventory Sync & Analytics",
            "status": "active",
            "version": "1.0.0",
            "docs": "/docs",
        }

    @app.get("/api/v1/health")
    async def health_check():
        database = "connected"
        try:
            async with async_session_maker() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"❌ Health check database error: {e}")
            database = "unavailable"
        services = getattr(app.state, "services", None)
        return {
            "status": "healthy" if database == "connected" else "degraded",
            "components": {
                "database": database,
                "cache_backend": settings.CACHE_BACKEND,
                "scheduler": "active" if services and services.scheduler.is_active else "inactive",
                "sync": services.coordinator.status().status.value if services else "unknown",
            },
        }

    return app


app = create_app()


def run_http():
    """Run HTTP server on port 9106"""
    import uvicorn
    print("🚀 Starting HTTP server on port 9106...")
    uvicorn.run("main:app", host="0.0.0.0", port=9106, reload=False)


if __name__ == "__main__":
    run_http()
