from typing import List

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.models import DataCache, SyncLog, SystemSetting  # noqa: F401
from app.services.cache.cache_repository import CacheRepository
from app.services.cache.cache_store import InMemoryCacheStore

from accurate_fakes import FakeAccurate

# In-memory test database shared across connections
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class SleepRecorder:
    """Drop-in for asyncio.sleep that returns immediately and remembers delays"""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float):
        self.calls.append(seconds)


@pytest.fixture
async def session_maker():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def accurate() -> FakeAccurate:
    return FakeAccurate()


@pytest.fixture
def memory_store() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture
def cache_repo(memory_store) -> CacheRepository:
    return CacheRepository(memory_store)
