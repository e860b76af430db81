from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

import main
from app.api.dependencies import ServiceContainer
from app.services.cache.cache_store import InMemoryCacheStore

# Zero delays: retries and backoff still happen, they just don't wait
FAST_COORDINATOR = {
    "retry_delay_seconds": 0,
    "fetch_backoff_seconds": 0,
    "fetch_retry_delay_seconds": 0,
}


@pytest.fixture
async def services(session_maker, accurate) -> AsyncGenerator[ServiceContainer, None]:
    container = ServiceContainer(
        session_maker,
        cache_store=InMemoryCacheStore(),
        client_factory=accurate.client,
        coordinator_options=FAST_COORDINATOR,
    )
    yield container
    await container.shutdown()


@pytest.fixture
async def client(services, session_maker, monkeypatch) -> AsyncGenerator[AsyncClient, None]:
    """Create test client"""
    monkeypatch.setattr(main, "async_session_maker", session_maker)
    app = main.create_app(use_lifespan=False)
    app.state.services = services
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
