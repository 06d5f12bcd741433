"""Service test fixtures - async DB, in-memory stores, scripted provider, test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database (sql_db)
    - db_manager patched: the Sql* stores open sessions through db_manager directly
    - Coordinator and route tests run over the in-memory stores, so background
      runs never share one SQLite connection between concurrent sessions
    - app.dependency_overrides cleared after every client test

Design Decisions:
    - SQLite in-memory: fast, no external dependency, sufficient for store tests
    - Provider factory injected into AgentCoordinator: no network, no SDK patching
"""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine,
)

import vibestudio.infrastructure.database as db_module
from vibestudio.api import dependencies
from vibestudio.config import Settings
from vibestudio.core.rate_limiter import RateLimiter
from vibestudio.core.run_registry import RunRegistry
from vibestudio.db.base import Base
from vibestudio.infrastructure.database import DatabaseSessionManager
from vibestudio.main import app
from vibestudio.services.agent_coordinator import AgentCoordinator
from vibestudio.services.snapshot_service import SnapshotService

from tests.services.fake_provider import ScriptedProvider
from tests.services.fake_store import (
    MemoryDocumentStore, MemorySettingsRepository, MemorySnapshotRepository,
)


# ==============================================================================
# SQL document store
# ==============================================================================


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def sql_db(test_engine):
    """Patch db_manager so SqlDocumentStore & co. hit the test database."""
    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )
    db_module.db_manager = fake_manager
    yield fake_manager
    db_module.db_manager = original_manager


# ==============================================================================
# In-memory stores + coordinator
# ==============================================================================


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def settings_repo():
    return MemorySettingsRepository()


@pytest.fixture
def snapshot_repo():
    return MemorySnapshotRepository()


@pytest.fixture
def test_settings():
    """Env key configured, no write throttling (every flush writes)."""
    return Settings(
        llm_provider="openai",
        llm_api_key="sk-test-key-1234",
        llm_model="gpt-4o",
        persist_interval_ms=0,
        agent_max_iterations=5,
    )


@pytest.fixture
async def seed_project(store):
    return await store.create({
        "name": "Bakery",
        "files": {"index.html": "<h1>Bakery</h1>"},
        "content": {"headline": "Fresh bread"},
        "data": {},
    })


@pytest.fixture
def provider():
    """Default script: one text reply, no tools."""
    return ScriptedProvider([("text", "Done.")])


@pytest.fixture
def provider_configs():
    """Every LLMConfig the coordinator resolved, in order."""
    return []


@pytest.fixture
def services(
    store, settings_repo, snapshot_repo, test_settings, provider, provider_configs,
):
    registry = RunRegistry()
    limiter = RateLimiter(limit=100, window_seconds=60)
    snapshots = SnapshotService(store, snapshot_repo, registry)

    def factory(config):
        provider_configs.append(config)
        return provider

    coordinator = AgentCoordinator(
        store, settings_repo, snapshots, registry, limiter,
        provider_factory=factory, settings=test_settings,
    )
    return dependencies.Services(
        store, settings_repo, snapshots, registry, limiter, coordinator,
    )


@pytest.fixture
def coordinator(services):
    return services.coordinator


# ==============================================================================
# FastAPI test client
# ==============================================================================


def _override_services(services) -> None:
    app.dependency_overrides[dependencies.get_services] = lambda: services
    app.dependency_overrides[dependencies.get_store] = lambda: services.store
    app.dependency_overrides[dependencies.get_settings_repo] = (
        lambda: services.settings_repo
    )
    app.dependency_overrides[dependencies.get_snapshot_service] = (
        lambda: services.snapshots
    )
    app.dependency_overrides[dependencies.get_coordinator] = (
        lambda: services.coordinator
    )


@pytest.fixture
async def client(services):
    """FastAPI test client wired to the in-memory services."""
    _override_services(services)
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c
    await services.coordinator.drain()
    app.dependency_overrides.clear()
    dependencies.reset_services()


@pytest.fixture
async def lenient_client(services):
    """Like client, but unhandled app exceptions become 500 responses."""
    _override_services(services)
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as c:
        yield c
    app.dependency_overrides.clear()
    dependencies.reset_services()
