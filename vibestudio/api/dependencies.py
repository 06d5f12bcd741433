"""API Dependencies - process-scoped services wired once and injected into routes.

Invariants:
    - One RunRegistry, one RateLimiter and one AgentCoordinator per process:
      created on first use, never torn down while the process lives
    - Routes receive services through Depends(); tests swap them via
      app.dependency_overrides

Design Decisions:
    - Lazy module-level container (same deliberate exception to the no-global-state
      rule as single-process uvicorn state): single process, single event loop
    - Client key for rate limiting is the peer address; proxies in front are
      expected to be configured with uvicorn --proxy-headers
"""

from dataclasses import dataclass

from fastapi import Request

from vibestudio.config import get_settings
from vibestudio.core.rate_limiter import RateLimiter
from vibestudio.core.run_registry import RunRegistry
from vibestudio.infrastructure.document_store import (
    ChangeFeed, SqlDocumentStore, SqlSettingsRepository, SqlSnapshotRepository,
)
from vibestudio.services.agent_coordinator import AgentCoordinator
from vibestudio.services.snapshot_service import SnapshotService


@dataclass
class Services:
    store: SqlDocumentStore
    settings_repo: SqlSettingsRepository
    snapshots: SnapshotService
    registry: RunRegistry
    limiter: RateLimiter
    coordinator: AgentCoordinator


_services: Services | None = None


def build_services() -> Services:
    settings = get_settings()
    store = SqlDocumentStore(ChangeFeed())
    settings_repo = SqlSettingsRepository()
    registry = RunRegistry()
    limiter = RateLimiter(
        limit=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    snapshots = SnapshotService(store, SqlSnapshotRepository(), registry)
    coordinator = AgentCoordinator(
        store, settings_repo, snapshots, registry, limiter, settings=settings,
    )
    return Services(store, settings_repo, snapshots, registry, limiter, coordinator)


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
    return _services


def reset_services() -> None:
    global _services
    _services = None


def get_store() -> SqlDocumentStore:
    return get_services().store


def get_settings_repo() -> SqlSettingsRepository:
    return get_services().settings_repo


def get_snapshot_service() -> SnapshotService:
    return get_services().snapshots


def get_coordinator() -> AgentCoordinator:
    return get_services().coordinator


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"
