"""Boundary Protocols - contracts between core and shell.

Invariants:
    - Core NEVER imports from shell: dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Implementations provided by shell via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
    - Documents are plain dicts: the store is treated as an opaque record store
      with last-writer-wins partial updates and no optimistic locking
"""

from collections.abc import Callable
from typing import Any, Protocol

ChangeListener = Callable[[dict], None]
Unsubscribe = Callable[[], None]


class DocumentStore(Protocol):
    """Project records: CRUD plus push notification on change."""
    async def create(self, fields: dict[str, Any]) -> dict: ...
    async def get(self, project_id: str) -> dict | None: ...
    async def update(self, project_id: str, fields: dict[str, Any]) -> dict: ...
    async def find_by_status(self, agent_status: str) -> list[dict]: ...
    def subscribe(self, project_id: str, on_change: ChangeListener) -> Unsubscribe: ...


class SnapshotRepository(Protocol):
    """Point-in-time copies of project state."""
    async def save(self, snapshot: dict[str, Any]) -> dict: ...
    async def list_for_project(self, project_id: str, limit: int = 50) -> list[dict]: ...
    async def get(self, snapshot_id: str) -> dict | None: ...


class SettingsRepository(Protocol):
    """Key/value settings records (e.g. key='llm')."""
    async def get(self, key: str) -> dict | None: ...
    async def put(self, key: str, value: dict) -> None: ...
