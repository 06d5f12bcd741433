"""Document Store - SQL-backed project records with an in-process change feed.

Invariants:
    - update() is a last-writer-wins partial update of whole top-level fields
    - Every successful update() publishes the fresh document to subscribers
    - Listener failures never propagate into the writer
    - Each call opens its own DB session via db_manager (no request-scoped sessions)

Design Decisions:
    - Plain dict documents at the boundary: callers never hold ORM instances
    - Change feed is process-local; the UI subscribes through the SSE route
"""

import logging
from typing import Any

from sqlalchemy import select, update

from vibestudio.core.errors import ResourceNotFoundError
from vibestudio.core.repository_protocols import ChangeListener, Unsubscribe
from vibestudio.db.base import utcnow
from vibestudio.infrastructure import database
from vibestudio.models.project import Project
from vibestudio.models.setting import Setting
from vibestudio.models.snapshot import Snapshot

logger = logging.getLogger(__name__)

PROJECT_FIELDS = frozenset({
    "name", "files", "content", "data", "agent_chat", "agent_status",
})


class ChangeFeed:
    """Fan-out of document changes to in-process listeners, keyed by project id."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[ChangeListener]] = {}

    def subscribe(self, project_id: str, on_change: ChangeListener) -> Unsubscribe:
        self._listeners.setdefault(project_id, []).append(on_change)

        def unsubscribe() -> None:
            listeners = self._listeners.get(project_id, [])
            if on_change in listeners:
                listeners.remove(on_change)
            if not listeners:
                self._listeners.pop(project_id, None)

        return unsubscribe

    def publish(self, project_id: str, document: dict) -> None:
        for listener in list(self._listeners.get(project_id, [])):
            try:
                listener(document)
            except Exception as e:
                logger.error("Change listener failed: %s", e,
                    extra={"project_id": project_id})

    def listener_count(self, project_id: str) -> int:
        return len(self._listeners.get(project_id, []))


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - PROJECT_FIELDS
    if unknown:
        raise ValueError(f"Unknown project fields: {sorted(unknown)}")


class SqlDocumentStore:
    """DocumentStore over the `projects` table."""

    def __init__(self, feed: ChangeFeed | None = None) -> None:
        self.feed = feed or ChangeFeed()

    async def create(self, fields: dict[str, Any]) -> dict:
        _check_fields(fields)
        async with database.get_db_manager().session() as db:
            project = Project(**fields)
            db.add(project)
            await db.commit()
            return project.to_document()

    async def get(self, project_id: str) -> dict | None:
        async with database.get_db_manager().session() as db:
            project = await db.get(Project, project_id)
            return project.to_document() if project else None

    async def list_projects(self, limit: int = 50, offset: int = 0) -> list[dict]:
        async with database.get_db_manager().session() as db:
            result = await db.execute(
                select(Project).order_by(Project.updated_at.desc())
                .limit(limit).offset(offset),
            )
            return [p.to_document() for p in result.scalars().all()]

    async def find_by_status(self, agent_status: str) -> list[dict]:
        async with database.get_db_manager().session() as db:
            result = await db.execute(
                select(Project).where(Project.agent_status == agent_status),
            )
            return [p.to_document() for p in result.scalars().all()]

    async def update(self, project_id: str, fields: dict[str, Any]) -> dict:
        _check_fields(fields)
        async with database.get_db_manager().session() as db:
            result = await db.execute(
                update(Project)
                .where(Project.id == project_id)
                .values(**fields, updated_at=utcnow()),
            )
            if result.rowcount == 0:
                raise ResourceNotFoundError("Project", project_id)
            await db.commit()
            project = await db.get(Project, project_id)
            document = project.to_document()
        self.feed.publish(project_id, document)
        return document

    def subscribe(self, project_id: str, on_change: ChangeListener) -> Unsubscribe:
        return self.feed.subscribe(project_id, on_change)


class SqlSnapshotRepository:
    """SnapshotRepository over the `snapshots` table."""

    async def save(self, snapshot: dict[str, Any]) -> dict:
        async with database.get_db_manager().session() as db:
            row = Snapshot(
                project_id=snapshot["project_id"],
                kind=snapshot["kind"],
                summary=snapshot["summary"],
                tool_names=list(snapshot.get("tool_names") or []),
                files=dict(snapshot.get("files") or {}),
                content=dict(snapshot.get("content") or {}),
                data=dict(snapshot.get("data") or {}),
            )
            db.add(row)
            await db.commit()
            return row.to_dict()

    async def list_for_project(self, project_id: str, limit: int = 50) -> list[dict]:
        async with database.get_db_manager().session() as db:
            result = await db.execute(
                select(Snapshot)
                .where(Snapshot.project_id == project_id)
                .order_by(Snapshot.created_at.desc())
                .limit(limit),
            )
            return [s.to_dict() for s in result.scalars().all()]

    async def get(self, snapshot_id: str) -> dict | None:
        async with database.get_db_manager().session() as db:
            row = await db.get(Snapshot, snapshot_id)
            return row.to_dict() if row else None


class SqlSettingsRepository:
    """SettingsRepository over the `settings` table."""

    async def get(self, key: str) -> dict | None:
        async with database.get_db_manager().session() as db:
            row = await db.get(Setting, key)
            return dict(row.value) if row and row.value is not None else None

    async def put(self, key: str, value: dict) -> None:
        async with database.get_db_manager().session() as db:
            row = await db.get(Setting, key)
            if row is None:
                db.add(Setting(key=key, value=dict(value)))
            else:
                row.value = dict(value)
                row.updated_at = utcnow()
            await db.commit()
