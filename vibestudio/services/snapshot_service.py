"""Snapshot Service - project state captured at run boundaries, history + rollback.

Invariants:
    - A snapshot copies files/content/data; agent_chat is never captured or restored
    - Summaries never exceed 80 chars (format_messages.clip_summary)
    - summarize_change() never raises: any failure or empty output -> fallback label
    - restore() refuses while a run holds the project's slot (RunConflictError)
    - restore() only accepts a snapshot that belongs to the same project

Design Decisions:
    - The coordinator treats every capture as non-fatal; this service lets
      errors propagate and leaves containment to the caller
    - Summary call uses the cheapest model of the active provider
"""

import logging

from vibestudio.core.cost_model import cheapest_model
from vibestudio.core.domain_types import SnapshotKind
from vibestudio.core.errors import ResourceNotFoundError, RunConflictError
from vibestudio.core.format_messages import (
    before_label, build_summary_prompt, clip_summary, fallback_summary,
)
from vibestudio.core.repository_protocols import DocumentStore, SnapshotRepository
from vibestudio.core.run_registry import RunRegistry
from vibestudio.infrastructure.providers.contract import LLMProvider

logger = logging.getLogger(__name__)

SUMMARY_MAX_TOKENS = 60


async def summarize_change(
    provider: LLMProvider, prompt: str, final_text: str, tool_names: list[str],
) -> str:
    """One-line description of what the run changed."""
    try:
        response = await provider.generate(
            [{"role": "user", "content": build_summary_prompt(final_text, tool_names)}],
            model=cheapest_model(provider.provider, provider.model),
            max_tokens=SUMMARY_MAX_TOKENS,
        )
    except Exception as e:
        logger.warning("Change summary failed, using fallback: %s", e,
            extra={"provider": provider.provider})
        return fallback_summary(prompt)
    summary = clip_summary(response.content)
    return summary or fallback_summary(prompt)


class SnapshotService:
    """Creates, lists and restores project snapshots."""

    def __init__(
        self,
        store: DocumentStore,
        snapshots: SnapshotRepository,
        registry: RunRegistry,
    ):
        self.store = store
        self.snapshots = snapshots
        self.registry = registry

    async def capture_before(self, project: dict, prompt: str) -> dict:
        """Pre-run state; `project` is the document read at admission."""
        return await self._save(project, SnapshotKind.BEFORE, before_label(prompt), [])

    async def capture_after(
        self, project_id: str, summary: str, tool_names: list[str],
    ) -> dict:
        project = await self._require_project(project_id)
        return await self._save(
            project, SnapshotKind.AFTER, clip_summary(summary), tool_names,
        )

    async def capture_manual(self, project_id: str, summary: str) -> dict:
        project = await self._require_project(project_id)
        label = clip_summary(summary) or "Manual snapshot"
        return await self._save(project, SnapshotKind.MANUAL, label, [])

    async def list_for_project(self, project_id: str, limit: int = 50) -> list[dict]:
        await self._require_project(project_id)
        return await self.snapshots.list_for_project(project_id, limit)

    async def restore(self, project_id: str, snapshot_id: str) -> dict:
        """Roll files/content/data back to the snapshot. Returns the project."""
        if self.registry.is_running(project_id):
            raise RunConflictError(project_id)
        snapshot = await self.snapshots.get(snapshot_id)
        if snapshot is None or snapshot["project_id"] != project_id:
            raise ResourceNotFoundError("Snapshot", snapshot_id)
        project = await self.store.update(project_id, {
            "files": dict(snapshot.get("files") or {}),
            "content": dict(snapshot.get("content") or {}),
            "data": dict(snapshot.get("data") or {}),
        })
        logger.info("Snapshot restored",
            extra={"project_id": project_id, "snapshot_id": snapshot_id})
        return project

    async def _require_project(self, project_id: str) -> dict:
        project = await self.store.get(project_id)
        if project is None:
            raise ResourceNotFoundError("Project", project_id)
        return project

    async def _save(
        self, project: dict, kind: SnapshotKind, summary: str, tool_names: list[str],
    ) -> dict:
        snapshot = await self.snapshots.save({
            "project_id": project["id"],
            "kind": kind.value,
            "summary": summary,
            "tool_names": list(tool_names),
            "files": project.get("files") or {},
            "content": project.get("content") or {},
            "data": project.get("data") or {},
        })
        logger.info("Snapshot %s: %s", kind.value, summary,
            extra={"project_id": project["id"], "snapshot_id": snapshot["id"]})
        return snapshot
