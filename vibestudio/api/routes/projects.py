"""Projects - create/read projects, snapshot history and rollback.

Invariants:
    - User input is validated by Pydantic before reaching the route handler
    - Restore is refused (409) while an agent run holds the project
"""

import logging

from fastapi import APIRouter, Depends, Query, status

from vibestudio.api.dependencies import get_snapshot_service, get_store
from vibestudio.core.errors import ResourceNotFoundError
from vibestudio.core.repository_protocols import DocumentStore
from vibestudio.schemas.project import (
    ProjectCreate, ProjectResponse, SnapshotCreate, SnapshotResponse,
)
from vibestudio.services.snapshot_service import SnapshotService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/projects", tags=["projects"])


@router.post(
    "", response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_project(
    body: ProjectCreate, store: DocumentStore = Depends(get_store),
):
    project = await store.create(body.model_dump())
    logger.info("Project created", extra={"project_id": project["id"]})
    return project


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: str, store: DocumentStore = Depends(get_store),
):
    project = await store.get(project_id)
    if project is None:
        raise ResourceNotFoundError("Project", project_id)
    return project


@router.get(
    "/{project_id}/snapshots", response_model=list[SnapshotResponse],
)
async def list_snapshots(
    project_id: str,
    limit: int = Query(50, ge=1, le=200),
    snapshots: SnapshotService = Depends(get_snapshot_service),
):
    """Snapshot history, newest first."""
    return await snapshots.list_for_project(project_id, limit)


@router.post(
    "/{project_id}/snapshots", response_model=SnapshotResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_snapshot(
    project_id: str,
    body: SnapshotCreate,
    snapshots: SnapshotService = Depends(get_snapshot_service),
):
    return await snapshots.capture_manual(project_id, body.summary)


@router.post(
    "/{project_id}/snapshots/{snapshot_id}/restore",
    response_model=ProjectResponse,
)
async def restore_snapshot(
    project_id: str,
    snapshot_id: str,
    snapshots: SnapshotService = Depends(get_snapshot_service),
):
    return await snapshots.restore(project_id, snapshot_id)
