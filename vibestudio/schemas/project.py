"""Project Schemas - project creation, project documents and snapshots.

Invariants:
    - ProjectCreate.name: 1-200 chars, stripped, non-empty
    - Responses mirror the store documents; agent_chat is passed through as-is
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from vibestudio.core.domain_types import AgentStatus, SnapshotKind


class ProjectCreate(BaseModel):
    """Project creation - optional seed files/content/data."""
    name: str = Field(min_length=1, max_length=200)
    files: dict[str, str] = Field(default_factory=dict)
    content: dict[str, Any] = Field(default_factory=dict)
    data: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty or whitespace")
        return v


class ProjectResponse(BaseModel):
    id: str
    name: str
    files: dict[str, str]
    content: dict[str, Any]
    data: dict[str, list[dict[str, Any]]]
    agent_chat: list[dict[str, Any]]
    agent_status: AgentStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SnapshotCreate(BaseModel):
    summary: str = Field("Manual snapshot", min_length=1, max_length=200)


class SnapshotResponse(BaseModel):
    """Snapshot metadata; the captured files/content/data are not echoed."""
    id: str
    project_id: str
    kind: SnapshotKind
    summary: str
    tool_names: list[str]
    created_at: datetime | None = None
