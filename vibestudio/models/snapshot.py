"""Snapshot ORM - point-in-time copy of a project's files, content and data.

Invariants:
    - project_id links to the owning project (cascade delete)
    - kind is before | after | manual; tool_names preserves call order
    - summary is human-readable, at most 80 characters for run snapshots
"""

from datetime import datetime

from sqlalchemy import String, DateTime, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from vibestudio.db.base import Base, new_id, utcnow


class Snapshot(Base):
    """Snapshot row: labeled copy of project state at a run boundary."""
    __tablename__ = "snapshots"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=new_id,
    )
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    summary: Mapped[str] = mapped_column(String(200), nullable=False)
    tool_names: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    files: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    content: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "kind": self.kind,
            "summary": self.summary,
            "tool_names": list(self.tool_names or []),
            "files": dict(self.files or {}),
            "content": dict(self.content or {}),
            "data": dict(self.data or {}),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
