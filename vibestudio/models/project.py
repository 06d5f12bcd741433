"""Project ORM - the hosted project document the agent mutates and the UI subscribes to.

Invariants:
    - id is a string primary key (uuid4 hex by default)
    - agent_chat stores the full ordered chat: user messages and run transcript entries
    - agent_status is one of idle | running | error
    - files/content/data hold the project state the tools mutate and snapshots copy

Design Decisions:
    - JSON columns: the coordinator writes whole sequences back, no partial JSON patching
    - updated_at bumped on every store update (the change feed orders on it)
"""

from datetime import datetime

from sqlalchemy import String, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from vibestudio.db.base import Base, new_id, utcnow


class Project(Base):
    """Project document: hosted app state plus the agent chat record."""
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=new_id,
    )
    name: Mapped[str] = mapped_column(
        String(200), nullable=False, default="Untitled",
    )
    files: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    content: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    agent_chat: Mapped[list] = mapped_column(
        JSON, nullable=False, default=list,
    )
    agent_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="idle", index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "files": dict(self.files or {}),
            "content": dict(self.content or {}),
            "data": dict(self.data or {}),
            "agent_chat": list(self.agent_chat or []),
            "agent_status": self.agent_status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
