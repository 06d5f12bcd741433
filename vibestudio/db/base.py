"""SQLAlchemy Declarative Base - shared base class and column defaults for the studio tables.

Invariants:
    - All models inherit from Base; Base.metadata is what alembic and create_all see
    - Primary keys are uuid4 hex strings; timestamps are timezone-aware UTC

Design Decisions:
    - Separate file for Base: avoids circular imports between models
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all studio ORM models."""
    pass
