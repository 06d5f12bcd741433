"""ORM Models - SQLAlchemy declarative models for the document store tables.

Invariants:
    - All models inherit from Base (db/base.py)
    - Project is the aggregate root; snapshots are scoped by project_id

Design Decisions:
    - One file per entity for locality
    - All models imported here so Base.metadata is complete before create_all / migrations
"""

from vibestudio.models.project import Project  # noqa: F401
from vibestudio.models.snapshot import Snapshot  # noqa: F401
from vibestudio.models.setting import Setting  # noqa: F401
