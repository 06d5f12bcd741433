"""Database Session Manager - async engine for the project document tables.

Invariants:
    - Every session rolls back on exception; SQLAlchemy errors surface as
      PersistenceError (core/errors.py), which the coordinator tolerates mid-run
    - Each store call opens a short session of its own: background runs outlive
      the request that started them and never borrow its session
    - SQLite connections enforce foreign keys (snapshot rows cascade with projects)

Design Decisions:
    - Singleton db_manager initialized by the FastAPI lifespan
    - expire_on_commit=False: documents are read off instances after commit
    - Pool sizing only for server databases; SQLite (dev, tests) uses the default pool
    - create_tables() is a dev convenience; deployed databases use alembic
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.exc import (
    DBAPIError, IntegrityError, OperationalError, SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine,
)

from vibestudio.core.errors import PersistenceError
from vibestudio.db.base import Base

logger = logging.getLogger(__name__)

# (exception type, operation label, public message), most specific first.
_ERROR_MAP = (
    (IntegrityError, "commit", "Integrity constraint violated"),
    (OperationalError, "execute", "Connection or operational error"),
    (DBAPIError, "query", "Database driver error"),
    (SQLAlchemyError, "unknown", "Database operation failed"),
)


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


class DatabaseSessionManager:
    """Async engine + session factory shared by the Sql* stores."""

    def __init__(
        self, database_url: str, pool_size: int = 20, max_overflow: int = 10,
    ):
        self.is_sqlite = database_url.startswith("sqlite")
        engine_kwargs: dict = {"pool_pre_ping": True}
        if not self.is_sqlite:
            engine_kwargs.update(
                pool_size=pool_size, max_overflow=max_overflow, pool_recycle=3600,
            )
        self.engine = create_async_engine(database_url, **engine_kwargs)
        if self.is_sqlite:
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self._session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """One unit of work. Rolls back and raises PersistenceError on DB failure."""
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            operation, message = next(
                (op, msg) for exc_type, op, msg in _ERROR_MAP
                if isinstance(e, exc_type)
            )
            logger.error(f"DB {operation} failed: {e}")
            raise PersistenceError(message, operation) from e
        finally:
            await session.close()

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def health_check(self) -> bool:
        """Check database connectivity (for readiness probes)."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"DB health check failed: {e}")
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()


# Singleton (initialized on startup)
db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager


def get_db_manager() -> DatabaseSessionManager:
    if not db_manager:
        raise PersistenceError("Database not initialized", "connect")
    return db_manager
