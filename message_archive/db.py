"""
Database engine, async session factory, and audit logging.

- Database owns one async engine and session factory for PostgreSQL (asyncpg).
  It is constructed once by the process entry point and passed to whatever
  needs it; nothing here is lazily created behind module state.
- log_audit() records archival runs and admin triggers.
"""

import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator
from uuid import UUID

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from message_archive.base import Base
from message_archive import models  # noqa: F401 - register Message, Notification with Base.metadata
from message_archive import models_audit  # noqa: F401 - register AuditLog with Base.metadata
from message_archive.config import Settings
from message_archive.errors import ConfigurationError
from message_archive.models_audit import AuditLog


class Database:
    """Async engine + session factory for the live store."""

    def __init__(self, database_url: str, pool_size: int = 10, max_overflow: int = 20):
        if not database_url:
            raise ConfigurationError("database_url not set")
        self.url = database_url
        engine_kwargs = {"echo": False, "pool_pre_ping": True}
        # SQLite (tests, local dev) runs without a sized connection pool
        if not database_url.startswith("sqlite"):
            engine_kwargs.update(pool_size=pool_size, max_overflow=max_overflow)
        self.engine: AsyncEngine = create_async_engine(database_url, **engine_kwargs)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        if settings.database_url is None:
            raise ConfigurationError("database_url not set: export MESSAGE_ARCHIVE_DATABASE_URL")
        return cls(
            settings.database_url.get_secret_value(),
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )

    async def init_db(self) -> None:
        """Create tables (for init / tests)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Async context manager for a single DB session (commit on success, rollback on error)."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def dispose(self) -> None:
        await self.engine.dispose()


async def log_audit(
    session: AsyncSession,
    action: str,
    resource_type: str,
    resource_id: str | UUID | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """
    Write an audit log entry (e.g. archival run, admin trigger).
    Caller is responsible for committing the session.
    """
    await session.execute(
        insert(AuditLog.__table__).values(
            id=uuid.uuid4(),
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id else None,
            details=details,
        )
    )
