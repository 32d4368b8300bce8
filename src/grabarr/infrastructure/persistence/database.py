"""Database engine and session management."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from grabarr.config import DatabaseSettings

logger = logging.getLogger(__name__)

# Seconds a SQLite writer waits for the database lock before "database is locked"
SQLITE_LOCK_TIMEOUT = 30


class Database:
    """Async engine plus session factory.

    Hey future me - every service call opens its OWN short session via
    session_scope(). Sessions are never shared between tasks: the acquisition
    cycle, pending ticks and download polling all run concurrently. On SQLite
    that means concurrent writers queue on the file lock, which is what makes
    the single-row DELETE claim of a pending release safe across sessions.
    """

    def __init__(self, settings: DatabaseSettings) -> None:
        self.settings = settings
        self.is_sqlite = settings.url.startswith("sqlite")
        self._engine = create_async_engine(settings.url, **self._engine_options())
        if self.is_sqlite:
            event.listen(self._engine.sync_engine, "connect", _configure_sqlite_connection)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    def _engine_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {
            "echo": self.settings.echo,
            "pool_pre_ping": self.settings.pool_pre_ping,
        }
        if self.is_sqlite:
            options["connect_args"] = {
                "check_same_thread": False,
                "timeout": SQLITE_LOCK_TIMEOUT,
            }
        else:
            # Pool sizing only applies to server databases (PostgreSQL)
            options.update(
                pool_size=self.settings.pool_size,
                max_overflow=self.settings.max_overflow,
                pool_timeout=self.settings.pool_timeout,
                pool_recycle=self.settings.pool_recycle,
            )
        return options

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope: commit on success, rollback on error."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        """Create all tables (tests and first start without Alembic)."""
        from grabarr.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")

    async def close(self) -> None:
        await self._engine.dispose()


def _configure_sqlite_connection(dbapi_conn: Any, _connection_record: Any) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_LOCK_TIMEOUT * 1000}")
    cursor.close()
