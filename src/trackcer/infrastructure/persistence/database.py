"""Async engine and transactional sessions."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from trackcer.config import Settings

logger = logging.getLogger(__name__)

# Run on every new SQLite connection. SQLite has foreign keys off by default, and WAL
# lets the API read while a scheduler job holds the write lock.
SQLITE_PRAGMAS = ("PRAGMA foreign_keys=ON", "PRAGMA journal_mode=WAL")


def _engine_options(settings: Settings) -> dict[str, Any]:
    db = settings.database
    options: dict[str, Any] = {"echo": db.echo}
    backend = make_url(db.url).get_backend_name()
    if backend == "sqlite":
        # Hey future me - 30s of lock waiting is what keeps "database is locked" away when
        # the producer job writes in chunks while the dashboard is being read.
        options["connect_args"] = {"check_same_thread": False, "timeout": 30}
    elif backend == "postgresql":
        options.update(
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_pre_ping=True,
        )
    return options


class Database:
    """Engine plus session factory.

    The API keeps one on app.state.db. CLI commands and test seeding build their own
    over the same URL.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.engine: AsyncEngine = create_async_engine(
            settings.database.url, **_engine_options(settings)
        )
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine.sync_engine, "connect", self._apply_sqlite_pragmas)
        self._sessions = async_sessionmaker(self.engine, expire_on_commit=False)

    @staticmethod
    def _apply_sqlite_pragmas(dbapi_conn: Any, _record: Any) -> None:
        cursor = dbapi_conn.cursor()
        try:
            for pragma in SQLITE_PRAGMAS:
                cursor.execute(pragma)
        finally:
            cursor.close()

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """One unit of work: commit when the block exits cleanly, roll back on error."""
        async with self._sessions() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            await session.commit()

    async def create_tables(self) -> None:
        from trackcer.infrastructure.persistence.models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.debug("Tables ensured", extra={"tables": len(Base.metadata.tables)})

    async def close(self) -> None:
        await self.engine.dispose()
