"""Async SQLAlchemy database setup."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

Base = declarative_base()

SQLITE_BUSY_TIMEOUT_SECONDS = 30


def _is_memory_url(database_url: str) -> bool:
    return database_url.startswith("sqlite") and (
        ":memory:" in database_url or database_url.rstrip("/").endswith("sqlite+aiosqlite:")
    )


class Database:
    """Async database connection manager.

    Schedules and execution history share one engine. The scheduler loop,
    execution tasks and API requests each take a short-lived session through
    ``session()``.
    """

    def __init__(self, database_url: str):
        """Initialize database with connection URL.

        Args:
            database_url: SQLAlchemy database URL. A plain sqlite:/// URL is
                converted to sqlite+aiosqlite:///. In-memory SQLite keeps a
                single shared connection so every session sees the same data.
        """
        if database_url.startswith("sqlite:///") and "aiosqlite" not in database_url:
            database_url = database_url.replace("sqlite:///", "sqlite+aiosqlite:///")
        self.url = database_url
        self.is_sqlite = database_url.startswith("sqlite")

        engine_kwargs: dict = {"echo": False}
        if self.is_sqlite:
            # The UI and the scheduler loop write concurrently.
            engine_kwargs["connect_args"] = {"timeout": SQLITE_BUSY_TIMEOUT_SECONDS}
            if _is_memory_url(database_url):
                engine_kwargs["poolclass"] = StaticPool

        self._engine: AsyncEngine = create_async_engine(database_url, **engine_kwargs)
        self._async_session: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope around a series of operations.

        Commits on success, rolls back and re-raises on any exception.

        Yields:
            AsyncSession: An async SQLAlchemy session.
        """
        async with self._async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def init_db(self) -> None:
        """Create the schedules and execution_logs tables if missing.

        Meant for tests and quick local runs; deployments use Alembic.
        """
        # Register the models on Base.metadata before create_all.
        from sweeper.models import orm  # noqa: F401

        async with self._engine.begin() as conn:
            if conn.dialect.name == "sqlite" and not _is_memory_url(self.url):
                await conn.execute(text("PRAGMA journal_mode=WAL"))
            if conn.dialect.name == "sqlite":
                await conn.execute(
                    text(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_SECONDS * 1000}")
                )
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        """Check that the database answers a trivial query."""
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    async def close(self) -> None:
        """Close database connections and dispose of the engine."""
        await self._engine.dispose()
