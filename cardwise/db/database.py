from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from loguru import logger
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cardwise.config import Settings
from cardwise.db.models import Base


def _get_async_url(url: str) -> str:
    """Convert sync sqlite/postgres URLs to their async driver URLs when needed."""
    if url.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
        return url
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


class Database:
    """
    Owns one async engine and its session factory.

    Instances are passed to the stores that need them; nothing here is
    module-global, so tests can point separate instances at separate files.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = _get_async_url(url)
        self.echo = echo
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> Database:
        return cls(settings.database_url, echo=settings.log_level == "DEBUG")

    @property
    def engine(self) -> AsyncEngine:
        """Get or create async engine (lazy initialization)."""
        if self._engine is None:
            self._ensure_sqlite_dir()
            self._engine = create_async_engine(self.url, echo=self.echo, pool_pre_ping=True)
        return self._engine

    def _ensure_sqlite_dir(self) -> None:
        url = make_url(self.url)
        if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
            Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)

    def _get_session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    async def init_db(self) -> None:
        """Create tables that do not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables initialized")

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide an async transactional scope around a series of operations."""
        factory = self._get_session_factory()
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:  # Intentionally broad - rollback on any error before re-raising
                await session.rollback()
                raise
