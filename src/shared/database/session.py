"""
Database Session Factory
Creates async SQLAlchemy sessions with proper configuration
"""
from __future__ import annotations

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from shared.database.base_model import Base
from shared.observability.logger import get_logger

logger = get_logger(__name__)


class DatabaseSessionFactory:
    """
    Factory for creating async database sessions.

    Owns the async engine and session maker. Constructed explicitly and
    passed to whatever needs sessions; there is no module-level engine.
    """

    def __init__(
        self,
        database_url: str,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
    ) -> None:
        """
        Initialize session factory with database connection.

        Args:
            database_url: postgresql+asyncpg:// or sqlite+aiosqlite:// URL
            echo: Whether to log SQL statements (debug mode)
            pool_size: Connection pool size (PostgreSQL only)
            max_overflow: Max overflow connections beyond pool_size (PostgreSQL only)
        """
        self.database_url = database_url

        engine_kwargs: dict[str, Any] = {"echo": echo}
        if database_url.startswith("sqlite"):
            # In-memory SQLite lives and dies with its single connection
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url.rstrip("/").endswith("sqlite+aiosqlite:"):
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=True,
                pool_recycle=3600,
            )

        self.engine: AsyncEngine = create_async_engine(database_url, **engine_kwargs)

        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        logger.info(
            "database_session_factory_initialized",
            dialect=self.engine.dialect.name,
        )

    async def ping(self) -> bool:
        """Return True when the database answers a trivial query."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    async def create_all(self) -> None:
        """Create all tables (local development and tests; production uses migrations)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        """Close all connections and dispose of the engine."""
        await self.engine.dispose()
        logger.info("database_engine_disposed")
