"""Database engine and session management."""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class DatabaseManager:
    """Owns the async engine and hands out request-scoped sessions."""

    def __init__(self):
        self._engine = None
        self._session_factory = None

    def init(self, database_url: str, echo: bool = False, pool_size: int = 5) -> None:
        """
        Initialize the database engine and session factory.

        Args:
            database_url: PostgreSQL connection URL (asyncpg format)
            echo: Enable SQL query logging
            pool_size: Connection pool size (0 for NullPool)
        """
        if self.is_initialized:
            logger.warning("Database already initialized, skipping re-initialization")
            return

        if pool_size == 0:
            self._engine = create_async_engine(database_url, echo=echo, poolclass=NullPool)
        else:
            self._engine = create_async_engine(
                database_url,
                echo=echo,
                pool_size=pool_size,
                max_overflow=10,
                pool_pre_ping=True,
                pool_recycle=300,
            )

        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Database engine initialized (pool_size=%s)", pool_size)

    async def close(self) -> None:
        """Dispose of pooled connections."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection closed")

    @asynccontextmanager
    async def session_scope(
        self,
        commit_on: tuple[type[BaseException], ...] = ()
    ) -> AsyncGenerator[AsyncSession, None]:
        """
        Open a session that commits on success and rolls back on error.

        Args:
            commit_on: Exception types that still commit pending work before
                propagating (expected outcomes such as a wrong OTP, whose
                attempt increment must persist)
        """
        if not self.is_initialized:
            raise RuntimeError("Database not initialized. Call init() first.")

        async with self._session_factory() as session:
            try:
                yield session
            except commit_on:
                try:
                    await session.commit()
                except Exception:
                    logger.exception("Commit after handled failure did not succeed")
                    await session.rollback()
                raise
            except Exception:
                await session.rollback()
                raise
            else:
                await session.commit()

    async def check_connection(self) -> bool:
        """Return True when a trivial query succeeds."""
        if not self.is_initialized:
            return False

        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None


db_manager = DatabaseManager()

