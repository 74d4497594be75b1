"""
Database Connection Module

Owns the PostgreSQL connection pool through an SQLAlchemy async engine.

The engine is not a module-level global: a ``Database`` handle is built at
application startup, handed to the Postgres storage backend, and disposed at
shutdown. The engine itself is created lazily on first use so that building
the handle never opens a connection.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from dormside.core.errors import StorageUnavailable

logger = logging.getLogger(__name__)


# Base class for all our models
class Base(DeclarativeBase):
    pass


def normalize_database_url(url: str) -> str:
    """Point plain ``postgres://`` URLs at the async psycopg driver."""
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    return url


class Database:
    """
    Lazily-initialized connection pool handle.

    Usage:
        db = Database(settings.database_url)
        async with db.session() as session:
            ...
        await db.dispose()
    """

    def __init__(
        self,
        url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 10,
        timeout: float = 5.0,
        echo: bool = False,
    ):
        self.url = normalize_database_url(url)
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._timeout = timeout
        self._echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._session_maker: Optional[async_sessionmaker[AsyncSession]] = None
        self._schema_ready = False

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(
                self.url,
                echo=self._echo,
                pool_size=self._pool_size,
                max_overflow=self._max_overflow,
                pool_timeout=self._timeout,
                pool_pre_ping=True,
                connect_args={"connect_timeout": int(self._timeout)},
            )
            self._session_maker = async_sessionmaker(
                bind=self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
            logger.info("Database engine created")
        return self._engine

    async def init_schema(self) -> None:
        """Create all tables once per handle."""
        if self._schema_ready:
            return
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self._schema_ready = True
        logger.info("Database tables ready")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Scoped session for one storage operation.

        Commits on success, rolls back on error, and converts driver or
        connection failures into ``StorageUnavailable``.
        """
        try:
            await self.init_schema()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Database unavailable: {e}")
            raise StorageUnavailable() from e

        async with self._session_maker() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Database operation failed: {e}")
                raise StorageUnavailable() from e

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_maker = None
            self._schema_ready = False
            logger.info("Database engine disposed")
