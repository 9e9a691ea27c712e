"""Async SQLAlchemy engine lifecycle and session dependency."""
import logging
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core.config import Settings
from services.exceptions import ServiceUnavailableError

logger = logging.getLogger(__name__)


class Database:
    """Owns the async engine (connection pool) and the session factory built on it."""

    def __init__(self, url: str, pool_size: int = 5, max_overflow: int = 10) -> None:
        self._url = url
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        """Build a Database from application settings."""
        return cls(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )

    def connect(self) -> None:
        """Create the engine and session factory. Connections are opened lazily."""
        self._engine = create_async_engine(
            self._url,
            echo=False,
            pool_pre_ping=True,
            pool_size=self._pool_size,
            max_overflow=self._max_overflow,
        )
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info("Database engine created")

    async def close(self) -> None:
        """Dispose of the engine and all pooled connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database engine disposed")

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession] | None:
        """Session factory, or None before connect() / after close()."""
        return self._session_factory


# Global database state using a container to avoid global statement
class _DatabaseState:
    """Container for the application's database handle."""

    database: Database | None = None


_state = _DatabaseState()


def get_database() -> Database | None:
    """Get the application database handle."""
    return _state.database


def set_database(database: Database | None) -> None:
    """Set the application database handle."""
    _state.database = database


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """
    Yield an async database session.

    Uses unit-of-work pattern: services use flush() for refreshing objects,
    commit happens once here at request end. This ensures atomic transactions
    per request - if anything fails, all changes are rolled back.
    """
    database = get_database()
    if database is None or database.session_factory is None:
        raise ServiceUnavailableError("Database is not initialized")

    async with database.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
