"""Database connection and session management."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from folioscope.config.settings import Settings
from folioscope.storage.models import Base
from folioscope.utils.errors import StoreOpenError
from folioscope.utils.logging import get_logger

logger = get_logger(__name__)


class Database:
    """Async database connection manager for the snapshot store.

    The engine is created on the first ``open()``. Opening is idempotent
    and a failed open leaves the manager closed, so it can be retried.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.url = settings.database.url
        self.engine: AsyncEngine | None = None
        self.session_factory: async_sessionmaker[AsyncSession] | None = None
        self._opened = False
        self._open_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._opened

    def _create_engine(self) -> AsyncEngine:
        url = make_url(self.url)
        echo = self.settings.log_level == "DEBUG"

        if url.get_backend_name() != "sqlite":
            return create_async_engine(self.url, echo=echo, pool_size=5, max_overflow=10)

        if url.database in (None, "", ":memory:"):
            # One shared connection, otherwise every checkout sees an empty database
            return create_async_engine(self.url, echo=echo, poolclass=StaticPool)

        Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
        return create_async_engine(self.url, echo=echo)

    async def open(self) -> None:
        """Create the engine and the schema if not done yet.

        Raises:
            StoreOpenError: If the database cannot be opened.
        """
        if self._opened:
            return

        async with self._open_lock:
            if self._opened:
                return
            try:
                self.engine = self._create_engine()
                self.session_factory = async_sessionmaker(
                    self.engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                )
                async with self.engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
            except Exception as e:
                logger.error("Failed to open snapshot database: {}", str(e))
                await self._dispose_engine()
                raise StoreOpenError(f"Failed to open snapshot database: {e}") from e

            self._opened = True
            logger.info("Snapshot database opened at {}", make_url(self.url).render_as_string())

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session, opening the database first if needed."""
        await self.open()
        if self.session_factory is None:
            raise StoreOpenError("Snapshot database is not open")
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close the database connection."""
        await self._dispose_engine()
        self._opened = False

    async def _dispose_engine(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
        self.engine = None
        self.session_factory = None
