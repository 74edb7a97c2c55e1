import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from backend.utils.errors import TransientStoreError
from config import IS_PRODUCTION, Settings
from utils.store_retry import is_transient_store_error, store_retrying

logger = logging.getLogger(__name__)

# Create declarative base for models
Base = declarative_base()

T = TypeVar("T")


def normalize_database_url(url: str) -> str:
    """Map plain Postgres URLs (Heroku/Render style) onto the asyncpg driver."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


class Store:
    """
    Explicit handle on the relational store.

    Opened once at process start and closed at shutdown. Every unit of work
    goes through ``run``: a fresh session, one transaction, a bounded timeout
    and a small number of retries for transient connectivity failures.
    """

    def __init__(
        self,
        database_url: str,
        *,
        timeout_seconds: float = 10.0,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 0.2,
        echo: bool = False,
    ):
        self.database_url = normalize_database_url(database_url)
        self.timeout_seconds = timeout_seconds
        self.retry_attempts = retry_attempts
        self.retry_backoff_seconds = retry_backoff_seconds
        self.echo = echo
        self.engine = None
        self._sessionmaker: Optional[async_sessionmaker] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Store":
        url = settings.database_url or "sqlite+aiosqlite:///./entitlements.db"
        if IS_PRODUCTION and "sqlite" in url.lower():
            raise RuntimeError("SQLite is forbidden in production. Use a PostgreSQL DATABASE_URL.")
        return cls(
            url,
            timeout_seconds=settings.store_timeout_seconds,
            retry_attempts=settings.store_retry_attempts,
            retry_backoff_seconds=settings.store_retry_backoff_seconds,
        )

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    async def open(self, create_schema: bool = True) -> "Store":
        if self.engine is not None:
            return self

        engine_kwargs: dict = {"echo": self.echo, "future": True}
        if self.database_url.startswith("sqlite") and ":memory:" in self.database_url:
            # One shared connection, otherwise every session sees an empty database
            engine_kwargs["poolclass"] = StaticPool
        elif not self.database_url.startswith("sqlite"):
            engine_kwargs["pool_pre_ping"] = True

        self.engine = create_async_engine(self.database_url, **engine_kwargs)
        self._sessionmaker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Store opened: %s", self.database_url.split("@")[-1])

        if create_schema:
            await self.create_schema()
        return self

    async def create_schema(self) -> None:
        # Import models here to ensure they're registered with Base
        import database_models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_schema(self) -> None:
        import database_models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("Store closed")
        self.engine = None
        self._sessionmaker = None

    def _require_open(self) -> async_sessionmaker:
        if self._sessionmaker is None:
            raise TransientStoreError("Store is not open")
        return self._sessionmaker

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session inside one transaction: commit on success, rollback on any error."""
        sessionmaker = self._require_open()
        async with sessionmaker() as session:
            async with session.begin():
                yield session

    async def _run_once(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        async with self.transaction() as session:
            return await fn(session, *args, **kwargs)

    async def run(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Execute ``fn(session, *args, **kwargs)`` as one atomic unit of work.

        Args:
            fn: Coroutine function taking the session as first argument

        Returns:
            Whatever ``fn`` returns

        Raises:
            TransientStoreError: If every attempt failed with a transient error
        """
        try:
            async for attempt in store_retrying(self.retry_attempts, self.retry_backoff_seconds):
                with attempt:
                    return await asyncio.wait_for(
                        self._run_once(fn, *args, **kwargs),
                        timeout=self.timeout_seconds,
                    )
        except Exception as e:
            if is_transient_store_error(e):
                logger.error(f"Store operation {getattr(fn, '__name__', fn)} failed after retries: {e}")
                raise TransientStoreError() from e
            raise

    async def ping(self) -> bool:
        async def _select_one(session: AsyncSession) -> bool:
            result = await session.execute(text("SELECT 1"))
            return result.scalar() == 1

        return await self.run(_select_one)


def get_store(request: Request) -> Store:
    """
    Dependency returning the store opened at startup.
    Tests override this with a store bound to a temporary database.
    """
    store = getattr(request.app.state, "store", None)
    if store is None or not store.is_open:
        raise TransientStoreError("Store is not initialised")
    return store
