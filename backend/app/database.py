"""
SnipVault Backend — Snippet Store (Database Handle)
=====================================================

What:  An explicitly owned handle on the database: async engine, session
       factory, connect/close lifecycle and a transactional session scope.
Why:   No module-level engine and no "connect if not already connected"
       checks. Whoever creates a SnippetStore owns it and must close it:
       the FastAPI lifespan for the long-running server, an `async with`
       block for each serverless invocation, a fixture in tests.
How:   SQLAlchemy 2.0 async engine. Pool checkout and driver timeouts bound
       every wait on the database; startup waits for the database with
       tenacity's exponential backoff.

Connection Pooling (PostgreSQL):
    pool_size=20, max_overflow=10: at most 30 connections per process
    pool_pre_ping:    validates connections before use (stale after DB restart)
    pool_recycle=3600: recycles connections hourly
    pool_timeout:     bounded wait for a free connection

SQLite (tests, local development) uses SQLAlchemy's default pool for the
aiosqlite driver with only a busy timeout.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.config import Settings
from app.exceptions import UpstreamUnavailableError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares a single metadata object; Alembic reads it for --autogenerate.
    """
    pass


class SnippetStore:
    """
    Lifecycle-managed database handle.

    Usage (long-running server):
        store = SnippetStore.from_settings(settings)
        await store.connect()
        ...
        await store.close()

    Usage (per request):
        async with SnippetStore.from_settings(settings) as store:
            async with store.session() as session:
                ...

    Every session() scope is one transaction: commit on success, rollback on
    any exception.
    """

    def __init__(
        self,
        database_url: str,
        *,
        pool_size: int = 20,
        max_overflow: int = 10,
        pool_pre_ping: bool = True,
        pool_timeout: float = 10.0,
        connect_timeout: float = 5.0,
        command_timeout: float = 15.0,
        startup_attempts: int = 5,
        startup_min_wait: float = 1.0,
        startup_max_wait: float = 8.0,
        echo: bool = False,
    ):
        self.database_url = database_url
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.pool_pre_ping = pool_pre_ping
        self.pool_timeout = pool_timeout
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.startup_attempts = startup_attempts
        self.startup_min_wait = startup_min_wait
        self.startup_max_wait = startup_max_wait
        self.echo = echo

        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "SnippetStore":
        return cls(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_timeout=settings.db_pool_timeout,
            connect_timeout=settings.db_connect_timeout,
            command_timeout=settings.db_command_timeout,
            startup_attempts=settings.db_startup_attempts,
            startup_min_wait=settings.db_startup_min_wait,
            startup_max_wait=settings.db_startup_max_wait,
            echo=settings.log_level == "DEBUG",
        )

    # ── Engine configuration ──────────────────────────────────────────────

    def _engine_options(self) -> Dict[str, Any]:
        url = make_url(self.database_url)
        options: Dict[str, Any] = {
            "pool_pre_ping": self.pool_pre_ping,
            "echo": self.echo,
        }
        if url.get_backend_name() == "sqlite":
            # sqlite3 busy timeout; pool sizing does not apply
            options["connect_args"] = {"timeout": self.connect_timeout}
            return options

        options.update(
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
            pool_timeout=self.pool_timeout,
            pool_recycle=3600,
        )
        if url.get_driver_name() == "asyncpg":
            options["connect_args"] = {
                "timeout": self.connect_timeout,
                "command_timeout": self.command_timeout,
            }
        return options

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("SnippetStore is not connected; call connect() first")
        return self._engine

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """
        Create the engine and wait until the database answers.

        Raises:
            UpstreamUnavailableError: database still unreachable after
                `startup_attempts` tries.
        """
        if self._engine is not None:
            return

        self._engine = create_async_engine(self.database_url, **self._engine_options())
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type((SQLAlchemyError, OSError, TimeoutError)),
                stop=stop_after_attempt(self.startup_attempts),
                wait=wait_exponential_jitter(
                    initial=self.startup_min_wait,
                    max=self.startup_max_wait,
                ),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    async with self._engine.connect() as conn:
                        await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError, TimeoutError) as e:
            logger.error("Database unreachable after %d attempts: %s", self.startup_attempts, e)
            await self.close()
            raise UpstreamUnavailableError(
                service="database",
                context={"error_type": type(e).__name__},
            ) from e

        logger.info("Connected to %s database", make_url(self.database_url).get_backend_name())

    async def close(self) -> None:
        """Dispose the engine and every pooled connection. Safe to call twice."""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._session_factory = None

    async def __aenter__(self) -> "SnippetStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ── Sessions ──────────────────────────────────────────────────────────

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        One transaction: commit if the block succeeds, roll back otherwise.

        Exceptions are re-raised unchanged; translating them is the caller's job.
        """
        if self._session_factory is None:
            raise RuntimeError("SnippetStore is not connected; call connect() first")

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> bool:
        """Lightweight connectivity check for /health."""
        if self._engine is None:
            return False
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError, TimeoutError) as e:
            logger.warning("Database ping failed: %s", e)
            return False

    async def create_schema(self) -> None:
        """Create all tables (development and tests; production uses Alembic)."""
        # Models must be imported so their tables register with Base.metadata
        from app.models import snippet  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
