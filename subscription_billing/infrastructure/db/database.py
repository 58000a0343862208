"""
Database Configuration for Subscription Billing

Async SQLAlchemy engine and session management.

Every unit of work (an API request, a webhook delivery, a maintenance
script) gets one session that commits when the work finishes and rolls back
on any exception. Subscription writes take row locks, so the connection sets
a Postgres lock_timeout: a writer stuck behind another transaction fails
instead of waiting forever.
"""

import logging
import re
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
from urllib.parse import quote_plus

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from subscription_billing.config.settings import get_settings
from subscription_billing.infrastructure.exceptions import ConfigurationError


logger = logging.getLogger(__name__)

APPLICATION_NAME = "subscription-billing"


def resolve_database_url() -> str:
    """
    Get the asyncpg connection URL.

    DATABASE_URL wins when set (plain postgres:// schemes are upgraded to
    the asyncpg driver). Otherwise the Supabase direct connection is derived
    from SUPABASE_URL and SUPABASE_PASSWORD.

    Raises:
        ConfigurationError: neither source is usable
    """
    settings = get_settings()

    if settings.database_url:
        for scheme in ("postgresql://", "postgres://"):
            if settings.database_url.startswith(scheme):
                return settings.database_url.replace(scheme, "postgresql+asyncpg://", 1)
        return settings.database_url

    if not settings.supabase_password:
        raise ConfigurationError(
            "Either DATABASE_URL or SUPABASE_PASSWORD is required",
            missing_keys=["DATABASE_URL", "SUPABASE_PASSWORD"],
        )

    match = re.match(r"https?://([^.]+)\.supabase\.co", settings.supabase_url)
    if not match:
        raise ConfigurationError(f"Invalid SUPABASE_URL format: {settings.supabase_url}")

    return (
        f"postgresql+asyncpg://postgres:{quote_plus(settings.supabase_password)}"
        f"@db.{match.group(1)}.supabase.co:5432/postgres"
    )


class DatabaseManager:
    """Owns the process-wide engine and session factory, created lazily."""

    def __init__(self, url: Optional[str] = None):
        self._url = url
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._initialize_engine()
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._initialize_engine()
        return self._session_factory

    def _initialize_engine(self) -> None:
        settings = get_settings()

        self._engine = create_async_engine(
            self._url or resolve_database_url(),
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_pre_ping=True,
            connect_args={
                "server_settings": {
                    "application_name": APPLICATION_NAME,
                    "lock_timeout": str(settings.database_lock_timeout_ms),
                }
            },
        )

        # Objects stay readable after commit so services can build
        # response models from them.
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info(
            f"Database engine created (pool_size={settings.database_pool_size}, "
            f"lock_timeout={settings.database_lock_timeout_ms}ms)"
        )

    async def ping(self) -> None:
        async with self.session_factory() as session:
            await session.execute(text("SELECT 1"))

    async def close(self) -> None:
        """Dispose of the connection pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None


_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """Get or create the process-wide database manager."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Session for work outside a request (scripts, maintenance jobs).

    Usage:
        async with get_session_context() as session:
            await SubscriptionService(session).repair_billing_periods()
    """
    async with get_db_manager().session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding the request's session.

    Usage:
        @router.get("/subscriptions/status")
        async def status(session: SessionDep):
            ...
    """
    async with get_session_context() as session:
        yield session


async def init_db() -> None:
    """Open the pool and check connectivity (app startup)."""
    await get_db_manager().ping()


async def close_db() -> None:
    """Close the pool (app shutdown)."""
    await get_db_manager().close()
