"""
Database Session Management - Async SQLAlchemy engines and sessions.

Writes (fulfillment, checkout, wallet) go to the primary; dashboard listings
may be served from a read replica when DATABASE_READ_URL is set.
"""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from marketplace.config import settings
from marketplace.observability import get_logger
from marketplace.observability.tracing import instrument_sqlalchemy

logger = get_logger(__name__)

WRITE = "write"
READ = "read"

# Lazily created per role, disposed by close_engines()
_engines: dict[str, AsyncEngine] = {}
_session_factories: dict[str, async_sessionmaker[AsyncSession]] = {}


def _database_url(role: str) -> str:
    return settings.read_database_url if role == READ else settings.database_url


def get_engine(role: str = WRITE) -> AsyncEngine:
    """Get or create the engine for the primary (write) or replica (read)."""
    engine = _engines.get(role)
    if engine is None:
        engine = create_async_engine(
            _database_url(role),
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
            pool_pre_ping=True,
            echo=settings.log_level == "DEBUG",
        )
        instrument_sqlalchemy(engine)
        _engines[role] = engine
        logger.info("database_engine_created", role=role)
    return engine


def get_session_factory(role: str = WRITE) -> async_sessionmaker[AsyncSession]:
    factory = _session_factories.get(role)
    if factory is None:
        # Fulfilled orders are read back after commit to build the delivery notice
        factory = async_sessionmaker(get_engine(role), class_=AsyncSession, expire_on_commit=False)
        _session_factories[role] = factory
    return factory


@asynccontextmanager
async def get_write_session() -> AsyncIterator[AsyncSession]:
    """
    Session on the primary for background jobs and scripts.

    Usage:
        async with get_write_session() as session:
            await session.execute(...)
            await session.commit()
    """
    async with get_session_factory(WRITE)() as session:
        yield session


async def get_write_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for a primary session.

    Usage:
        @router.post("/endpoint")
        async def endpoint(db: AsyncSession = Depends(get_write_db)):
            ...
    """
    async with get_session_factory(WRITE)() as session:
        yield session


async def get_read_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for a replica session (falls back to the primary)."""
    async with get_session_factory(READ)() as session:
        yield session


async def close_engines() -> None:
    """Dispose every engine (graceful shutdown)."""
    for role, engine in list(_engines.items()):
        await engine.dispose()
        logger.info("database_engine_disposed", role=role)
    _engines.clear()
    _session_factories.clear()
