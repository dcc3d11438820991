"""
Database configuration and session management.

SQLite (aiosqlite) is used for development and tests, PostgreSQL (asyncpg)
in production. All statements used by the auth layer are portable:
single-row UPDATEs with WHERE-clause preconditions and plain SELECTs.
"""

import logging

from config import get_settings
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

settings = get_settings()
logger = logging.getLogger(__name__)

# Convert URL for async drivers
database_url = settings.DATABASE_URL
if database_url.startswith("postgresql://"):
    database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

is_sqlite = database_url.startswith("sqlite")

engine_kwargs: dict = {
    "echo": False,
}

if not is_sqlite:
    # pool_pre_ping: survive DB restarts without surfacing stale connections.
    # Total max connections = pool_size + max_overflow.
    engine_kwargs["pool_pre_ping"] = True
    engine_kwargs["pool_size"] = 5
    engine_kwargs["max_overflow"] = 10

engine = create_async_engine(database_url, **engine_kwargs)

# SQLite does not enforce foreign keys by default - must be enabled per connection
if is_sqlite:
    from sqlalchemy import event as sa_event

    @sa_event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """
    Dependency that yields a database session.

    Routes call db.commit() explicitly when they want to persist changes.
    The rollback on exception is kept as a safety net.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker:
    """
    Dependency returning the session factory for detached background writes.

    Fire-and-forget work outlives the request session, so it opens its own.
    """
    return AsyncSessionLocal


async def init_db():
    """Create tables for all registered models."""
    # Import models so they register on Base.metadata
    from models import (  # noqa: F401
        auth_audit,
        driver,
        driver_trusted_device,
        user,
        user_session,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)

    logger.info("Database initialized successfully")
