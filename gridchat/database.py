"""
Grid Chat – Async SQLAlchemy engine, session factory, and declarative base.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from gridchat.config import settings


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine for ``url``.

    SQLite connections are cheap, so they are not pooled and get foreign keys
    switched on as they open. PostgreSQL behind PgBouncer (transaction mode)
    cannot use prepared statement caching.
    """
    kwargs = {"echo": echo, "future": True}
    if "postgresql" in url:
        kwargs["connect_args"] = {"statement_cache_size": 0}

    if url.startswith("sqlite"):
        kwargs["poolclass"] = NullPool

    new_engine = create_async_engine(url, **kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(new_engine.sync_engine, "connect")
        def _enable_sqlite_fks(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


# ── Engine ──
engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# ── Session factory ──
async_session = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def new_id() -> str:
    """Primary keys are random UUID strings, matching the club's other tables."""
    return str(uuid.uuid4())


_last_timestamp = datetime.min.replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    """Strictly increasing UTC timestamps for this process.

    Messages are ordered by creation time, so two appends in the same
    microsecond must still get distinct, ordered values.
    """
    global _last_timestamp
    now = datetime.now(timezone.utc)
    if now <= _last_timestamp:
        now = _last_timestamp + timedelta(microseconds=1)
    _last_timestamp = now
    return now


# ── Declarative base ──
class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


async def create_tables(bind: AsyncEngine = engine) -> None:
    """Create any missing tables (no migrations tool in this service)."""
    # Model modules must be imported so their tables are on the metadata.
    import gridchat.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ── Dependency for FastAPI routes ──
async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async database session, auto-closed on exit."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
