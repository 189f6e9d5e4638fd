"""Async SQLAlchemy engine and session creation."""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from renderq.config import settings


def create_db_engine(url: str | None = None) -> AsyncEngine:
    """Create an async SQLAlchemy engine with bounded store calls."""
    url = url or settings.effective_database_url
    timeout = settings.store_timeout_seconds

    # SQLite does not support pool_size / max_overflow
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=False, connect_args={"timeout": timeout})
        _serialize_sqlite_transactions(engine)
        return engine

    connect_args: dict = {}
    if "asyncpg" in url:
        connect_args["command_timeout"] = timeout
    return create_async_engine(
        url,
        echo=False,
        pool_size=10,
        max_overflow=20,
        pool_timeout=timeout,
        connect_args=connect_args,
    )


def _serialize_sqlite_transactions(engine: AsyncEngine) -> None:
    """Start every SQLite transaction with BEGIN IMMEDIATE.

    Overlapping ticks then queue on the write lock (bounded by the busy
    timeout) instead of failing with "database is locked" when two deferred
    transactions both try to upgrade.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
