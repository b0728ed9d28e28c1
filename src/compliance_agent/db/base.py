"""Database connection and session management.

The store is a customer-owned Postgres; the agent identifies itself with an
``application_name`` so operators can tell its sessions apart.
"""

import time

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from compliance_agent.config import settings
from compliance_agent.observability.metrics import metrics


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    connect_args={"server_settings": {"application_name": settings.db_application_name}},
)


def attach_query_metrics(target_engine: AsyncEngine) -> None:
    """Attach SQLAlchemy event listeners for query metrics."""
    sync_engine = target_engine.sync_engine
    if getattr(sync_engine, "_compliance_agent_metrics_attached", False):
        return

    @event.listens_for(sync_engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info["query_start_time"] = time.perf_counter()

    @event.listens_for(sync_engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        start_time = conn.info.pop("query_start_time", None)
        if start_time is None:
            return
        duration_ms = (time.perf_counter() - start_time) * 1000.0
        metrics.inc_counter("db.query.count")
        metrics.observe("db.query.duration_ms", duration_ms)

    @event.listens_for(sync_engine, "handle_error")
    def handle_error(exception_context):
        if exception_context.connection is not None:
            exception_context.connection.info.pop("query_start_time", None)
        metrics.inc_counter("db.query.errors")

    sync_engine._compliance_agent_metrics_attached = True


# Create async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

attach_query_metrics(engine)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the active session factory (tests swap the module global)."""
    return async_session_factory


async def init_db() -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()


async def ping_db() -> bool:
    """Return True when the store answers a trivial query."""
    async with get_session_factory()() as session:
        await session.execute(text("SELECT 1"))
    return True

