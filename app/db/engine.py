# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# DESIGN DECISION: Async SQLAlchemy Engine everywhere.
# FastAPI is async, and the Celery worker runs the same async pipeline code
# on a per-process event loop (see workers/tasks.py). One driver family
# (asyncpg in production, aiosqlite in tests) serves both.
#
# DESIGN DECISION: No module-level engine.
# Engines bind connections to the event loop that first uses them. The API
# and each worker process therefore build their own engine from Settings at
# startup (app.services.container.build_services), and tests build one per
# temporary database.
#
# SESSION LIFECYCLE:
# Sessions are never handed to route handlers. DocumentStore opens one
# short-lived session per operation and commits before returning, so each
# store call is one atomic write.
# =============================================================================

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from app.db.models import Base

logger = logging.getLogger(__name__)


def create_engine_for(
    database_url: str,
    debug: bool = False,
    pooled: bool = True,
) -> AsyncEngine:
    """
    Build an async engine for the given URL.

    Key parameters:
    - echo=debug: logs every SQL statement. Useful in development.
    - pool_size=5 / max_overflow=10 (PostgreSQL only): enough for one API
      process; tune for real concurrency.
    - pooled=False: NullPool, a fresh connection per session. Used where
      connections must not be shared across event loops.
    """
    kwargs: dict = {"echo": debug}
    if not pooled:
        kwargs["poolclass"] = NullPool
    elif database_url.startswith("postgresql"):
        kwargs["pool_size"] = 5
        kwargs["max_overflow"] = 10

    engine = create_async_engine(database_url, **kwargs)
    logger.info("Created database engine (%s)", engine.url.render_as_string(hide_password=True))
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory for the store.

    expire_on_commit=False: loaded objects stay readable after commit.
    Without it, touching an attribute of a returned Document would trigger
    a lazy load outside any session, which fails under asyncio.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create any missing tables. Local development and tests only."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")
