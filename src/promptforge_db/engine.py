"""Async SQLAlchemy engine and session factory.

One engine per process, built on first use.  The API request handlers, the
in-process ``TaskRunner`` and the standalone worker all draw their sessions
from ``get_session_factory()``.

The task runner holds connections across database restarts, so pooled
connections are pinged on checkout (``pool_pre_ping``) and recycled after
``PG_POOL_RECYCLE`` seconds.  Call ``dispose_engine()`` on shutdown.
"""

import logging
import os

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from promptforge_db.config import get_async_url

logger = logging.getLogger(__name__)

POOL_SIZE = int(os.getenv("PG_POOL_SIZE", "5"))
MAX_OVERFLOW = int(os.getenv("PG_MAX_OVERFLOW", "10"))
POOL_RECYCLE_SECONDS = int(os.getenv("PG_POOL_RECYCLE", "1800"))
ECHO_SQL = os.getenv("PG_ECHO", "").strip().lower() in ("1", "true", "yes")

_engine: AsyncEngine | None = None
_sessions: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first call."""
    global _engine
    if _engine is None:
        url = make_url(get_async_url())
        _engine = create_async_engine(
            url,
            echo=ECHO_SQL,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_pre_ping=True,
            pool_recycle=POOL_RECYCLE_SECONDS,
        )
        logger.info(
            "Database engine created: %s (pool_size=%d, max_overflow=%d)",
            url.render_as_string(hide_password=True), POOL_SIZE, MAX_OVERFLOW,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Sessions keep attributes loaded after commit; workers read them afterwards."""
    global _sessions
    if _sessions is None:
        _sessions = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _sessions


async def dispose_engine() -> None:
    """Close pooled connections and forget the engine."""
    global _engine, _sessions
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _sessions = None
    logger.info("Database engine disposed")
