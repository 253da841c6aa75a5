"""
mainframe.database.engine — Database Connection, Sessions & Retry
==================================================================

SQLAlchemy + psycopg2 is synchronous.  The FastAPI routes are ``async``, so
every service call is shipped to a worker thread through :func:`run_db`,
which keeps the event loop free while the query runs.

The pool is small and ``pool_pre_ping`` replaces stale connections
before they are handed out.  If a connection still dies mid-call, a
service function marked :func:`reconnecting` retries its own unit of work
exactly once on a fresh connection.  Multi-step actions are never retried
as a whole: each step retries itself, and steps already committed stay
committed.

Usage::

    from mainframe.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS + catalog seed

    profile = await run_db(build_profile, engine, user_id)
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from mainframe.database.models import Base
from mainframe.errors import TransientStoreError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from *url* or ``DATABASE_URL``.

    Pool sizing:
    * ``pool_size=3`` — three persistent connections.
    * ``max_overflow=2`` — short bursts beyond that.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=60`` — drop connections idle for a minute.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is not set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        echo=False,
        pool_size=3,
        max_overflow=2,
        pool_pre_ping=True,   # Reconnect stale connections automatically
        pool_timeout=10,
        pool_recycle=60,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables and seed the card / achievement catalogs.

    Safe to call on every startup.  In production the schema is managed by
    Alembic; ``create_all`` covers dev and test databases.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    from mainframe.database.seed import seed_catalogs

    seed_catalogs(engine)


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Yield a :class:`Session` that commits on success and rolls back on
    exception.

    Objects stay loaded after commit so services can hand them back to the
    caller once the session is closed.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Retry + async bridge
# ---------------------------------------------------------------------------
def call_with_reconnect(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run *func*, retrying once if its connection was invalidated.

    Only :class:`TransientStoreError` raised from a dropped connection is
    retried.  A second failure propagates to the caller.
    """
    try:
        return func(*args, **kwargs)
    except TransientStoreError as exc:
        if not exc.reconnectable:
            raise
        logger.warning(
            "Stale connection in %s (user %s), reconnecting and retrying once",
            exc.operation, exc.user_id,
        )
    return func(*args, **kwargs)


def reconnecting(func: Callable[P, T]) -> Callable[P, T]:
    """Decorate a single unit of work with :func:`call_with_reconnect`.

    Only apply this to functions that open exactly one session.
    """

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        return call_with_reconnect(func, *args, **kwargs)

    return wrapper


async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** service function on a background thread.

    Every service call made from an ``async`` route goes through here::

        result = await run_db(check_in, engine, config, viewer)

    No retry happens at this level; see :func:`reconnecting`.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
