"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import BigInteger, Engine, create_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from mainframe.config import MainframeConfig
from mainframe.database.models import Base
from mainframe.database.seed import default_level_table, seed_catalogs
from mainframe.engine.progression import LevelTable

# ---------------------------------------------------------------------------
# Map BigInteger → INTEGER so SQLite treats it like its native rowid type.
# ---------------------------------------------------------------------------
_sqlite_types_registered = False


def _register_sqlite_compat():
    """Register SQLite type compilation overrides (idempotent)."""
    global _sqlite_types_registered
    if _sqlite_types_registered:
        return

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _sqlite_types_registered = True


_register_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Mainframe tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def seeded_engine(db_engine: Engine) -> Engine:
    """``db_engine`` with the card and achievement catalogs loaded."""
    seed_catalogs(db_engine)
    return db_engine


@pytest.fixture
def config() -> MainframeConfig:
    return MainframeConfig()


@pytest.fixture
def levels() -> LevelTable:
    return default_level_table()


class PickCard:
    """Stand-in for ``random.Random`` that always draws the named card."""

    def __init__(self, sysname: str):
        self.sysname = sysname

    def choices(self, population, weights=None, k=1):
        return [next(c for c in population if c.sysname == self.sysname)] * k


@pytest.fixture
def pick_card():
    """Factory: ``pick_card("economy")`` forces the next gacha draw."""
    return PickCard
