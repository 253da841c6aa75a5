"""
mainframe.database.seed — Catalog & Level Table Loader
=======================================================

The card catalog, achievement catalog and level table ship as YAML fixtures
in ``mainframe/seeds/``.  Catalog rows are inserted on startup when missing;
existing rows (possibly edited in the database) are never overwritten.
The level table is never persisted; it is loaded straight into a
:class:`LevelTable`.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from sqlalchemy import Engine, select, text
from sqlalchemy.orm import Session

from mainframe.database.models import Achievement, Card
from mainframe.engine.progression import LevelTable

logger = logging.getLogger(__name__)

SEEDS_DIR = Path(__file__).resolve().parent.parent / "seeds"


def _load_yaml(filename: str, seeds_dir: Path = SEEDS_DIR) -> Any:
    """Load a YAML file from the seeds directory."""
    path = seeds_dir / filename
    if not path.exists():
        logger.warning("Seed file not found: %s", path)
        return {}
    with open(path, encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Level table
# ---------------------------------------------------------------------------
def load_level_table(path: str | Path | None = None) -> LevelTable:
    """Read the level table from *path* (defaults to ``seeds/levels.yaml``)."""
    if path is None:
        data = _load_yaml("levels.yaml")
    else:
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    return LevelTable.from_rows(data.get("levels", []))


@lru_cache(maxsize=1)
def default_level_table() -> LevelTable:
    return load_level_table()


# ---------------------------------------------------------------------------
# Catalog seeders
# ---------------------------------------------------------------------------
def _seed_cards(session: Session) -> int:
    data = _load_yaml("cards.yaml")
    existing = set(session.scalars(select(Card.sysname)).all())

    count = 0
    for c in data.get("cards", []):
        if c["sysname"] in existing:
            continue
        session.add(Card(
            id=c.get("id"),
            catalog_no=c["catalog_no"],
            name=c["name"],
            sysname=c["sysname"],
            description=c.get("description"),
            is_premium=bool(c.get("is_premium", False)),
            is_pullable=bool(c.get("is_pullable", True)),
            weight=float(c.get("weight", 1.0)),
        ))
        count += 1
    return count


def _seed_achievements(session: Session) -> int:
    data = _load_yaml("achievements.yaml")
    existing = {
        (sysname, tier)
        for sysname, tier in session.execute(select(Achievement.sysname, Achievement.tier)).all()
    }

    count = 0
    for a in data.get("achievements", []):
        key = (a["sysname"], int(a["tier"]))
        if key in existing:
            continue
        session.add(Achievement(
            sysname=a["sysname"],
            name=a["name"],
            description=a.get("description"),
            tier=int(a["tier"]),
            stat_key=a["stat_key"],
            threshold=int(a["threshold"]),
        ))
        count += 1
    return count


_SYNC_CARD_SEQUENCE = text(
    "SELECT setval(pg_get_serial_sequence('cards', 'id'), (SELECT MAX(id) FROM cards))"
)


def _sync_card_sequence(session: Session) -> None:
    """Move the PostgreSQL id sequence past the explicitly numbered seed cards."""
    if session.get_bind().dialect.name == "postgresql":
        session.execute(_SYNC_CARD_SEQUENCE)


def seed_catalogs(engine: Engine) -> None:
    """Insert catalog rows that don't yet exist.  Safe to call repeatedly."""
    session = Session(engine)
    try:
        cards = _seed_cards(session)
        session.flush()
        if cards:
            _sync_card_sequence(session)
        achievements = _seed_achievements(session)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if cards or achievements:
        logger.info("Seeded %d cards and %d achievements.", cards, achievements)
