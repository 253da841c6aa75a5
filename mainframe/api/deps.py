"""
mainframe.api.deps — FastAPI dependency injection
==================================================
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from sqlalchemy import Engine

from mainframe.config import MainframeConfig, load_config
from mainframe.database.engine import create_db_engine
from mainframe.database.seed import default_level_table
from mainframe.engine.progression import LevelTable

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> MainframeConfig:
    """Load ``MAINFRAME_CONFIG`` (default ``config.yaml``); defaults if absent."""
    path = Path(os.getenv("MAINFRAME_CONFIG", "config.yaml"))
    if not path.exists():
        logger.warning("No config file at %s — using built-in defaults", path)
        return MainframeConfig()
    return load_config(path)


def get_levels() -> LevelTable:
    return default_level_table()
