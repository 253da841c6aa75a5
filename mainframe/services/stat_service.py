"""
mainframe.services.stat_service — Keyed Stat Counters
======================================================

Each write is one ``INSERT ... ON CONFLICT ... DO UPDATE`` so concurrent
increments for the same ``(user, stat_key)`` never lose an update.
Supported by PostgreSQL and SQLite ≥ 3.24.
"""

from __future__ import annotations

from sqlalchemy import Engine, select, text
from sqlalchemy.orm import Session

from mainframe.database.engine import get_session, reconnecting
from mainframe.database.models import TimestampField, UserStat
from mainframe.errors import NotFoundError, ValidationError, store_errors
from mainframe.services.user_service import touch

_UPSERT_INCREMENT = text("""
    INSERT INTO user_stats (user_id, stat_key, stat_value)
    VALUES (:user_id, :stat_key, :value)
    ON CONFLICT (user_id, stat_key)
    DO UPDATE SET stat_value = user_stats.stat_value + excluded.stat_value
""")

_UPSERT_REPLACE = text("""
    INSERT INTO user_stats (user_id, stat_key, stat_value)
    VALUES (:user_id, :stat_key, :value)
    ON CONFLICT (user_id, stat_key)
    DO UPDATE SET stat_value = excluded.stat_value
""")


def upsert_stat(session: Session, user_id: int, key: str, value: int, increment: bool) -> None:
    session.execute(
        _UPSERT_INCREMENT if increment else _UPSERT_REPLACE,
        {"user_id": user_id, "stat_key": key, "value": int(value)},
    )


@reconnecting
def update_stat(
    engine: Engine,
    user_id: int,
    key: str,
    value: int,
    increment: bool = False,
) -> None:
    """Set or add to a user's stat, creating it on first write.

    Also refreshes the user's ``last_activity``.  Raises
    :class:`NotFoundError` for an unknown user without writing anything.
    """
    if not key:
        raise ValidationError(
            "Stat key is required", fields={"stat_name": "Required"},
            operation="update_stat", user_id=user_id,
        )
    with store_errors("update_stat", user_id), get_session(engine) as session:
        if not touch(session, user_id, TimestampField.LAST_ACTIVITY):
            raise NotFoundError("User not found", operation="update_stat", user_id=user_id)
        upsert_stat(session, user_id, key, value, increment)


def get_stats(session: Session, user_id: int) -> dict[str, int]:
    rows = session.execute(
        select(UserStat.stat_key, UserStat.stat_value).where(UserStat.user_id == user_id)
    ).all()
    return {row.stat_key: row.stat_value for row in rows}


def get_stat(session: Session, user_id: int, key: str) -> int | None:
    return session.scalar(
        select(UserStat.stat_value).where(
            UserStat.user_id == user_id, UserStat.stat_key == key,
        )
    )


@reconnecting
def read_stats(engine: Engine, user_id: int) -> dict[str, int]:
    with store_errors("read_stats", user_id), get_session(engine) as session:
        return get_stats(session, user_id)


@reconnecting
def read_stat(engine: Engine, user_id: int, key: str) -> int | None:
    with store_errors("read_stat", user_id), get_session(engine) as session:
        return get_stat(session, user_id, key)
