"""
mainframe.services.achievement_service — Achievement Unlocks
=============================================================

Loads the catalog rows for a stat key, lets the pure engine decide which
are newly earned, and records unlocks.  The ``user_achievements`` primary
key is the real duplicate guard: if two requests race to unlock the same
achievement, the loser's insert fails inside a SAVEPOINT and is skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mainframe.database.engine import get_session, reconnecting
from mainframe.database.models import Achievement, UserAchievement
from mainframe.engine.achievements import achievement_label, eligible_achievements
from mainframe.errors import store_errors
from mainframe.services.stat_service import get_stat

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UnlockedAchievement:
    sysname: str
    name: str
    tier: int
    description: str | None
    achieved_at: datetime | None

    def as_dict(self) -> dict:
        return {
            "sysname": self.sysname,
            "achievement_name": self.name,
            "achievement_tier": self.tier,
            "description": self.description,
            "achieved_at": self.achieved_at.isoformat() if self.achieved_at else None,
        }


def get_unlocked_ids(session: Session, user_id: int) -> set[int]:
    rows = session.scalars(
        select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
    ).all()
    return set(rows)


@reconnecting
def check_and_award(engine: Engine, user_id: int, stat_key: str) -> list[str]:
    """Unlock every achievement on *stat_key* the user now qualifies for.

    Returns the newly unlocked achievements as ``"<name> <tier>"`` labels,
    ordered by name then tier.  Calling it again without a stat change
    returns an empty list.
    """
    with store_errors("check_achievements", user_id), get_session(engine) as session:
        value = get_stat(session, user_id, stat_key)
        if value is None:
            return []

        candidates = session.scalars(
            select(Achievement).where(Achievement.stat_key == stat_key)
        ).all()
        earned = eligible_achievements(
            candidates, stat_key, value, get_unlocked_ids(session, user_id),
        )

        awarded: list[str] = []
        for achievement in earned:
            try:
                with session.begin_nested():   # SAVEPOINT
                    session.add(UserAchievement(user_id=user_id, achievement_id=achievement.id))
                    session.flush()
            except IntegrityError:
                logger.debug(
                    "Achievement %d already unlocked for user %d", achievement.id, user_id,
                )
                continue
            awarded.append(achievement_label(achievement))

    if awarded:
        logger.info("User %d unlocked: %s", user_id, ", ".join(awarded))
    return awarded


def get_unlocked(session: Session, user_id: int) -> list[UnlockedAchievement]:
    """Unlocked achievements, one per series at its highest tier, newest first."""
    rows = session.execute(
        select(Achievement, UserAchievement.achieved_at)
        .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
        .where(UserAchievement.user_id == user_id)
        .order_by(Achievement.sysname, Achievement.tier.desc())
    ).all()

    best: dict[str, UnlockedAchievement] = {}
    for achievement, achieved_at in rows:
        if achievement.sysname in best:
            continue
        best[achievement.sysname] = UnlockedAchievement(
            sysname=achievement.sysname,
            name=achievement.name,
            tier=achievement.tier,
            description=achievement.description,
            achieved_at=achieved_at,
        )

    unlocked = sorted(best.values(), key=lambda a: a.name)
    unlocked.sort(key=lambda a: (a.achieved_at is not None, a.achieved_at), reverse=True)
    return unlocked


@reconnecting
def list_unlocked(engine: Engine, user_id: int) -> list[UnlockedAchievement]:
    with store_errors("list_achievements", user_id), get_session(engine) as session:
        return get_unlocked(session, user_id)
