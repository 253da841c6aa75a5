"""
mainframe.services.ranking_service — Leaderboards
==================================================

Each :class:`RankingKind` reads either a users column or one stat key.
Ties are broken by local user id (earlier registration ranks first).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, Select, func, select

from mainframe.constants import STAT_CHECKINS, STAT_POINTS_SPENT, STAT_REDEEMS
from mainframe.database.engine import get_session, reconnecting
from mainframe.database.models import User, UserAchievement, UserStat
from mainframe.errors import ValidationError, store_errors

MAX_RANKING_LIMIT = 100


class RankingKind(enum.StrEnum):
    EXPERIENCE = "exp"
    SPEND = "spender"
    REDEMPTIONS = "redeems"
    RECENT_CHECKINS = "checkins_last"
    TOTAL_CHECKINS = "checkins"
    ACHIEVEMENTS = "achievements"


# Kinds sourced from the stat store
_STAT_KINDS: dict[RankingKind, str] = {
    RankingKind.SPEND: STAT_POINTS_SPENT,
    RankingKind.REDEMPTIONS: STAT_REDEEMS,
    RankingKind.TOTAL_CHECKINS: STAT_CHECKINS,
}


@dataclass(frozen=True, slots=True)
class RankingEntry:
    rank: int
    user_id: int
    display_name: str
    avatar: str | None
    value: float | int | datetime

    def as_dict(self) -> dict:
        value = self.value.isoformat() if isinstance(self.value, datetime) else self.value
        return {
            "rank": self.rank,
            "local_id": self.user_id,
            "twitch_display_name": self.display_name,
            "avatar": self.avatar,
            "value": value,
        }


def parse_kind(kind: str | RankingKind) -> RankingKind:
    try:
        return RankingKind(kind)
    except ValueError:
        valid = ", ".join(k.value for k in RankingKind)
        raise ValidationError(
            f"Unknown ranking type: {kind!r}",
            fields={"rank_type": f"Must be one of: {valid}"},
            operation="get_ranking",
        ) from None


def _ranking_query(kind: RankingKind) -> Select:
    if kind in _STAT_KINDS:
        return (
            select(User, UserStat.stat_value)
            .join(UserStat, UserStat.user_id == User.id)
            .where(UserStat.stat_key == _STAT_KINDS[kind])
            .order_by(UserStat.stat_value.desc(), User.id)
        )
    if kind is RankingKind.EXPERIENCE:
        return select(User, User.experience).order_by(User.experience.desc(), User.id)
    if kind is RankingKind.RECENT_CHECKINS:
        return (
            select(User, User.last_checkin)
            .where(User.last_checkin.is_not(None))
            .order_by(User.last_checkin.desc(), User.id)
        )
    unlocked = func.count(UserAchievement.achievement_id).label("unlocked")
    return (
        select(User, unlocked)
        .join(UserAchievement, UserAchievement.user_id == User.id)
        .group_by(User.id)
        .order_by(unlocked.desc(), User.id)
    )


@reconnecting
def get_ranking(
    engine: Engine,
    kind: str | RankingKind,
    limit: int = 5,
) -> list[RankingEntry]:
    """Top *limit* users for *kind*, best first.

    Raises
    ------
    ValidationError
        For an unknown kind or a limit outside ``1..100``.
    """
    kind = parse_kind(kind)
    if not 1 <= limit <= MAX_RANKING_LIMIT:
        raise ValidationError(
            "Invalid ranking limit",
            fields={"items_to_show": f"Must be between 1 and {MAX_RANKING_LIMIT}"},
            operation="get_ranking",
        )

    with store_errors(f"ranking_{kind.value}"), get_session(engine) as session:
        rows = session.execute(_ranking_query(kind).limit(limit)).all()

    return [
        RankingEntry(
            rank=i + 1,
            user_id=user.id,
            display_name=user.twitch_display_name,
            avatar=user.twitch_avatar,
            value=value,
        )
        for i, (user, value) in enumerate(rows)
    ]
