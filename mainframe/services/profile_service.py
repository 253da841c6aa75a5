"""
mainframe.services.profile_service — Full User Snapshot
========================================================

The primary read path.  Composes the derived level, card collection, stats,
unlocked achievements and team into one :class:`Profile`.  Pure read: no
writes, no locks.  Each part is read independently, so concurrent writers
may interleave between them; an empty part (no team, no achievements) is a
valid state, never an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from mainframe.config import MainframeConfig
from mainframe.database.engine import get_session, reconnecting
from mainframe.database.models import TeamMembership, User
from mainframe.database.seed import default_level_table
from mainframe.engine.progression import LevelTable
from mainframe.errors import NotFoundError, store_errors
from mainframe.services.achievement_service import UnlockedAchievement, get_unlocked
from mainframe.services.card_service import OwnedCard, get_cards
from mainframe.services.stat_service import get_stats
from mainframe.services.user_service import get_user, get_user_by_twitch_id


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True, slots=True)
class Profile:
    user_id: int
    twitch_id: str
    display_name: str
    avatar: str | None
    experience: float
    is_premium: bool
    sub_months: int
    level: int
    title: str
    level_progress: int
    cards: list[OwnedCard] = field(default_factory=list)
    default_card: OwnedCard | None = None
    stats: dict[str, int] = field(default_factory=dict)
    achievements: list[UnlockedAchievement] = field(default_factory=list)
    team: str | None = None
    last_login: datetime | None = None
    last_checkin: datetime | None = None
    last_activity: datetime | None = None
    reg_date: datetime | None = None

    def as_dict(self) -> dict:
        return {
            "local_id": self.user_id,
            "twitch_id": self.twitch_id,
            "twitch_display_name": self.display_name,
            "avatar": self.avatar,
            "exp": self.experience,
            "is_premium": self.is_premium,
            "sub_months": self.sub_months,
            "level": self.level,
            "title": self.title,
            "level_progress": self.level_progress,
            "user_card": self.default_card.as_dict() if self.default_card else None,
            "user_cards": [c.as_dict() for c in self.cards],
            "stats": dict(self.stats),
            "achievements": [a.as_dict() for a in self.achievements],
            "team": self.team,
            "last_login": _iso(self.last_login),
            "last_checkin": _iso(self.last_checkin),
            "last_activity": _iso(self.last_activity),
            "reg_date": _iso(self.reg_date),
        }


def get_team_name(session: Session, user_id: int, team_names: dict[int, str]) -> str | None:
    """Team display name for the user's first membership row, if any."""
    team_number = session.scalar(
        select(TeamMembership.team_number)
        .where(TeamMembership.user_id == user_id)
        .order_by(TeamMembership.id)
        .limit(1)
    )
    if team_number is None:
        return None
    return team_names.get(team_number)


def _compose(
    session: Session,
    user: User,
    levels: LevelTable,
    config: MainframeConfig,
) -> Profile:
    level = levels.derive(user.experience)
    collection = get_cards(session, user.id)
    return Profile(
        user_id=user.id,
        twitch_id=user.twitch_id,
        display_name=user.twitch_display_name,
        avatar=user.twitch_avatar,
        experience=user.experience,
        is_premium=user.is_premium,
        sub_months=user.sub_months,
        level=level.level,
        title=level.title,
        level_progress=level.progress,
        cards=collection.cards,
        default_card=collection.default,
        stats=get_stats(session, user.id),
        achievements=get_unlocked(session, user.id),
        team=get_team_name(session, user.id, config.team_names),
        last_login=user.last_login,
        last_checkin=user.last_checkin,
        last_activity=user.last_activity,
        reg_date=user.reg_date,
    )


@reconnecting
def build_profile(
    engine: Engine,
    user_id: int,
    config: MainframeConfig | None = None,
    levels: LevelTable | None = None,
) -> Profile:
    """Snapshot for the user with local id *user_id*.

    Raises
    ------
    NotFoundError
        If no such user exists.
    """
    config = config or MainframeConfig()
    levels = levels or default_level_table()
    with store_errors("build_profile", user_id), get_session(engine) as session:
        user = get_user(session, user_id)
        if user is None:
            raise NotFoundError("User not found", operation="build_profile", user_id=user_id)
        return _compose(session, user, levels, config)


@reconnecting
def build_profile_by_twitch_id(
    engine: Engine,
    twitch_id: str,
    config: MainframeConfig | None = None,
    levels: LevelTable | None = None,
) -> Profile:
    config = config or MainframeConfig()
    levels = levels or default_level_table()
    with store_errors("build_profile"), get_session(engine) as session:
        user = get_user_by_twitch_id(session, twitch_id)
        if user is None:
            raise NotFoundError("User not found", operation="build_profile")
        return _compose(session, user, levels, config)
