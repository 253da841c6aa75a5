"""
mainframe.services.report_service — Flight Reports
===================================================

A per-user snapshot of derived metrics for the ``!flightreport`` command.

All ranks and percentiles are computed against the *active cohort*: users
whose ``last_activity`` falls within the trailing window (4 weeks by
default).  The subject need not be in the cohort; their values are simply
compared against it.  A percentile is the share of the cohort strictly
ahead of the subject, so lower is better ("top 5%").
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import ColumnElement, Engine, func, select
from sqlalchemy.orm import Session

from mainframe.constants import (
    CHAOS_STAT_KEYS,
    HELPER_STAT_KEYS,
    STAT_BEANS,
    STAT_BONKS,
    STAT_CHECKINS,
    STAT_FORTUNE_COOKIES,
    STAT_GACHA_PULLS,
    STAT_GACHA_SUCCESS,
    STAT_POINTS_SPENT,
    STAT_RAIDS,
    STAT_REDEEMS,
    STAT_SONG_REQUESTS,
)
from mainframe.database.engine import get_session, reconnecting
from mainframe.database.models import User, UserStat
from mainframe.errors import store_errors
from mainframe.services.stat_service import get_stats


@dataclass(frozen=True, slots=True)
class FlightReport:
    user_id: int
    display_name: str
    avatar: str | None
    experience: float
    is_premium: bool
    sub_months: int
    reg_date: datetime | None
    last_checkin: datetime | None
    last_activity: datetime | None
    days_as_member: int
    exp_rank: int
    exp_percentile: float
    total_active_users: int
    checkins: int
    points_spent: int
    total_redeems: int
    gacha_pulls: int
    gacha_success: int
    fortune_cookies: int
    bonks: int
    song_requests: int
    raids_brought: int
    beans: int
    checkins_percentile: float
    points_percentile: float
    redeems_percentile: float
    chaos_score: int
    helper_score: int
    gacha_success_rate: float | None

    def as_dict(self) -> dict:
        data = asdict(self)
        for key in ("reg_date", "last_checkin", "last_activity"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def percent(part: int, whole: int) -> float:
    """``part / whole`` as a percentage rounded to one decimal; 0.0 if empty."""
    if not whole:
        return 0.0
    return round(100 * part / whole, 1)


def _count(session: Session, *criteria: ColumnElement[bool]) -> int:
    return session.scalar(select(func.count(User.id)).where(*criteria)) or 0


def _stat_percentile(
    session: Session,
    stat_key: str,
    value: int,
    active: ColumnElement[bool],
) -> float:
    holders = session.scalar(
        select(func.count(func.distinct(UserStat.user_id)))
        .join(User, User.id == UserStat.user_id)
        .where(UserStat.stat_key == stat_key, active)
    ) or 0
    ahead = session.scalar(
        select(func.count())
        .select_from(UserStat)
        .join(User, User.id == UserStat.user_id)
        .where(UserStat.stat_key == stat_key, active, UserStat.stat_value > value)
    ) or 0
    return percent(ahead, holders)


@reconnecting
def get_flight_report(
    engine: Engine,
    display_name: str,
    *,
    cohort_weeks: int = 4,
    now: datetime | None = None,
) -> FlightReport | None:
    """Build the flight report for *display_name*, or ``None`` if unknown."""
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(weeks=cohort_weeks)

    with store_errors("flight_report"), get_session(engine) as session:
        user = session.scalar(
            select(User)
            .where(User.twitch_display_name == display_name)
            .order_by(User.id)
            .limit(1)
        )
        if user is None:
            return None

        stats = get_stats(session, user.id)
        active = User.last_activity >= cutoff

        total_active = _count(session, active)
        ahead_on_exp = _count(session, active, User.experience > user.experience)

        checkins = stats.get(STAT_CHECKINS, 0)
        points = stats.get(STAT_POINTS_SPENT, 0)
        redeems = stats.get(STAT_REDEEMS, 0)
        checkins_pct = _stat_percentile(session, STAT_CHECKINS, checkins, active)
        points_pct = _stat_percentile(session, STAT_POINTS_SPENT, points, active)
        redeems_pct = _stat_percentile(session, STAT_REDEEMS, redeems, active)

    reg_date = as_utc(user.reg_date)
    pulls = stats.get(STAT_GACHA_PULLS, 0)
    successes = stats.get(STAT_GACHA_SUCCESS, 0)

    return FlightReport(
        user_id=user.id,
        display_name=user.twitch_display_name,
        avatar=user.twitch_avatar,
        experience=user.experience,
        is_premium=user.is_premium,
        sub_months=user.sub_months,
        reg_date=reg_date,
        last_checkin=as_utc(user.last_checkin),
        last_activity=as_utc(user.last_activity),
        days_as_member=max((now - reg_date).days, 0) if reg_date else 0,
        exp_rank=ahead_on_exp + 1,
        exp_percentile=percent(ahead_on_exp, total_active),
        total_active_users=total_active,
        checkins=checkins,
        points_spent=points,
        total_redeems=redeems,
        gacha_pulls=pulls,
        gacha_success=successes,
        fortune_cookies=stats.get(STAT_FORTUNE_COOKIES, 0),
        bonks=stats.get(STAT_BONKS, 0),
        song_requests=stats.get(STAT_SONG_REQUESTS, 0),
        raids_brought=stats.get(STAT_RAIDS, 0),
        beans=stats.get(STAT_BEANS, 0),
        checkins_percentile=checkins_pct,
        points_percentile=points_pct,
        redeems_percentile=redeems_pct,
        chaos_score=sum(stats.get(k, 0) for k in CHAOS_STAT_KEYS),
        helper_score=sum(stats.get(k, 0) for k in HELPER_STAT_KEYS),
        gacha_success_rate=round(successes * 100.0 / pulls, 1) if pulls else None,
    )
