"""
mainframe.services.user_service — User Registry & Experience Awards
====================================================================

Resolve-or-create by Twitch id, profile field updates, timestamp touches
and experience awards.  Every public function is one unit of work: it opens
its own session and commits before returning.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mainframe.database.engine import get_session, reconnecting
from mainframe.database.models import TimestampField, User
from mainframe.engine.progression import ExperiencePolicy
from mainframe.errors import NotFoundError, ValidationError, store_errors

logger = logging.getLogger(__name__)

_TIMESTAMP_COLUMNS = {
    TimestampField.LAST_LOGIN: User.last_login,
    TimestampField.LAST_CHECKIN: User.last_checkin,
    TimestampField.LAST_ACTIVITY: User.last_activity,
}


def utcnow() -> datetime:
    return datetime.now(UTC)


def is_premium_role(roles: Iterable[str] | None, premium_roles: Iterable[str]) -> bool:
    """True if any of the viewer's Twitch roles grants premium status."""
    if not roles:
        return False
    granted = set(premium_roles)
    return any(role in granted for role in roles)


# ---------------------------------------------------------------------------
# Session-level helpers (shared with the aggregators)
# ---------------------------------------------------------------------------
def get_user(session: Session, user_id: int) -> User | None:
    return session.get(User, user_id)


def get_user_by_twitch_id(session: Session, twitch_id: str) -> User | None:
    return session.scalar(select(User).where(User.twitch_id == twitch_id))


def touch(
    session: Session,
    user_id: int,
    field: TimestampField,
    now: datetime | None = None,
) -> int:
    """Set one of the user's timestamps to *now*.  Returns the rows matched."""
    column = _TIMESTAMP_COLUMNS[field]
    result = session.execute(
        update(User).where(User.id == user_id).values({column: now or utcnow()})
    )
    return result.rowcount


def _apply_updates(
    user: User,
    display_name: str,
    avatar: str | None,
    is_premium: bool | None,
    now: datetime,
) -> None:
    user.twitch_display_name = display_name
    # Only a non-empty avatar replaces the stored one
    if avatar:
        user.twitch_avatar = avatar
    if is_premium is not None:
        user.is_premium = is_premium
    user.last_activity = now


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------
@reconnecting
def resolve_user(
    engine: Engine,
    twitch_id: str,
    display_name: str,
    avatar: str | None = None,
    is_premium: bool | None = None,
    *,
    now: datetime | None = None,
) -> User:
    """Fetch the user for *twitch_id*, creating it on first contact.

    Existing users get their display name refreshed, their avatar replaced
    when a non-empty one is supplied, and ``is_premium`` updated only when
    explicitly given (``None`` leaves it untouched).

    Raises
    ------
    ValidationError
        If ``twitch_id`` or ``display_name`` is missing.
    """
    missing = {
        name: "Required"
        for name, value in (("twitch_id", twitch_id), ("twitch_display_name", display_name))
        if not value
    }
    if missing:
        raise ValidationError(
            "Invalid user data: twitch_id and display name required",
            fields=missing,
            operation="resolve_user",
        )

    now = now or utcnow()
    with store_errors("resolve_user"), get_session(engine) as session:
        user = get_user_by_twitch_id(session, twitch_id)
        if user is None:
            user = User(
                twitch_id=twitch_id,
                twitch_display_name=display_name,
                twitch_avatar=avatar or None,
                is_premium=bool(is_premium),
                last_activity=now,
                reg_date=now,
            )
            try:
                with session.begin_nested():   # SAVEPOINT
                    session.add(user)
                    session.flush()
                logger.info("Registered user %s (%s)", display_name, twitch_id)
                return user
            except IntegrityError:
                # Registered by a concurrent request, fall through to update
                user = get_user_by_twitch_id(session, twitch_id)
                if user is None:
                    raise

        _apply_updates(user, display_name, avatar, is_premium, now)
        session.flush()
        return user


@reconnecting
def get_user_by_id(engine: Engine, user_id: int) -> User:
    with store_errors("get_user", user_id), get_session(engine) as session:
        user = get_user(session, user_id)
        if user is None:
            raise NotFoundError("User not found", operation="get_user", user_id=user_id)
        return user


@reconnecting
def find_user_by_twitch_id(engine: Engine, twitch_id: str) -> User | None:
    with store_errors("find_user"), get_session(engine) as session:
        return get_user_by_twitch_id(session, twitch_id)


@reconnecting
def update_timestamp(
    engine: Engine,
    user_id: int,
    field: TimestampField,
    *,
    now: datetime | None = None,
) -> None:
    with store_errors(f"touch_{field.value}", user_id), get_session(engine) as session:
        if not touch(session, user_id, field, now):
            raise NotFoundError(
                "User not found", operation=f"touch_{field.value}", user_id=user_id,
            )


@reconnecting
def award_experience(
    engine: Engine,
    user_id: int,
    is_premium: bool,
    base_amount: float,
    policy: ExperiencePolicy,
    *,
    now: datetime | None = None,
) -> float:
    """Credit scaled experience to the user and refresh ``last_activity``.

    The addition is a single ``UPDATE ... SET experience = experience + x``
    so concurrent awards never lose each other.  Returns the amount credited.
    """
    if base_amount < 0:
        raise ValidationError(
            "Experience awards must be non-negative",
            fields={"exp": "Must be >= 0"},
            operation="award_experience",
            user_id=user_id,
        )

    amount = policy.scale(base_amount, is_premium)
    with store_errors("award_experience", user_id), get_session(engine) as session:
        result = session.execute(
            update(User)
            .where(User.id == user_id)
            .values(experience=User.experience + amount, last_activity=now or utcnow())
        )
        if result.rowcount == 0:
            raise NotFoundError(
                "User not found", operation="award_experience", user_id=user_id,
            )
    logger.debug("Awarded %.2f EXP to user %d", amount, user_id)
    return amount


@reconnecting
def set_sub_months(engine: Engine, user_id: int, months: int) -> None:
    """Record the viewer's cumulative subscription months."""
    with store_errors("set_sub_months", user_id), get_session(engine) as session:
        result = session.execute(
            update(User).where(User.id == user_id).values(sub_months=int(months))
        )
        if result.rowcount == 0:
            raise NotFoundError(
                "User not found", operation="set_sub_months", user_id=user_id,
            )
