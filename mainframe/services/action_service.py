"""
mainframe.services.action_service — Inbound Widget Actions
===========================================================

Each function here is one inbound action from the stream widget or chat
bot: resolve (or register) the viewer, prepare their card collection, run
the engine steps, and return what the response needs.

Steps within an action are independent units of work.  If a later step
fails, earlier ones (an EXP award, a stat write) stay applied.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass, field

from sqlalchemy import Engine

from mainframe.config import MainframeConfig
from mainframe.constants import STAT_CHECKINS, STAT_GACHA_SUCCESS, SUB_MONTHS_KEY
from mainframe.database.models import Card, TimestampField, User
from mainframe.database.seed import default_level_table
from mainframe.engine.gacha import PullOutcome
from mainframe.engine.progression import LevelTable
from mainframe.errors import ValidationError
from mainframe.services import (
    achievement_service,
    card_service,
    gacha_service,
    profile_service,
    stat_service,
    user_service,
)
from mainframe.services.card_service import CardCollection, OwnedCard
from mainframe.services.profile_service import Profile

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Viewer:
    """Identity fields every widget request carries."""

    twitch_id: str
    display_name: str
    avatar: str | None = None
    roles: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class StatUpdate:
    name: str
    value: int
    increment: bool = False


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CheckInResult:
    user_id: int
    twitch_id: str
    level: int
    is_premium: bool
    default_card: OwnedCard | None
    achievements: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class GachaResult:
    card: Card
    outcome: PullOutcome
    active_card: str | None  # sysname of the user's default card

    @property
    def is_new(self) -> bool:
        return self.outcome is PullOutcome.NEW


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _prepare_user(
    engine: Engine,
    config: MainframeConfig,
    viewer: Viewer,
    is_premium: bool | None,
) -> tuple[User, CardCollection]:
    """Resolve the viewer and make sure their starter cards are in place."""
    user = user_service.resolve_user(
        engine, viewer.twitch_id, viewer.display_name, viewer.avatar, is_premium,
    )
    premium = user.is_premium if is_premium is None else is_premium
    card_service.ensure_first_card(engine, user.id, premium, config)
    collection = card_service.reconcile_premium_card(engine, user.id, premium, config)
    return user, collection


def _premium_from_roles(config: MainframeConfig, viewer: Viewer) -> bool:
    return user_service.is_premium_role(viewer.roles, config.premium_roles)


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------
def login(
    engine: Engine,
    config: MainframeConfig,
    viewer: Viewer,
    levels: LevelTable | None = None,
) -> Profile:
    """Widget login: register or refresh the viewer and return their profile."""
    user, _ = _prepare_user(engine, config, viewer, None)
    user_service.update_timestamp(engine, user.id, TimestampField.LAST_LOGIN)
    return profile_service.build_profile(engine, user.id, config, levels)


def check_in(
    engine: Engine,
    config: MainframeConfig,
    viewer: Viewer,
    checkin_count: int | None = None,
    levels: LevelTable | None = None,
) -> CheckInResult:
    """Stream check-in: 1 base EXP, check-in stat, achievement check.

    The chat bot reports its own running *checkin_count*, which replaces the
    stored value.  Without one, the stored count is incremented.
    """
    levels = levels or default_level_table()
    is_premium = _premium_from_roles(config, viewer)
    user, collection = _prepare_user(engine, config, viewer, is_premium)

    user_service.award_experience(
        engine, user.id, is_premium, 1, config.experience_policy(),
    )
    if checkin_count is None:
        stat_service.update_stat(engine, user.id, STAT_CHECKINS, 1, increment=True)
    else:
        stat_service.update_stat(engine, user.id, STAT_CHECKINS, checkin_count, increment=False)
    user_service.update_timestamp(engine, user.id, TimestampField.LAST_CHECKIN)

    unlocked = achievement_service.check_and_award(engine, user.id, STAT_CHECKINS)

    # Level reflects the state before this check-in's award, as shown on stream
    return CheckInResult(
        user_id=user.id,
        twitch_id=user.twitch_id,
        level=levels.derive(user.experience).level,
        is_premium=is_premium,
        default_card=collection.default,
        achievements=unlocked,
    )


def gacha_pull(
    engine: Engine,
    config: MainframeConfig,
    viewer: Viewer,
    rng: random.Random | None = None,
) -> GachaResult:
    """Mystery card pull, classified as new / try-again / duplicate."""
    is_premium = _premium_from_roles(config, viewer)
    user, collection = _prepare_user(engine, config, viewer, is_premium)

    card, result = gacha_service.pull_and_resolve(engine, user.id, is_premium, config, rng)
    if result.issued:
        achievement_service.check_and_award(engine, user.id, STAT_GACHA_SUCCESS)

    return GachaResult(
        card=card,
        outcome=result.outcome,
        active_card=collection.default.sysname if collection.default else None,
    )


def change_card(
    engine: Engine,
    config: MainframeConfig,
    viewer: Viewer,
    sysname: str,
) -> OwnedCard:
    """Switch the viewer's active card by system name."""
    if not sysname:
        raise ValidationError(
            "Card name is required", fields={"new_card_name": "Required"},
            operation="change_card",
        )
    user, _ = _prepare_user(engine, config, viewer, None)
    return card_service.set_active_card_by_sysname(engine, user.id, sysname)


def get_cards(engine: Engine, config: MainframeConfig, viewer: Viewer) -> CardCollection:
    _, collection = _prepare_user(engine, config, viewer, None)
    return collection


def send_action(
    engine: Engine,
    config: MainframeConfig,
    viewer: Viewer,
    *,
    exp: float | None = None,
    stats: Sequence[StatUpdate] = (),
) -> list[str]:
    """Generic action: optional EXP award plus any number of stat writes.

    ``sub_months`` is stored on the user rather than in the stat store.
    Returns every achievement unlocked along the way.
    """
    is_premium = _premium_from_roles(config, viewer)
    user, _ = _prepare_user(engine, config, viewer, None)

    if exp:
        user_service.award_experience(
            engine, user.id, is_premium, exp, config.experience_policy(),
        )

    unlocked: list[str] = []
    for update in stats:
        if update.name == SUB_MONTHS_KEY:
            user_service.set_sub_months(engine, user.id, update.value)
            continue
        stat_service.update_stat(engine, user.id, update.name, update.value, update.increment)
        unlocked.extend(achievement_service.check_and_award(engine, user.id, update.name))

    if unlocked:
        logger.info("send_action unlocked %d achievements for user %d", len(unlocked), user.id)
    return unlocked
