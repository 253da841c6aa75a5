"""
mainframe.api.routes.mainframe — Widget & chat-bot endpoints
==============================================================

Thin adapters: parse the request body, hand off to
:mod:`mainframe.services.action_service` (or a read service) on a worker
thread, and wrap the result in the ``{success, message, data}`` envelope
the widget expects.  Service errors are mapped to responses by the
handler in :mod:`mainframe.api.main`.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import Engine

from mainframe.api.deps import get_config, get_engine, get_levels
from mainframe.config import MainframeConfig
from mainframe.database.engine import run_db
from mainframe.engine.gacha import PullOutcome
from mainframe.engine.progression import LevelTable
from mainframe.errors import NotFoundError, ValidationError
from mainframe.services import (
    action_service,
    card_service,
    profile_service,
    ranking_service,
    report_service,
)
from mainframe.services.action_service import StatUpdate, Viewer

router = APIRouter(prefix="/mainframe", tags=["mainframe"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ViewerRequest(BaseModel):
    twitch_id: str | None = None
    twitch_display_name: str | None = None
    twitch_avatar: str | None = None
    twitch_roles: list[str] | None = None

    def viewer(self) -> Viewer:
        return Viewer(
            twitch_id=self.twitch_id or "",
            display_name=self.twitch_display_name or "",
            avatar=self.twitch_avatar,
            roles=tuple(self.twitch_roles or ()),
        )


class CheckInRequest(ViewerRequest):
    checkin_count: int | None = None


class ChangeCardRequest(ViewerRequest):
    new_card_name: str | None = None


class SendActionRequest(ViewerRequest):
    exp: float | None = None
    stat_name: list[str] | None = None
    value: list[int] | None = None
    increment: list[bool] | None = None


class ProfileRequest(BaseModel):
    user_id: int | None = None


class RankingRequest(BaseModel):
    rank_type: str | None = None
    items_to_show: int | None = None


class FlightReportRequest(BaseModel):
    user_name: str | None = None


def _ok(data: Any, message: str) -> dict:
    return {"success": True, "message": message, "data": data}


def _card_label(is_premium: bool, name: str) -> str:
    return f"{'Premium ' if is_premium else ''}[{name}]"


def _stat_updates(body: SendActionRequest) -> list[StatUpdate]:
    names = body.stat_name or []
    values = body.value or []
    flags = body.increment or []
    if len(values) != len(names) or (flags and len(flags) != len(names)):
        raise ValidationError(
            "stat_name, value and increment must be the same length",
            fields={"value": "Length must match stat_name"},
            operation="send_action",
        )
    return [
        StatUpdate(name=name, value=values[i], increment=bool(flags[i]) if flags else False)
        for i, name in enumerate(names)
    ]


# ---------------------------------------------------------------------------
# Viewer actions
# ---------------------------------------------------------------------------
@router.post("/login-widget")
async def login_widget(
    body: ViewerRequest,
    engine: Engine = Depends(get_engine),
    config: MainframeConfig = Depends(get_config),
    levels: LevelTable = Depends(get_levels),
):
    profile = await run_db(action_service.login, engine, config, body.viewer(), levels)
    return _ok(profile.as_dict(), "Login successful")


@router.post("/check-in")
async def check_in(
    body: CheckInRequest,
    engine: Engine = Depends(get_engine),
    config: MainframeConfig = Depends(get_config),
    levels: LevelTable = Depends(get_levels),
):
    result = await run_db(
        action_service.check_in, engine, config, body.viewer(), body.checkin_count, levels,
    )
    card = result.default_card
    return _ok({
        "twitch_id": result.twitch_id,
        "local_id": result.user_id,
        "level": result.level,
        "is_premium": result.is_premium,
        "default_card_name": card.sysname if card else None,
        "default_card_title": card.display_title if card else None,
        "has_achievement": bool(result.achievements),
        "achievement": ", ".join(result.achievements) or None,
    }, "Check-in successful")


@router.post("/gacha")
async def gacha(
    body: ViewerRequest,
    engine: Engine = Depends(get_engine),
    config: MainframeConfig = Depends(get_config),
):
    result = await run_db(action_service.gacha_pull, engine, config, body.viewer())
    card = result.card
    data = {
        "output_card_name": card.sysname,
        "card_name": result.active_card,
        "success": result.is_new,
        "is_new": result.is_new,
    }

    if result.outcome is PullOutcome.NEW:
        return _ok(data,
            f"You pulled a {_card_label(card.is_premium, card.name)} Card! "
            "It's been added to your collection!"
        )
    if result.outcome is PullOutcome.TRY_AGAIN:
        return _ok({**data, "reason": "TRY_AGAIN"}, "Sorry! Try again!")
    return _ok({**data, "reason": "DUPLICATE"},
        f"You pulled a {_card_label(card.is_premium, card.name)} Card! "
        "You already have this card."
    )


@router.post("/change-card")
async def change_card(
    body: ChangeCardRequest,
    engine: Engine = Depends(get_engine),
    config: MainframeConfig = Depends(get_config),
):
    card = await run_db(
        action_service.change_card, engine, config, body.viewer(), body.new_card_name or "",
    )
    return _ok({"new_card": card.sysname}, f"You are now using your {card.display_title} Card!")


@router.post("/get-cards")
async def get_cards(
    body: ViewerRequest,
    engine: Engine = Depends(get_engine),
    config: MainframeConfig = Depends(get_config),
):
    collection = await run_db(action_service.get_cards, engine, config, body.viewer())
    cards = [c.as_dict() for c in collection.cards]

    if not cards:
        return _ok({"cards": []}, "You're not registered in the Frequent Flyer Program yet.")
    if len(cards) == 1:
        return _ok({"cards": cards},
            f"You have the [{cards[0]['sysname']}] Card. Collect more via Mystery Card Pull!"
        )
    names = ", ".join(c["sysname"] for c in cards)
    return _ok({"cards": cards},
        f"You have ({len(cards)}) cards: [{names}]. "
        "Use !setcard <keyword> to change your active card!"
    )


@router.post("/send-action")
async def send_action(
    body: SendActionRequest,
    engine: Engine = Depends(get_engine),
    config: MainframeConfig = Depends(get_config),
):
    updates = _stat_updates(body)
    unlocked = await run_db(
        action_service.send_action, engine, config, body.viewer(),
        exp=body.exp, stats=updates,
    )
    message = f"Congrats! You earned: {', '.join(unlocked)}" if unlocked else "Action completed"
    return _ok({"has_achievement": bool(unlocked), "achievements": ", ".join(unlocked)}, message)


# ---------------------------------------------------------------------------
# Catalog & reads
# ---------------------------------------------------------------------------
def _catalog_dict(card) -> dict:
    return {
        "id": card.id,
        "catalog_no": card.catalog_no,
        "name": card.name,
        "sysname": card.sysname,
        "description": card.description,
        "is_premium": card.is_premium,
    }


@router.post("/get-available-cards")
async def get_available_cards(engine: Engine = Depends(get_engine)):
    cards = await run_db(card_service.list_pullable_cards, engine)
    return _ok({"cards": [_catalog_dict(c) for c in cards]}, "Available cards retrieved")


@router.post("/catalog")
async def catalog(engine: Engine = Depends(get_engine)):
    cards = await run_db(card_service.list_catalog, engine)
    return _ok({"catalog": [_catalog_dict(c) for c in cards]}, "Catalog retrieved")


@router.post("/user-profile")
async def user_profile(
    body: ProfileRequest,
    engine: Engine = Depends(get_engine),
    config: MainframeConfig = Depends(get_config),
    levels: LevelTable = Depends(get_levels),
):
    if not body.user_id:
        raise ValidationError(
            "user_id is required", fields={"user_id": "Required"}, operation="user_profile",
        )
    profile = await run_db(profile_service.build_profile, engine, body.user_id, config, levels)
    return _ok(profile.as_dict(), "Profile retrieved")


@router.post("/ranking")
async def ranking(
    body: RankingRequest,
    engine: Engine = Depends(get_engine),
    config: MainframeConfig = Depends(get_config),
):
    limit = body.items_to_show if body.items_to_show is not None else config.ranking_default_limit
    entries = await run_db(ranking_service.get_ranking, engine, body.rank_type or "", limit)
    return _ok([e.as_dict() for e in entries], "Rankings retrieved")


@router.post("/flight-report")
async def flight_report(
    body: FlightReportRequest,
    engine: Engine = Depends(get_engine),
    config: MainframeConfig = Depends(get_config),
):
    if not body.user_name:
        raise ValidationError(
            "user_name is required", fields={"user_name": "Required"}, operation="flight_report",
        )
    report = await run_db(
        report_service.get_flight_report, engine, body.user_name,
        cohort_weeks=config.cohort_weeks,
    )
    if report is None:
        raise NotFoundError("User flight report not found", operation="flight_report")
    return _ok(report.as_dict(), "Flight report retrieved")
