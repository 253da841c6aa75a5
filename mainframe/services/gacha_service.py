"""
mainframe.services.gacha_service — Gacha Pulls & Issuance
==========================================================

``pull`` draws a card; ``resolve_pull`` decides whether the user gets it.
Issuance is an ``INSERT ... ON CONFLICT DO NOTHING`` on the
``(user_id, card_id)`` constraint, so a duplicate never needs a prior read
and two concurrent pulls of the same card issue it once.  Pulled cards are
never made the default.
"""

from __future__ import annotations

import logging
import random

from sqlalchemy import Engine, select, text

from mainframe.config import MainframeConfig
from mainframe.constants import STAT_GACHA_PULLS, STAT_GACHA_SUCCESS
from mainframe.database.engine import get_session, reconnecting
from mainframe.database.models import Card
from mainframe.engine.gacha import PullOutcome, PullResult, build_pool, classify_pull, draw
from mainframe.errors import NotFoundError, store_errors
from mainframe.services.stat_service import update_stat

logger = logging.getLogger(__name__)

_ISSUE_CARD = text("""
    INSERT INTO user_cards (user_id, card_id, is_default)
    VALUES (:user_id, :card_id, :is_default)
    ON CONFLICT (user_id, card_id) DO NOTHING
""")


@reconnecting
def pull(engine: Engine, is_premium: bool, rng: random.Random | None = None) -> Card:
    """Draw one card by weight.  Premium pulls include premium cards."""
    with store_errors("gacha_pull"), get_session(engine) as session:
        cards = session.scalars(select(Card).where(Card.is_pullable.is_(True))).all()

    pool = build_pool(cards, is_premium)
    if not pool:
        raise NotFoundError("No pullable cards in the catalog", operation="gacha_pull")
    card = draw(pool, rng)
    logger.debug("Gacha draw (premium=%s): %s", is_premium, card.sysname)
    return card


@reconnecting
def resolve_pull(engine: Engine, user_id: int, card: Card, sentinel_sysname: str) -> PullResult:
    """Issue *card* to the user unless they already own it.

    The sentinel card is never issued.
    """
    if card.sysname == sentinel_sysname:
        return PullResult(
            card_id=card.id, sysname=card.sysname, issued=False,
            outcome=PullOutcome.TRY_AGAIN,
        )

    with store_errors("resolve_pull", user_id), get_session(engine) as session:
        result = session.execute(
            _ISSUE_CARD, {"user_id": user_id, "card_id": card.id, "is_default": False},
        )
        issued = result.rowcount == 1

    if issued:
        logger.info("Issued card %s to user %d", card.sysname, user_id)
    return PullResult(
        card_id=card.id,
        sysname=card.sysname,
        issued=issued,
        outcome=classify_pull(card.sysname, issued, sentinel_sysname),
    )


def pull_and_resolve(
    engine: Engine,
    user_id: int,
    is_premium: bool,
    config: MainframeConfig,
    rng: random.Random | None = None,
) -> tuple[Card, PullResult]:
    """Full gacha turn: draw, resolve, and count the pull.

    ``card_gacha_pulls`` counts every pull; ``card_gacha_pulls_success``
    counts the ones that issued a new card.
    """
    card = pull(engine, is_premium, rng)
    result = resolve_pull(engine, user_id, card, config.sentinel_sysname)

    update_stat(engine, user_id, STAT_GACHA_PULLS, 1, increment=True)
    if result.issued:
        update_stat(engine, user_id, STAT_GACHA_SUCCESS, 1, increment=True)
    return card, result
