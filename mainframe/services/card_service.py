"""
mainframe.services.card_service — Card Collection
==================================================

Owned cards, the default (active) card, and starter-card issuance.

Invariant: a user with any cards has exactly one ``is_default`` row.  Every
write that moves the default happens inside one transaction, with the
partial unique index ``uq_user_cards_one_default`` as the backstop.
Issuance functions return the collection they just produced instead of
reading it back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from sqlalchemy import Engine, case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mainframe.config import MainframeConfig
from mainframe.constants import RARE_PREFIXES, RARE_PROMO_PREFIXES, card_tier
from mainframe.database.engine import get_session, reconnecting
from mainframe.database.models import Card, UserCard
from mainframe.errors import AlreadyActiveError, NotFoundError, store_errors

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class OwnedCard:
    user_card_id: int
    card_id: int
    catalog_no: str
    name: str
    sysname: str
    is_premium: bool
    is_default: bool

    @property
    def tier(self) -> int:
        return card_tier(self.catalog_no)

    @property
    def display_title(self) -> str:
        return f"Premium {self.name}" if self.is_premium else self.name

    def as_dict(self) -> dict:
        return {
            "user_card_id": self.user_card_id,
            "card_id": self.card_id,
            "catalog_no": self.catalog_no,
            "name": self.name,
            "sysname": self.sysname,
            "is_premium": self.is_premium,
            "is_default": self.is_default,
        }


@dataclass(frozen=True, slots=True)
class CardCollection:
    cards: list[OwnedCard] = field(default_factory=list)
    default: OwnedCard | None = None


def display_key(card: OwnedCard) -> tuple:
    """Python twin of the SQL display ordering."""
    return (card.tier, not card.is_premium, card.catalog_no, card.name)


def _owned(user_card: UserCard, card: Card) -> OwnedCard:
    return OwnedCard(
        user_card_id=user_card.id,
        card_id=card.id,
        catalog_no=card.catalog_no,
        name=card.name,
        sysname=card.sysname,
        is_premium=card.is_premium,
        is_default=user_card.is_default,
    )


def _collection(cards: list[OwnedCard]) -> CardCollection:
    default = next((c for c in cards if c.is_default), None)
    return CardCollection(cards=cards, default=default)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
_PREFIX = func.substr(Card.catalog_no, 1, 2)
_TIER_ORDER = case(
    (_PREFIX.in_(RARE_PREFIXES), 1),
    (_PREFIX.in_(RARE_PROMO_PREFIXES), 2),
    else_=3,
)


def get_cards(session: Session, user_id: int) -> CardCollection:
    rows = session.execute(
        select(UserCard, Card)
        .join(Card, Card.id == UserCard.card_id)
        .where(UserCard.user_id == user_id)
        .order_by(_TIER_ORDER, Card.is_premium.desc(), Card.catalog_no, Card.name)
    ).all()
    return _collection([_owned(uc, c) for uc, c in rows])


@reconnecting
def list_cards(engine: Engine, user_id: int) -> CardCollection:
    """The user's cards in display order, plus the default card."""
    with store_errors("list_cards", user_id), get_session(engine) as session:
        return get_cards(session, user_id)


@reconnecting
def list_catalog(engine: Engine) -> list[Card]:
    with store_errors("list_catalog"), get_session(engine) as session:
        return list(session.scalars(
            select(Card).order_by(_TIER_ORDER, Card.is_premium.desc(), Card.catalog_no, Card.name)
        ).all())


@reconnecting
def list_pullable_cards(engine: Engine) -> list[Card]:
    """Cards that can come out of a gacha pull (the "available cards")."""
    with store_errors("list_pullable_cards"), get_session(engine) as session:
        return list(session.scalars(
            select(Card)
            .where(Card.is_pullable.is_(True), Card.weight > 0)
            .order_by(_TIER_ORDER, Card.is_premium.desc(), Card.catalog_no, Card.name)
        ).all())


# ---------------------------------------------------------------------------
# Starter issuance
# ---------------------------------------------------------------------------
def _issue_default(session: Session, user_id: int, card_id: int) -> OwnedCard:
    card = session.get(Card, card_id)
    if card is None:
        raise NotFoundError(
            f"Starter card {card_id} missing from catalog",
            operation="issue_starter_card", user_id=user_id,
        )
    user_card = UserCard(user_id=user_id, card_id=card_id, is_default=True)
    session.add(user_card)
    session.flush()
    return _owned(user_card, card)


@reconnecting
def ensure_first_card(
    engine: Engine,
    user_id: int,
    is_premium: bool,
    config: MainframeConfig,
) -> CardCollection:
    """Issue the starter card as default if the user owns no cards."""
    card_id = config.premium_card_id if is_premium else config.starter_card_id
    with store_errors("ensure_first_card", user_id), get_session(engine) as session:
        collection = get_cards(session, user_id)
        if collection.cards:
            return collection

        try:
            with session.begin_nested():   # SAVEPOINT
                issued = _issue_default(session, user_id, card_id)
        except IntegrityError:
            # A concurrent request issued the first card
            logger.debug("Starter card already issued to user %d", user_id)
            return get_cards(session, user_id)

    logger.info("Issued starter card %s to user %d", issued.sysname, user_id)
    return CardCollection(cards=[issued], default=issued)


@reconnecting
def reconcile_premium_card(
    engine: Engine,
    user_id: int,
    is_premium: bool,
    config: MainframeConfig,
) -> CardCollection:
    """Give a premium user the premium starter card as their new default.

    The default is cleared and the premium card inserted inside one
    SAVEPOINT, so no reader sees zero or two defaults.
    """
    with store_errors("reconcile_premium_card", user_id), get_session(engine) as session:
        collection = get_cards(session, user_id)
        if not is_premium or any(c.card_id == config.premium_card_id for c in collection.cards):
            return collection

        try:
            with session.begin_nested():   # SAVEPOINT
                session.execute(
                    update(UserCard)
                    .where(UserCard.user_id == user_id, UserCard.is_default.is_(True))
                    .values(is_default=False)
                )
                issued = _issue_default(session, user_id, config.premium_card_id)
        except IntegrityError:
            logger.debug("Premium card already issued to user %d", user_id)
            return get_cards(session, user_id)

    logger.info("Issued premium card %s to user %d", issued.sysname, user_id)
    cards = [replace(c, is_default=False) for c in collection.cards] + [issued]
    cards.sort(key=display_key)
    return CardCollection(cards=cards, default=issued)


# ---------------------------------------------------------------------------
# Active card
# ---------------------------------------------------------------------------
def _activate(session: Session, user_id: int, user_card: UserCard, card: Card) -> OwnedCard:
    if user_card.is_default:
        raise AlreadyActiveError(
            "You're already using this card.",
            operation="set_active_card", user_id=user_id,
        )
    session.execute(
        update(UserCard)
        .where(UserCard.user_id == user_id, UserCard.is_default.is_(True))
        .values(is_default=False),
        execution_options={"synchronize_session": False},
    )
    session.flush()
    user_card.is_default = True
    session.flush()
    logger.info("User %d switched active card to %s", user_id, card.sysname)
    return _owned(user_card, card)


@reconnecting
def set_active_card(engine: Engine, user_id: int, user_card_id: int) -> OwnedCard:
    """Make the ownership row *user_card_id* the user's default card.

    Raises
    ------
    NotFoundError
        If the user does not own that row.
    AlreadyActiveError
        If it is already the default.  Nothing is written.
    """
    with store_errors("set_active_card", user_id), get_session(engine) as session:
        row = session.execute(
            select(UserCard, Card)
            .join(Card, Card.id == UserCard.card_id)
            .where(UserCard.id == user_card_id, UserCard.user_id == user_id)
            .with_for_update(of=UserCard)
        ).first()
        if row is None:
            raise NotFoundError(
                "Card not found in your collection.",
                operation="set_active_card", user_id=user_id,
            )
        return _activate(session, user_id, row[0], row[1])


@reconnecting
def set_active_card_by_sysname(engine: Engine, user_id: int, sysname: str) -> OwnedCard:
    """Same as :func:`set_active_card`, looking the card up by system name."""
    with store_errors("set_active_card", user_id), get_session(engine) as session:
        row = session.execute(
            select(UserCard, Card)
            .join(Card, Card.id == UserCard.card_id)
            .where(UserCard.user_id == user_id, Card.sysname == sysname)
            .with_for_update(of=UserCard)
        ).first()
        if row is None:
            raise NotFoundError(
                "Card not found in your collection.",
                operation="set_active_card", user_id=user_id,
            )
        return _activate(session, user_id, row[0], row[1])
