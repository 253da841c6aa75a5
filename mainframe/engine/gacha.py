"""
mainframe.engine.gacha — Weighted Card Draw
============================================

Pure calculation, no database I/O.

Weights come from the card catalog.  A standard pull draws from the
non-premium pullable cards; a premium pull draws from every pullable card,
so the premium pool is always a superset.  The "try again" sentinel is an
ordinary catalog entry with its own weight.
"""

from __future__ import annotations

import enum
import random
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol, TypeVar

__all__ = ["PullOutcome", "PullResult", "build_pool", "classify_pull", "draw"]


class PullableCard(Protocol):
    id: int
    sysname: str
    is_premium: bool
    is_pullable: bool
    weight: float


C = TypeVar("C", bound=PullableCard)


class PullOutcome(enum.StrEnum):
    """Three mutually exclusive pull results reported to the caller."""
    NEW = "NEW"
    TRY_AGAIN = "TRY_AGAIN"
    DUPLICATE = "DUPLICATE"


@dataclass(frozen=True, slots=True)
class PullResult:
    card_id: int
    sysname: str
    issued: bool
    outcome: PullOutcome


def build_pool(cards: Iterable[C], is_premium: bool) -> list[C]:
    """Cards eligible for a pull, dropping zero-weight entries."""
    return [
        c for c in cards
        if c.is_pullable and c.weight > 0 and (is_premium or not c.is_premium)
    ]


def draw(pool: Sequence[C], rng: random.Random | None = None) -> C:
    """Pick exactly one card from *pool* by weight.

    Raises
    ------
    ValueError
        If the pool is empty.
    """
    if not pool:
        raise ValueError("Gacha pool is empty")
    rng = rng or random.Random()
    return rng.choices(pool, weights=[c.weight for c in pool], k=1)[0]


def classify_pull(sysname: str, issued: bool, sentinel_sysname: str) -> PullOutcome:
    if issued:
        return PullOutcome.NEW
    if sysname == sentinel_sysname:
        return PullOutcome.TRY_AGAIN
    return PullOutcome.DUPLICATE
