"""
mainframe.engine.achievements — Stat Threshold Evaluation
==========================================================

Pure calculation, no database I/O.  The service layer loads the candidate
achievements for a stat key and the user's unlock set, and this module
decides which ones are newly earned.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

logger = logging.getLogger(__name__)


class ThresholdAchievement(Protocol):
    id: int
    name: str
    tier: int
    stat_key: str
    threshold: int


def achievement_label(achievement: ThresholdAchievement) -> str:
    """Display string used in chat responses, e.g. ``"Frequent Flyer 2"``."""
    return f"{achievement.name} {achievement.tier}"


def eligible_achievements(
    candidates: Iterable[ThresholdAchievement],
    stat_key: str,
    stat_value: int | None,
    already_unlocked: set[int],
) -> list[ThresholdAchievement]:
    """Return the candidates newly earned at *stat_value*.

    Parameters
    ----------
    candidates : Achievements to consider (any stat key; others are skipped).
    stat_key : The stat that just changed.
    stat_value : The user's current value, or ``None`` if never written.
    already_unlocked : Achievement ids the user already holds.

    Returns
    -------
    Matches ordered by name, then tier.  A missing stat earns nothing.
    """
    if stat_value is None:
        return []

    earned = [
        a for a in candidates
        if a.stat_key == stat_key
        and a.id not in already_unlocked
        and a.threshold <= stat_value
    ]
    earned.sort(key=lambda a: (a.name, a.tier))
    for a in earned:
        logger.debug("Threshold met: %s (%s >= %d)", achievement_label(a), stat_key, a.threshold)
    return earned
