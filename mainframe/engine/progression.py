"""
mainframe.engine.progression — Levels & Experience Multipliers
===============================================================

Pure calculation, no database I/O.

The level table is static reference data (``seeds/levels.yaml``) loaded once
at startup.  A user's level is the last entry whose threshold is at or below
their experience; progress is measured toward the next entry.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

__all__ = ["ExperiencePolicy", "LevelEntry", "LevelInfo", "LevelTable"]


@dataclass(frozen=True, slots=True)
class LevelEntry:
    level: int
    title: str
    exp: float


@dataclass(frozen=True, slots=True)
class LevelInfo:
    """Derived level snapshot for one experience value."""

    level: int
    title: str
    progress: int  # 0–100, 100 only at max level


@dataclass(frozen=True, slots=True)
class ExperiencePolicy:
    """Experience multipliers applied to every award.

    ``global_`` is the event-wide factor (double-EXP weekends etc.).
    """

    standard: float = 1.0
    premium: float = 1.15
    global_: float = 1.0

    def scale(self, base_amount: float, is_premium: bool) -> float:
        """Experience actually credited for *base_amount*."""
        factor = self.premium if is_premium else self.standard
        return base_amount * factor * self.global_


class LevelTable:
    """Ordered ``(level, title, exp)`` entries, ascending by threshold."""

    def __init__(self, entries: Iterable[LevelEntry]) -> None:
        self._entries: tuple[LevelEntry, ...] = tuple(sorted(entries, key=lambda e: e.exp))
        if not self._entries:
            raise ValueError("Level table must contain at least one entry")

    @classmethod
    def from_rows(cls, rows: Iterable[dict]) -> LevelTable:
        return cls(
            LevelEntry(level=int(r["level"]), title=str(r["title"]), exp=float(r["exp"]))
            for r in rows
        )

    @property
    def entries(self) -> tuple[LevelEntry, ...]:
        return self._entries

    @property
    def max_threshold(self) -> float:
        return self._entries[-1].exp

    def __len__(self) -> int:
        return len(self._entries)

    def derive(self, experience: float) -> LevelInfo:
        """Level, title and percent progress for *experience*.

        Below the first threshold the first entry is reported and progress
        is scaled against it, clamped to ``[0, 100]``.
        """
        current = self._entries[0]
        following: LevelEntry | None = None
        for entry in self._entries:
            if experience < entry.exp:
                following = entry
                break
            current = entry

        if following is None:
            progress = 100
        elif following is current:
            # Only reachable below the first threshold
            progress = 0 if current.exp <= 0 else math.floor(100 * experience / current.exp)
        else:
            span = following.exp - current.exp
            progress = math.floor(100 * (experience - current.exp) / span)

        return LevelInfo(
            level=current.level,
            title=current.title,
            progress=max(0, min(progress, 100)),
        )
