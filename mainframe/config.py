"""
mainframe.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for gameplay tuning shared by every request:
experience multipliers, premium roles, starter card ids, team names and
the activity cohort window.  Database connection details stay in the
environment (``DATABASE_URL``).

Usage::

    from mainframe.config import load_config

    cfg = load_config()                  # reads ./config.yaml by default
    policy = cfg.experience_policy()     # handed to award_experience()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from mainframe.engine.progression import ExperiencePolicy

DEFAULT_PREMIUM_ROLES: tuple[str, ...] = ("VIP", "Subscriber", "Artist", "Moderator")
DEFAULT_TEAM_NAMES: dict[int, str] = {1: "Afterburner", 2: "Concorde", 3: "Stratos"}


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MainframeConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Every field has a default matching the live widget, so an empty YAML
    document is a valid configuration.
    """

    # Experience multipliers
    exp_standard: float = 1.0
    exp_premium: float = 1.15
    exp_global: float = 1.0

    # Twitch roles that count as premium
    premium_roles: tuple[str, ...] = DEFAULT_PREMIUM_ROLES

    # Card catalog ids / keys
    starter_card_id: int = 1
    premium_card_id: int = 2
    sentinel_sysname: str = "try-again"

    # Tournament teams (team_number → display name)
    team_names: dict[int, str] = field(default_factory=lambda: dict(DEFAULT_TEAM_NAMES))

    # Reporting
    cohort_weeks: int = 4
    ranking_default_limit: int = 5

    def experience_policy(self) -> ExperiencePolicy:
        """Build the multiplier policy used by the Progression Engine."""
        return ExperiencePolicy(
            standard=self.exp_standard,
            premium=self.exp_premium,
            global_=self.exp_global,
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> MainframeConfig:
    """Read *path* and return a :class:`MainframeConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return config_from_dict(raw)


def config_from_dict(raw: dict) -> MainframeConfig:
    """Build a config from an already-parsed mapping, filling defaults."""
    defaults = MainframeConfig()
    teams = raw.get("team_names")
    return MainframeConfig(
        exp_standard=float(raw.get("exp_standard", defaults.exp_standard)),
        exp_premium=float(raw.get("exp_premium", defaults.exp_premium)),
        exp_global=float(raw.get("exp_global", defaults.exp_global)),
        premium_roles=tuple(raw.get("premium_roles", defaults.premium_roles)),
        starter_card_id=int(raw.get("starter_card_id", defaults.starter_card_id)),
        premium_card_id=int(raw.get("premium_card_id", defaults.premium_card_id)),
        sentinel_sysname=str(raw.get("sentinel_sysname", defaults.sentinel_sysname)),
        team_names=(
            {int(k): str(v) for k, v in teams.items()} if teams else dict(DEFAULT_TEAM_NAMES)
        ),
        cohort_weeks=int(raw.get("cohort_weeks", defaults.cohort_weeks)),
        ranking_default_limit=int(
            raw.get("ranking_default_limit", defaults.ranking_default_limit)
        ),
    )
