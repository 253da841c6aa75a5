"""
mainframe.constants — Shared Constants
=======================================

Single source of truth for stat keys, card sort tiers and the score
compositions used by the flight report.  Import from here instead of
repeating string literals across services and routes.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Stat keys written by the widget actions
# ---------------------------------------------------------------------------
STAT_CHECKINS = "checkin_count"
STAT_POINTS_SPENT = "points_spend"
STAT_REDEEMS = "redeems_count"
STAT_GACHA_PULLS = "card_gacha_pulls"
STAT_GACHA_SUCCESS = "card_gacha_pulls_success"
STAT_FORTUNE_COOKIES = "fortune_cookie"
STAT_BONKS = "bonks_redeem"
STAT_SONG_REQUESTS = "song_requests"
STAT_RAIDS = "incoming_raid"
STAT_BEANS = "bean_redeems"
STAT_SHUTDOWN_PC = "shutdown_pc"
STAT_GHOST_CALLS = "ghost_calls"
STAT_HYDRATE = "hydrate_redeem"

# ``send-action`` routes this pseudo-stat to the users table instead.
SUB_MONTHS_KEY = "sub_months"

# Disruptive redeems (plus beans) sum into the chaos score.
CHAOS_STAT_KEYS: tuple[str, ...] = (STAT_SHUTDOWN_PC, STAT_BONKS, STAT_GHOST_CALLS, STAT_BEANS)

# Cooperative redeems and raids sum into the helper score.
HELPER_STAT_KEYS: tuple[str, ...] = (STAT_HYDRATE, STAT_RAIDS)


# ---------------------------------------------------------------------------
# Card display ordering — tier by catalog-number prefix
# ---------------------------------------------------------------------------
RARE_PREFIXES: tuple[str, ...] = ("GX", "EX", "SP")
RARE_PROMO_PREFIXES: tuple[str, ...] = ("RG", "RP")


def card_tier(catalog_no: str) -> int:
    """Sort tier for a catalog number: 1 rare, 2 rare-promo, 3 everything else."""
    prefix = (catalog_no or "")[:2]
    if prefix in RARE_PREFIXES:
        return 1
    if prefix in RARE_PROMO_PREFIXES:
        return 2
    return 3
