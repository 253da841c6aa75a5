"""
Mainframe — Progression & Collection Engine for a Twitch Loyalty Widget
========================================================================
Backs the "Frequent Flyer Program" stream widget: viewers earn experience,
check in, pull randomized cards, unlock tiered achievements and look up
leaderboards and personal flight reports.

Package layout::

    mainframe/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Stat keys, card tiers, report score keys
    ├── errors.py          # Error taxonomy raised by the services
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, session + retry helpers
    │   ├── models.py      # ORM models (7 tables)
    │   └── seed.py        # Card / achievement catalog + level table loader
    ├── engine/
    │   ├── progression.py # Level table + experience policy (pure)
    │   ├── achievements.py # Threshold evaluation (pure)
    │   └── gacha.py       # Weighted card draw (pure)
    ├── services/
    │   ├── user_service.py       # Resolve-or-create, timestamps, EXP awards
    │   ├── stat_service.py       # Atomic stat upserts
    │   ├── achievement_service.py # Unlock + record achievements
    │   ├── card_service.py       # Owned cards, default card, starter cards
    │   ├── gacha_service.py      # Pull + issuance resolution
    │   ├── profile_service.py    # Full user snapshot
    │   ├── ranking_service.py    # Leaderboards
    │   ├── report_service.py     # Flight reports
    │   └── action_service.py     # Inbound widget actions
    └── api/
        ├── main.py        # FastAPI app
        └── routes/        # /mainframe endpoints
"""

__version__ = "0.1.0"
