"""
tests/test_profile_service.py — Profile Aggregation
====================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from mainframe.database.models import TeamMembership
from mainframe.errors import NotFoundError
from mainframe.services import (
    achievement_service,
    card_service,
    profile_service,
    stat_service,
    user_service,
)


@pytest.fixture
def uid(seeded_engine, config) -> int:
    user = user_service.resolve_user(seeded_engine, "tw-1", "Pilot", "https://cdn/a.png")
    card_service.ensure_first_card(seeded_engine, user.id, False, config)
    return user.id


def _join_team(engine, user_id: int, team_number: int) -> None:
    with Session(engine) as session:
        session.add(TeamMembership(user_id=user_id, team_number=team_number))
        session.commit()


class TestBuildProfile:
    def test_fresh_user(self, seeded_engine, config, levels, uid):
        profile = profile_service.build_profile(seeded_engine, uid, config, levels)

        assert profile.level == 1
        assert profile.title == "Passenger"
        assert profile.level_progress == 0
        assert profile.default_card.sysname == "frequent-flyer"
        assert profile.stats == {}
        assert profile.achievements == []
        assert profile.team is None

    def test_level_follows_experience(self, seeded_engine, config, levels, uid):
        user_service.award_experience(seeded_engine, uid, False, 15, config.experience_policy())
        profile = profile_service.build_profile(seeded_engine, uid, config, levels)

        assert profile.experience == 15.0
        assert profile.level == 2
        assert profile.level_progress == 33

    def test_stats_and_achievements(self, seeded_engine, config, levels, uid):
        stat_service.update_stat(seeded_engine, uid, "checkin_count", 5)
        achievement_service.check_and_award(seeded_engine, uid, "checkin_count")

        profile = profile_service.build_profile(seeded_engine, uid, config, levels)
        assert profile.stats == {"checkin_count": 5}
        assert [a.name for a in profile.achievements] == ["Frequent Flyer"]

    def test_team_name(self, seeded_engine, config, levels, uid):
        _join_team(seeded_engine, uid, 2)
        profile = profile_service.build_profile(seeded_engine, uid, config, levels)
        assert profile.team == "Concorde"

    def test_first_membership_wins(self, seeded_engine, config, levels, uid):
        _join_team(seeded_engine, uid, 3)
        _join_team(seeded_engine, uid, 1)
        assert profile_service.build_profile(seeded_engine, uid, config, levels).team == "Stratos"

    def test_unknown_team_number(self, seeded_engine, config, levels, uid):
        _join_team(seeded_engine, uid, 9)
        assert profile_service.build_profile(seeded_engine, uid, config, levels).team is None

    def test_unknown_user(self, seeded_engine, config, levels):
        with pytest.raises(NotFoundError):
            profile_service.build_profile(seeded_engine, 404, config, levels)

    def test_by_twitch_id(self, seeded_engine, config, levels, uid):
        profile = profile_service.build_profile_by_twitch_id(seeded_engine, "tw-1", config, levels)
        assert profile.user_id == uid

        with pytest.raises(NotFoundError):
            profile_service.build_profile_by_twitch_id(seeded_engine, "nobody", config, levels)

    def test_as_dict(self, seeded_engine, config, levels, uid):
        data = profile_service.build_profile(seeded_engine, uid, config, levels).as_dict()

        assert data["local_id"] == uid
        assert data["twitch_display_name"] == "Pilot"
        assert data["avatar"] == "https://cdn/a.png"
        assert data["user_card"]["sysname"] == "frequent-flyer"
        assert len(data["user_cards"]) == 1
        assert isinstance(data["reg_date"], str)
