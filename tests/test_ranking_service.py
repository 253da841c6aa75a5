"""
tests/test_ranking_service.py — Leaderboards
=============================================
"""

from __future__ import annotations

import pytest

from mainframe.database.models import TimestampField
from mainframe.engine.progression import ExperiencePolicy
from mainframe.errors import ValidationError
from mainframe.services import achievement_service, ranking_service, stat_service, user_service
from mainframe.services.ranking_service import RankingKind


@pytest.fixture
def pilots(seeded_engine) -> dict[str, int]:
    """Three users with 5, 10 and 10 EXP, registered in that order."""
    policy = ExperiencePolicy()
    ids = {}
    for twitch_id, name, exp in (("tw-a", "Alpha", 5), ("tw-b", "Bravo", 10), ("tw-c", "Charlie", 10)):
        uid = user_service.resolve_user(seeded_engine, twitch_id, name).id
        user_service.award_experience(seeded_engine, uid, False, exp, policy)
        ids[name] = uid
    return ids


class TestParseKind:
    def test_known_kinds(self):
        assert ranking_service.parse_kind("exp") is RankingKind.EXPERIENCE
        assert ranking_service.parse_kind("checkins_last") is RankingKind.RECENT_CHECKINS

    def test_unknown_kind(self):
        with pytest.raises(ValidationError) as exc_info:
            ranking_service.parse_kind("karma")
        assert "rank_type" in exc_info.value.fields


class TestGetRanking:
    def test_experience_ties_broken_by_id(self, seeded_engine, pilots):
        entries = ranking_service.get_ranking(seeded_engine, "exp", 5)

        assert [e.display_name for e in entries] == ["Bravo", "Charlie", "Alpha"]
        assert [e.rank for e in entries] == [1, 2, 3]
        assert entries[0].value == 10.0

    def test_limit(self, seeded_engine, pilots):
        assert len(ranking_service.get_ranking(seeded_engine, RankingKind.EXPERIENCE, 2)) == 2

    @pytest.mark.parametrize("limit", [0, -1, 101])
    def test_invalid_limit(self, seeded_engine, limit):
        with pytest.raises(ValidationError):
            ranking_service.get_ranking(seeded_engine, "exp", limit)

    def test_stat_ranking_only_holders(self, seeded_engine, pilots):
        stat_service.update_stat(seeded_engine, pilots["Alpha"], "points_spend", 500)
        stat_service.update_stat(seeded_engine, pilots["Charlie"], "points_spend", 900)

        entries = ranking_service.get_ranking(seeded_engine, "spender")
        assert [(e.display_name, e.value) for e in entries] == [("Charlie", 900), ("Alpha", 500)]

    def test_total_checkins(self, seeded_engine, pilots):
        stat_service.update_stat(seeded_engine, pilots["Bravo"], "checkin_count", 3)
        entries = ranking_service.get_ranking(seeded_engine, "checkins")
        assert [e.display_name for e in entries] == ["Bravo"]

    def test_recent_checkins_skip_never_checked_in(self, seeded_engine, pilots):
        user_service.update_timestamp(seeded_engine, pilots["Alpha"], TimestampField.LAST_CHECKIN)
        entries = ranking_service.get_ranking(seeded_engine, "checkins_last")
        assert [e.display_name for e in entries] == ["Alpha"]

    def test_achievement_count(self, seeded_engine, pilots):
        stat_service.update_stat(seeded_engine, pilots["Charlie"], "checkin_count", 30)
        stat_service.update_stat(seeded_engine, pilots["Alpha"], "checkin_count", 5)
        for uid in (pilots["Charlie"], pilots["Alpha"]):
            achievement_service.check_and_award(seeded_engine, uid, "checkin_count")

        entries = ranking_service.get_ranking(seeded_engine, "achievements")
        assert [(e.display_name, e.value) for e in entries] == [("Charlie", 2), ("Alpha", 1)]

    def test_empty(self, seeded_engine):
        assert ranking_service.get_ranking(seeded_engine, "redeems") == []

    def test_as_dict(self, seeded_engine, pilots):
        data = ranking_service.get_ranking(seeded_engine, "exp", 1)[0].as_dict()
        assert data == {
            "rank": 1,
            "local_id": pilots["Bravo"],
            "twitch_display_name": "Bravo",
            "avatar": None,
            "value": 10.0,
        }
