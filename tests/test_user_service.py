"""
tests/test_user_service.py — User Registry & Experience Awards
===============================================================
Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

import pytest

from mainframe.database.models import TimestampField
from mainframe.engine.progression import ExperiencePolicy
from mainframe.errors import NotFoundError, ValidationError
from mainframe.services import user_service


class TestResolveUser:
    def test_creates_user_on_first_contact(self, db_engine):
        user = user_service.resolve_user(db_engine, "tw-100", "Pilot", "https://cdn/a.png")

        assert user.id is not None
        assert user.twitch_id == "tw-100"
        assert user.experience == 0.0
        assert user.is_premium is False
        assert user.twitch_avatar == "https://cdn/a.png"

    def test_same_twitch_id_resolves_same_user(self, db_engine):
        first = user_service.resolve_user(db_engine, "tw-100", "Pilot")
        second = user_service.resolve_user(db_engine, "tw-100", "Pilot")
        assert first.id == second.id

    def test_display_name_refreshed(self, db_engine):
        user_service.resolve_user(db_engine, "tw-100", "Pilot")
        user = user_service.resolve_user(db_engine, "tw-100", "CaptainPilot")
        assert user.twitch_display_name == "CaptainPilot"

    def test_empty_avatar_keeps_stored_avatar(self, db_engine):
        user_service.resolve_user(db_engine, "tw-100", "Pilot", "https://cdn/a.png")
        user = user_service.resolve_user(db_engine, "tw-100", "Pilot", "")
        assert user.twitch_avatar == "https://cdn/a.png"

    def test_new_avatar_replaces_stored_avatar(self, db_engine):
        user_service.resolve_user(db_engine, "tw-100", "Pilot", "https://cdn/a.png")
        user = user_service.resolve_user(db_engine, "tw-100", "Pilot", "https://cdn/b.png")
        assert user.twitch_avatar == "https://cdn/b.png"

    def test_premium_only_changes_when_given(self, db_engine):
        user_service.resolve_user(db_engine, "tw-100", "Pilot", is_premium=True)
        assert user_service.resolve_user(db_engine, "tw-100", "Pilot").is_premium is True

        user = user_service.resolve_user(db_engine, "tw-100", "Pilot", is_premium=False)
        assert user.is_premium is False

    @pytest.mark.parametrize("twitch_id,name,missing", [
        ("", "Pilot", "twitch_id"),
        ("tw-1", "", "twitch_display_name"),
    ])
    def test_missing_identity_rejected(self, db_engine, twitch_id, name, missing):
        with pytest.raises(ValidationError) as exc_info:
            user_service.resolve_user(db_engine, twitch_id, name)
        assert missing in exc_info.value.fields

    def test_find_unknown_twitch_id(self, db_engine):
        assert user_service.find_user_by_twitch_id(db_engine, "nobody") is None

    def test_get_unknown_user_raises(self, db_engine):
        with pytest.raises(NotFoundError):
            user_service.get_user_by_id(db_engine, 404)


class TestPremiumRoles:
    ROLES = ("VIP", "Subscriber", "Artist", "Moderator")

    def test_any_matching_role(self):
        assert user_service.is_premium_role(["Viewer", "Subscriber"], self.ROLES)

    def test_no_matching_role(self):
        assert not user_service.is_premium_role(["Viewer"], self.ROLES)

    def test_no_roles(self):
        assert not user_service.is_premium_role(None, self.ROLES)
        assert not user_service.is_premium_role([], self.ROLES)


class TestAwardExperience:
    def test_standard_award(self, db_engine):
        uid = user_service.resolve_user(db_engine, "tw-1", "Pilot").id
        credited = user_service.award_experience(db_engine, uid, False, 1, ExperiencePolicy())

        assert credited == 1.0
        assert user_service.get_user_by_id(db_engine, uid).experience == 1.0

    def test_premium_award(self, db_engine):
        uid = user_service.resolve_user(db_engine, "tw-1", "Pilot").id
        user_service.award_experience(db_engine, uid, True, 1, ExperiencePolicy())
        assert user_service.get_user_by_id(db_engine, uid).experience == pytest.approx(1.15)

    def test_awards_accumulate(self, db_engine):
        uid = user_service.resolve_user(db_engine, "tw-1", "Pilot").id
        policy = ExperiencePolicy(global_=2.0)
        for _ in range(3):
            user_service.award_experience(db_engine, uid, False, 5, policy)
        assert user_service.get_user_by_id(db_engine, uid).experience == pytest.approx(30.0)

    def test_negative_award_rejected(self, db_engine):
        uid = user_service.resolve_user(db_engine, "tw-1", "Pilot").id
        with pytest.raises(ValidationError):
            user_service.award_experience(db_engine, uid, False, -1, ExperiencePolicy())
        assert user_service.get_user_by_id(db_engine, uid).experience == 0.0

    def test_unknown_user_raises(self, db_engine):
        with pytest.raises(NotFoundError):
            user_service.award_experience(db_engine, 999, False, 1, ExperiencePolicy())


class TestTimestampsAndSubMonths:
    def test_update_timestamp(self, db_engine):
        uid = user_service.resolve_user(db_engine, "tw-1", "Pilot").id
        assert user_service.get_user_by_id(db_engine, uid).last_checkin is None

        user_service.update_timestamp(db_engine, uid, TimestampField.LAST_CHECKIN)
        assert user_service.get_user_by_id(db_engine, uid).last_checkin is not None

    def test_set_sub_months(self, db_engine):
        uid = user_service.resolve_user(db_engine, "tw-1", "Pilot").id
        user_service.set_sub_months(db_engine, uid, 12)
        assert user_service.get_user_by_id(db_engine, uid).sub_months == 12

    def test_unknown_user_timestamp(self, db_engine):
        with pytest.raises(NotFoundError):
            user_service.update_timestamp(db_engine, 999, TimestampField.LAST_CHECKIN)

    def test_unknown_user_sub_months(self, db_engine):
        with pytest.raises(NotFoundError):
            user_service.set_sub_months(db_engine, 999, 12)
