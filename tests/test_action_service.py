"""
tests/test_action_service.py — Widget Action Orchestration
===========================================================
End-to-end service flows for login, check-in, gacha, change-card and
send-action against an in-memory SQLite database.
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from mainframe.database.engine import run_db
from mainframe.engine.gacha import PullOutcome
from mainframe.errors import (
    AlreadyActiveError,
    NotFoundError,
    TransientStoreError,
    ValidationError,
)
from mainframe.services import (
    achievement_service,
    action_service,
    card_service,
    stat_service,
    user_service,
)
from mainframe.services.action_service import StatUpdate, Viewer

PILOT = Viewer(twitch_id="tw-1", display_name="Pilot", avatar="https://cdn/a.png")
VIP = Viewer(twitch_id="tw-2", display_name="Vee", roles=("VIP",))


def _user(engine, twitch_id: str):
    return user_service.find_user_by_twitch_id(engine, twitch_id)


class TestLogin:
    def test_registers_and_returns_profile(self, seeded_engine, config, levels):
        profile = action_service.login(seeded_engine, config, PILOT, levels)

        assert profile.twitch_id == "tw-1"
        assert profile.level == 1
        assert profile.default_card.sysname == "frequent-flyer"
        assert profile.last_login is not None

    def test_repeat_login_keeps_one_starter(self, seeded_engine, config, levels):
        action_service.login(seeded_engine, config, PILOT, levels)
        profile = action_service.login(seeded_engine, config, PILOT, levels)
        assert len(profile.cards) == 1


class TestCheckIn:
    def test_first_check_in(self, seeded_engine, config, levels):
        result = action_service.check_in(seeded_engine, config, PILOT, levels=levels)

        assert result.level == 1
        assert result.is_premium is False
        assert result.default_card.sysname == "frequent-flyer"
        assert result.achievements == []

        user = _user(seeded_engine, "tw-1")
        assert user.experience == 1.0
        assert user.last_checkin is not None
        assert stat_service.read_stat(seeded_engine, user.id, "checkin_count") == 1

    def test_premium_role(self, seeded_engine, config, levels):
        result = action_service.check_in(seeded_engine, config, VIP, levels=levels)

        assert result.is_premium is True
        assert result.default_card.sysname == "frequent-flyer-premium"
        assert _user(seeded_engine, "tw-2").experience == pytest.approx(1.15)

    def test_count_without_value_increments(self, seeded_engine, config, levels):
        action_service.check_in(seeded_engine, config, PILOT, levels=levels)
        action_service.check_in(seeded_engine, config, PILOT, levels=levels)

        uid = _user(seeded_engine, "tw-1").id
        assert stat_service.read_stat(seeded_engine, uid, "checkin_count") == 2

    def test_reported_count_unlocks_achievement(self, seeded_engine, config, levels):
        result = action_service.check_in(seeded_engine, config, PILOT, 5, levels)
        assert result.achievements == ["Frequent Flyer 1"]

    def test_becoming_premium_moves_default(self, seeded_engine, config, levels):
        action_service.check_in(seeded_engine, config, PILOT, levels=levels)
        upgraded = Viewer(twitch_id="tw-1", display_name="Pilot", roles=("Subscriber",))

        result = action_service.check_in(seeded_engine, config, upgraded, levels=levels)

        assert result.default_card.sysname == "frequent-flyer-premium"
        collection = card_service.list_cards(seeded_engine, result.user_id)
        assert sum(c.is_default for c in collection.cards) == 1

    def test_missing_identity(self, seeded_engine, config, levels):
        with pytest.raises(ValidationError):
            action_service.check_in(seeded_engine, config, Viewer("", "Pilot"), levels=levels)


class TestGachaPull:
    def test_new_card(self, seeded_engine, config, pick_card):
        result = action_service.gacha_pull(seeded_engine, config, PILOT, pick_card("economy"))

        assert result.outcome is PullOutcome.NEW
        assert result.is_new
        assert result.card.sysname == "economy"
        assert result.active_card == "frequent-flyer"

        uid = _user(seeded_engine, "tw-1").id
        unlocked = achievement_service.list_unlocked(seeded_engine, uid)
        assert [a.sysname for a in unlocked] == ["collector"]

    def test_duplicate(self, seeded_engine, config, pick_card):
        action_service.gacha_pull(seeded_engine, config, PILOT, pick_card("economy"))
        result = action_service.gacha_pull(seeded_engine, config, PILOT, pick_card("economy"))
        assert result.outcome is PullOutcome.DUPLICATE
        assert not result.is_new

    def test_try_again(self, seeded_engine, config, pick_card):
        result = action_service.gacha_pull(seeded_engine, config, PILOT, pick_card("try-again"))

        assert result.outcome is PullOutcome.TRY_AGAIN
        uid = _user(seeded_engine, "tw-1").id
        assert len(card_service.list_cards(seeded_engine, uid).cards) == 1

    def test_premium_viewer_can_pull_premium(self, seeded_engine, config, pick_card):
        result = action_service.gacha_pull(seeded_engine, config, VIP, pick_card("blackbird"))
        assert result.outcome is PullOutcome.NEW


class TestChangeCard:
    def test_switch(self, seeded_engine, config, pick_card):
        action_service.gacha_pull(seeded_engine, config, PILOT, pick_card("GX-01"))
        card = action_service.change_card(seeded_engine, config, PILOT, "GX-01")

        assert card.sysname == "GX-01"
        collection = action_service.get_cards(seeded_engine, config, PILOT)
        assert collection.default.sysname == "GX-01"
        assert [c.sysname for c in collection.cards][0] == "GX-01"

    def test_already_active(self, seeded_engine, config):
        with pytest.raises(AlreadyActiveError):
            action_service.change_card(seeded_engine, config, PILOT, "frequent-flyer")

    def test_not_owned(self, seeded_engine, config):
        with pytest.raises(NotFoundError):
            action_service.change_card(seeded_engine, config, PILOT, "blackbird")

    def test_empty_name(self, seeded_engine, config):
        with pytest.raises(ValidationError):
            action_service.change_card(seeded_engine, config, PILOT, "")


class TestSendAction:
    def test_experience_and_stats(self, seeded_engine, config):
        unlocked = action_service.send_action(
            seeded_engine, config, PILOT,
            exp=10,
            stats=[
                StatUpdate("points_spend", 10_000, increment=True),
                StatUpdate("redeems_count", 1, increment=True),
            ],
        )

        assert unlocked == ["Big Spender 1"]
        user = _user(seeded_engine, "tw-1")
        assert user.experience == 10.0
        assert stat_service.read_stats(seeded_engine, user.id) == {
            "points_spend": 10_000, "redeems_count": 1,
        }

    def test_premium_multiplier(self, seeded_engine, config):
        action_service.send_action(seeded_engine, config, VIP, exp=100)
        assert _user(seeded_engine, "tw-2").experience == pytest.approx(115.0)

    def test_sub_months_stored_on_user(self, seeded_engine, config):
        action_service.send_action(seeded_engine, config, PILOT, stats=[StatUpdate("sub_months", 6)])

        user = _user(seeded_engine, "tw-1")
        assert user.sub_months == 6
        assert stat_service.read_stats(seeded_engine, user.id) == {}

    def test_negative_experience_rejected(self, seeded_engine, config):
        with pytest.raises(ValidationError):
            action_service.send_action(seeded_engine, config, PILOT, exp=-5)

    def test_new_viewer_gets_starter_card(self, seeded_engine, config):
        action_service.send_action(
            seeded_engine, config, PILOT, stats=[StatUpdate("bonks_redeem", 1)],
        )

        uid = _user(seeded_engine, "tw-1").id
        collection = card_service.list_cards(seeded_engine, uid)
        assert [c.sysname for c in collection.cards] == ["frequent-flyer"]
        assert collection.default.sysname == "frequent-flyer"


# ---------------------------------------------------------------------------
# Dropped connections mid-action
# ---------------------------------------------------------------------------
class DroppingUpsert:
    """Wraps ``stat_service.upsert_stat`` and drops the connection *failures* times."""

    def __init__(self, real, failures: int):
        self.real = real
        self.failures = failures
        self.calls = 0

    def __call__(self, *args, **kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            raise OperationalError(
                "UPSERT user_stats", {}, Exception("server has gone away"),
                connection_invalidated=True,
            )
        return self.real(*args, **kwargs)


@pytest.fixture
def drop_upserts(monkeypatch):
    def install(failures: int) -> DroppingUpsert:
        wrapper = DroppingUpsert(stat_service.upsert_stat, failures)
        monkeypatch.setattr(stat_service, "upsert_stat", wrapper)
        return wrapper
    return install


class TestDroppedConnection:
    def test_single_drop_retries_only_the_stat_write(self, seeded_engine, config, levels, drop_upserts):
        upserts = drop_upserts(1)

        action_service.check_in(seeded_engine, config, PILOT, levels=levels)

        user = _user(seeded_engine, "tw-1")
        assert upserts.calls == 2
        assert user.experience == 1.0
        assert user.last_checkin is not None
        assert stat_service.read_stat(seeded_engine, user.id, "checkin_count") == 1

    def test_persistent_drop_keeps_committed_steps(self, seeded_engine, config, levels, drop_upserts):
        upserts = drop_upserts(10)

        with pytest.raises(TransientStoreError) as exc_info:
            action_service.check_in(seeded_engine, config, PILOT, levels=levels)

        assert exc_info.value.reconnectable
        assert exc_info.value.operation == "update_stat"
        assert upserts.calls == 2
        user = _user(seeded_engine, "tw-1")
        assert user.experience == 1.0
        assert user.last_checkin is None
        assert stat_service.read_stat(seeded_engine, user.id, "checkin_count") is None

    def test_async_bridge_does_not_replay_the_action(self, seeded_engine, config, levels, drop_upserts):
        drop_upserts(10)

        with pytest.raises(TransientStoreError):
            asyncio.run(run_db(action_service.check_in, seeded_engine, config, PILOT, None, levels))

        assert _user(seeded_engine, "tw-1").experience == 1.0

    def test_gacha_card_survives_failed_counter(self, seeded_engine, config, pick_card, drop_upserts):
        drop_upserts(10)
        with pytest.raises(TransientStoreError):
            action_service.gacha_pull(seeded_engine, config, PILOT, pick_card("economy"))

        uid = _user(seeded_engine, "tw-1").id
        owned = [c.sysname for c in card_service.list_cards(seeded_engine, uid).cards]
        assert sorted(owned) == ["economy", "frequent-flyer"]
        assert stat_service.read_stats(seeded_engine, uid) == {}

    def test_send_action_stops_at_failed_stat(self, seeded_engine, config, drop_upserts):
        drop_upserts(10)
        with pytest.raises(TransientStoreError):
            action_service.send_action(
                seeded_engine, config, PILOT, exp=10,
                stats=[StatUpdate("bonks_redeem", 1, increment=True)],
            )

        user = _user(seeded_engine, "tw-1")
        assert user.experience == 10.0
        assert stat_service.read_stats(seeded_engine, user.id) == {}
