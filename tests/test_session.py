"""Tests for client profiles and session management."""
from datetime import date, timedelta

import pytest

from emi_reminder.core.exceptions import InvalidClientProfileException
from emi_reminder.core.models import ClientProfile, ConversationTurn, Sentiment, Speaker
from emi_reminder.core.session import Session, SessionManager


class TestClientProfile:

    def test_from_camel_case(self):
        profile = ClientProfile.from_dict({
            "name": " Asha ",
            "mobile": "9876543210",
            "totalDue": "15000",
            "emiAmount": 2500,
            "dueDate": "2024-06-05T00:00:00.000Z"
        })

        assert profile.name == "Asha"
        assert profile.total_outstanding == 15000.0
        assert profile.due_date == date(2024, 6, 5)

    def test_from_snake_case(self):
        profile = ClientProfile.from_dict({
            "name": "Ravi",
            "mobile": "9000000000",
            "total_outstanding": 1000,
            "installment_amount": 100,
            "due_date": date(2024, 1, 31)
        })

        assert profile.to_dict()["dueDate"] == "2024-01-31"

    def test_collects_all_errors(self):
        with pytest.raises(InvalidClientProfileException) as exc_info:
            ClientProfile.from_dict({"emiAmount": "abc", "dueDate": "soon"})

        errors = exc_info.value.details["validation_errors"]
        assert "name is required" in errors
        assert "installment_amount must be a number" in errors
        assert "due_date must be an ISO date" in errors

    def test_days_until_due(self):
        profile = ClientProfile("Asha", "1", 1, 1, date(2024, 6, 5))
        assert profile.days_until_due(date(2024, 6, 1)) == 4
        assert profile.days_until_due(date(2024, 6, 7)) == -2


@pytest.mark.parametrize("label, expected", [
    ("POSITIVE", Sentiment.POSITIVE),
    (" negative. ", Sentiment.NEGATIVE),
    ("MIXED", Sentiment.NEUTRAL),
    (None, Sentiment.NEUTRAL),
])
def test_sentiment_parse(label, expected):
    assert Sentiment.parse(label) == expected


class TestSessionManager:

    @pytest.mark.asyncio
    async def test_get_or_create_reuses_session(self, profile):
        manager = SessionManager()

        session = await manager.get_or_create_session(profile, "s-1")
        again = await manager.get_or_create_session(profile, "s-1")

        assert again is session
        assert await manager.get_active_session_count() == 1

    @pytest.mark.asyncio
    async def test_changed_profile_starts_fresh_log(self, profile):
        manager = SessionManager()
        session = await manager.get_or_create_session(profile, "s-1")
        session.add_turn(ConversationTurn(Speaker.USER, "hello"))

        other = ClientProfile("Ravi", "9000000000", 1000, 100, profile.due_date)
        replaced = await manager.get_or_create_session(other, "s-1")

        assert replaced is not session
        assert replaced.turns == ()

    @pytest.mark.asyncio
    async def test_evicts_least_recent_when_full(self, profile):
        manager = SessionManager(max_sessions=2)
        await manager.create_session(profile, "a")
        await manager.create_session(profile, "b")
        await manager.create_session(profile, "c")

        assert await manager.get_session("a") is None
        assert await manager.get_session("c") is not None

    @pytest.mark.asyncio
    async def test_replacing_session_at_capacity_keeps_others(self, profile):
        manager = SessionManager(max_sessions=2)
        await manager.create_session(profile, "a")
        await manager.create_session(profile, "b")

        other = ClientProfile("Ravi", "9000000000", 1000, 100, profile.due_date)
        replaced = await manager.get_or_create_session(other, "b")

        assert replaced.profile == other
        assert await manager.get_session("a") is not None
        assert await manager.get_active_session_count() == 2

    @pytest.mark.asyncio
    async def test_purge_expired(self, profile):
        manager = SessionManager()
        stale = await manager.create_session(profile, "old")
        await manager.create_session(profile, "new")
        stale.last_activity -= timedelta(days=1)

        assert await manager.purge_expired() == 1
        assert await manager.get_session("old") is None
        assert await manager.get_active_session_count() == 1

    def test_turn_log_is_read_only_view(self, profile):
        session = Session(session_id="s", profile=profile)
        session.add_turn(ConversationTurn(Speaker.ASSISTANT, "Hello Asha"))

        assert isinstance(session.turns, tuple)
        assert session.to_dict()["turnCount"] == 1
