"""
Unit tests for Redis storage: sessions, bookings, dedup and flow tokens
"""

import json
from datetime import datetime, timezone

import pytest

from booking_agent.src.storage.guards import FlowTokenGuard, MessageDedupGuard
from booking_agent.src.storage.redis_storage import SessionStore
from shared.models.booking import ConfirmedBooking
from shared.models.session import Session

USER_ID = "5512345678"


@pytest.fixture
def store(fake_redis):
    return SessionStore(redis=fake_redis, session_ttl=1800, bookings_ttl=2_592_000, max_bookings=20)


class TestSessionStore:
    """Tests for session persistence"""

    async def test_save_and_load(self, store, fake_redis):
        session = Session(user_id=USER_ID)
        session.set_sport("Padel")
        session.last_ts = 1792180000

        assert await store.save_session(session) is True
        assert fake_redis.ttls[f"session:{USER_ID}"] == 1800

        loaded = await store.get_session(USER_ID)
        assert loaded.draft.sport == "Padel"
        assert loaded.last_ts == 1792180000

    async def test_missing_session(self, store):
        assert await store.get_session(USER_ID) is None

    async def test_corrupt_session_discarded(self, store, fake_redis):
        """Test that an invalid payload is discarded instead of crashing"""
        fake_redis.data[f"session:{USER_ID}"] = "{not json"
        assert await store.get_session(USER_ID) is None

        fake_redis.data[f"session:{USER_ID}"] = json.dumps(["not", "an", "object"])
        assert await store.get_session(USER_ID) is None

    async def test_legacy_session_migrated(self, store, fake_redis):
        fake_redis.data[f"session:{USER_ID}"] = json.dumps({
            "bookingDraft": {"sport": "Golf", "date": "2026-10-20"},
            "lastTs": 5,
            "userChecked": True,
        })
        session = await store.get_session(USER_ID)

        assert session.user_id == USER_ID
        assert session.draft.sport == "Golf"
        assert session.user.checked is True

    async def test_redis_error_returns_none(self, mock_redis):
        mock_redis.get.side_effect = ConnectionError("redis down")
        store = SessionStore(redis=mock_redis)
        assert await store.get_session(USER_ID) is None

    async def test_delete(self, store):
        await store.save_session(Session(user_id=USER_ID))
        assert await store.delete_session(USER_ID) is True
        assert await store.get_session(USER_ID) is None

    async def test_health_check(self, store):
        assert await store.health_check() is True


class TestConfirmedBookings:
    """Tests for confirmed booking history"""

    async def test_add_dedups_and_keeps_ttl(self, store, fake_redis):
        first = ConfirmedBooking(
            sport="Padel", date="2026-10-17", time="14:00", name="Ana",
            confirmed_at=datetime(2026, 10, 16, 16, 0, tzinfo=timezone.utc)
        )
        again = ConfirmedBooking(
            sport="Padel", date="2026-10-17", time="14:00", name="ANA",
            confirmed_at=datetime(2026, 10, 16, 16, 5, tzinfo=timezone.utc)
        )
        await store.add_confirmed_booking(USER_ID, first)
        await store.add_confirmed_booking(USER_ID, again)

        bookings = await store.get_confirmed_bookings(USER_ID)
        assert len(bookings) == 1
        assert bookings[0].name == "ANA"
        assert fake_redis.ttls[f"bookings:{USER_ID}"] == 2_592_000

    async def test_history_independent_of_session(self, store):
        """Test that deleting the session keeps the booking history"""
        await store.save_session(Session(user_id=USER_ID))
        await store.add_confirmed_booking(
            USER_ID,
            ConfirmedBooking(sport="Padel", date="2026-10-17", time="14:00", name="Ana")
        )
        await store.delete_session(USER_ID)

        assert len(await store.get_confirmed_bookings(USER_ID)) == 1

    async def test_clear(self, store):
        await store.add_confirmed_booking(
            USER_ID,
            ConfirmedBooking(sport="Padel", date="2026-10-17", time="14:00", name="Ana")
        )
        assert await store.clear_confirmed_bookings(USER_ID) is True
        assert await store.get_confirmed_bookings(USER_ID) == []


class TestMessageDedupGuard:
    """Tests for message idempotency"""

    async def test_first_seen_then_duplicate(self, fake_redis):
        guard = MessageDedupGuard(fake_redis, ttl=86400)

        assert await guard.mark_processed("wamid.1") is True
        assert await guard.mark_processed("wamid.1") is False
        assert fake_redis.ttls["msg:wamid.1"] == 86400

    async def test_missing_id_always_processed(self, fake_redis):
        guard = MessageDedupGuard(fake_redis)
        assert await guard.mark_processed(None) is True
        assert await guard.mark_processed(None) is True

    async def test_redis_error_fails_open(self, mock_redis):
        mock_redis.set.side_effect = ConnectionError("redis down")
        guard = MessageDedupGuard(mock_redis)
        assert await guard.mark_processed("wamid.1") is True


class TestFlowTokenGuard:
    """Tests for flow tokens"""

    async def test_ensure_is_stable(self, fake_redis):
        guard = FlowTokenGuard(fake_redis)
        token = await guard.ensure_token(USER_ID)

        assert token
        assert await guard.ensure_token(USER_ID) == token
        assert await guard.is_current(USER_ID, token) is True

    async def test_reset_invalidates_old_token(self, fake_redis):
        guard = FlowTokenGuard(fake_redis)
        old = await guard.ensure_token(USER_ID)
        new = await guard.reset(USER_ID)

        assert new != old
        assert await guard.is_current(USER_ID, old) is False
        assert await guard.is_current(USER_ID, new) is True

    async def test_unknown_token_does_not_block(self, fake_redis):
        guard = FlowTokenGuard(fake_redis)
        assert await guard.is_current(USER_ID, None) is True
        assert await guard.is_current(USER_ID, "anything") is True
