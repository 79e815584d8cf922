"""
Unit tests for the dialogue orchestrator
"""

import pytest

from backend_integrations.src.base import BackendUnavailableError, SlotTakenError
from booking_agent.src.core import replies
from booking_agent.src.services.channel_io import CollectingSender
from booking_agent.src.services.interpreter import Interpreter, InterpreterUnavailable
from booking_agent.src.services.responder import Responder
from shared.models.booking import UserProfile
from shared.models.message import Channel, Escalate, SendButtons, SendLocation, SendText
from shared.models.session import SessionState, WaitingFor

from conftest import USER_ID, make_slots


async def _turn(orchestrator, event):
    sender = CollectingSender()
    outcome = await orchestrator.handle_incoming(event, sender)
    return outcome, sender.actions


async def _say(orchestrator, make_event, text, **kwargs):
    outcome, actions = await _turn(orchestrator, make_event(text, **kwargs))
    assert outcome.status == "sent", outcome
    assert len(actions) == 1
    return actions[0]


class TestBookingScenarios:
    """End-to-end booking conversations"""

    async def test_padel_tomorrow_happy_path(self, orchestrator, context, gateway, make_event):
        """Test offer, pick, confirm and record for a known user"""
        offer = await _say(orchestrator, make_event, "Quiero reservar padel mañana")

        assert isinstance(offer, SendButtons)
        assert offer.options == ["14:00", "15:00"]
        assert offer.body == replies.offer_times("Padel", "2026-10-17", 1)
        assert gateway.user_calls == [USER_ID]
        assert gateway.slot_calls == [("Padel", "2026-10-17", 0)]

        confirm = await _say(orchestrator, make_event, "14:00")

        assert isinstance(confirm, SendButtons)
        assert confirm.options == [replies.CONFIRM_YES, replies.CONFIRM_NO]
        assert confirm.body == replies.confirm_booking("Padel", "2026-10-17", ["14:00"], "Ana", "López")
        session = await context.store.get_session(USER_ID)
        assert session.state == SessionState.AWAITING_CONFIRMATION

        done = await _say(orchestrator, make_event, "Sí, confirmar")

        assert isinstance(done, SendText)
        assert done.body == replies.booking_success("Padel", "2026-10-17", ["14:00"], "Ana")

        request = gateway.bookings[0]
        assert request.times == ["14:00"]
        assert request.court == "Cancha 1"
        assert request.user_type == "usuario"
        assert request.backend_user_id == "u-1"

        bookings = await context.store.get_confirmed_bookings(USER_ID)
        assert [b.key for b in bookings] == [("Padel", "2026-10-17", "14:00", "ana", "lopez")]

        session = await context.store.get_session(USER_ID)
        assert session.draft.is_empty()
        assert session.state == SessionState.COMPLETED
        assert len(session.transcript) == 6

    async def test_guest_is_asked_for_name(self, orchestrator, context, gateway, make_event):
        gateway.profile = UserProfile(found=False)

        ask = await _say(orchestrator, make_event, "padel mañana a las 15:00")
        assert ask.body == replies.ASK_NAME
        session = await context.store.get_session(USER_ID)
        assert session.state == SessionState.AWAITING_NAME

        confirm = await _say(orchestrator, make_event, "Juan Pérez")
        assert "Juan Pérez" in confirm.body

        await _say(orchestrator, make_event, "si")

        request = gateway.bookings[0]
        assert request.user_type == "invitado"
        assert request.backend_user_id is None
        assert (request.name, request.last_name) == ("Juan", "Pérez")
        session = await context.store.get_session(USER_ID)
        assert session.user.name == "Juan"

    async def test_ambiguous_hour_matches_afternoon_option(self, orchestrator, gateway, make_event):
        gateway.slots = make_slots(("Cancha 1", "19:00"))

        confirm = await _say(orchestrator, make_event, "padel mañana a las 7")

        assert isinstance(confirm, SendButtons)
        assert "19:00" in confirm.body

    async def test_asks_for_sport_then_date(self, orchestrator, context, make_event):
        ask_sport = await _say(orchestrator, make_event, "quiero reservar")
        assert isinstance(ask_sport, SendButtons)
        assert ask_sport.options == ["Padel", "Pickleball", "Golf"]

        ask_date = await _say(orchestrator, make_event, "Golf")
        assert ask_date.body == replies.ASK_DATE
        session = await context.store.get_session(USER_ID)
        assert session.state == SessionState.COLLECTING_DATE
        assert session.waiting_for == WaitingFor.DATE

    async def test_no_availability_goes_back_to_date(self, orchestrator, context, gateway, make_event):
        gateway.slots = []

        reply = await _say(orchestrator, make_event, "padel mañana")

        assert reply.body == replies.no_availability("Padel", "2026-10-17")
        session = await context.store.get_session(USER_ID)
        assert session.state == SessionState.COLLECTING_DATE

    async def test_unavailable_time_offers_closest(self, orchestrator, gateway, make_event):
        gateway.slots = make_slots(("Cancha 1", "10:00"), ("Cancha 1", "12:00"), ("Cancha 1", "18:00"))

        offer = await _say(orchestrator, make_event, "padel mañana a las 13:00")

        assert isinstance(offer, SendButtons)
        assert offer.body == replies.time_not_available("13:00")
        assert offer.options == ["12:00", "10:00", "18:00"]

    async def test_many_options_sent_as_list(self, orchestrator, gateway, make_event):
        gateway.slots = make_slots(*[("Cancha 1", f"{h:02d}:00") for h in range(8, 14)])

        offer = await _say(orchestrator, make_event, "padel mañana")

        rows = offer.sections[0].rows
        assert offer.type == "send_list"
        assert [r.title for r in rows] == ["08:00", "09:00", "10:00", "11:00", "12:00", "13:00"]

    async def test_duration_clamped_with_notice(self, orchestrator, context, gateway, make_event):
        """Test that 5 hours is reduced to 3 and the user is told"""
        gateway.slots = make_slots(*[("Cancha 1", f"{h}:00") for h in (14, 15, 16, 17)])

        offer = await _say(orchestrator, make_event, "padel mañana 5 horas")

        assert offer.body.startswith(replies.duration_clamped(5, 3))
        assert offer.options == ["14:00", "15:00"]
        session = await context.store.get_session(USER_ID)
        assert session.draft.duration == 3
        assert session.availability.options[0].times == ["14:00", "15:00", "16:00"]


class TestInvalidationAndConfirmation:
    """Tests for draft changes and yes/no handling"""

    async def test_date_and_sport_change_refetch(self, orchestrator, gateway, make_event):
        await _say(orchestrator, make_event, "padel mañana")
        reply = await _say(orchestrator, make_event, "mejor pasado mañana")
        await _say(orchestrator, make_event, "mejor pickleball")

        assert gateway.slot_calls == [
            ("Padel", "2026-10-17", 0),
            ("Padel", "2026-10-18", 0),
            ("Pickleball", "2026-10-18", 0),
        ]
        assert "18 de octubre" in reply.body

    async def test_negative_confirmation(self, orchestrator, context, gateway, make_event):
        await _say(orchestrator, make_event, "padel mañana a las 14:00")

        reply = await _say(orchestrator, make_event, "No")

        assert reply.body == replies.ASK_OTHER_TIME
        assert gateway.bookings == []
        session = await context.store.get_session(USER_ID)
        assert session.pending is None
        assert session.waiting_for == WaitingFor.TIME

    async def test_new_time_replaces_pending(self, orchestrator, context, gateway, make_event):
        await _say(orchestrator, make_event, "padel mañana a las 14:00")

        confirm = await _say(orchestrator, make_event, "mejor a las 15:00")

        assert "15:00" in confirm.body
        session = await context.store.get_session(USER_ID)
        assert session.pending.start == "15:00"
        assert session.pending.court == "Cancha 2"
        assert gateway.bookings == []

    async def test_slot_taken_offers_alternatives(self, orchestrator, context, gateway, make_event):
        """Test re-fetch after a conflict without offering the failed time"""
        gateway.slots = make_slots(("Cancha 1", "14:00"), ("Cancha 2", "15:00"), ("Cancha 1", "16:00"))
        gateway.booking_errors = [SlotTakenError("Horario ocupado")]
        await _say(orchestrator, make_event, "padel mañana a las 14:00")

        offer = await _say(orchestrator, make_event, "sí")

        assert isinstance(offer, SendButtons)
        assert offer.body == replies.slot_taken("14:00")
        assert offer.options == ["15:00", "16:00"]
        assert len(gateway.slot_calls) == 2
        session = await context.store.get_session(USER_ID)
        assert session.pending is None
        assert await context.store.get_confirmed_bookings(USER_ID) == []

    async def test_repeated_failures_escalate(self, orchestrator, gateway, make_event):
        gateway.booking_errors = [BackendUnavailableError("down"), BackendUnavailableError("down")]
        await _say(orchestrator, make_event, "padel mañana a las 14:00")

        retry = await _say(orchestrator, make_event, "si")
        assert retry.body == replies.BOOKING_FAILED
        assert retry.options == ["15:00"]

        await _say(orchestrator, make_event, "15:00")
        escalation = await _say(orchestrator, make_event, "si")

        assert isinstance(escalation, Escalate)
        assert escalation.reason == "booking_failed"


class TestGuards:
    """Tests for dedup, ordering and reset"""

    async def test_duplicate_message_dropped(self, orchestrator, gateway, make_event):
        event = make_event("padel mañana", message_id="wamid.same")
        first, _ = await _turn(orchestrator, event)
        second, actions = await _turn(orchestrator, event)

        assert first.status == "sent"
        assert second.status == "duplicate"
        assert actions == []
        assert len(gateway.slot_calls) == 1

    async def test_older_message_dropped(self, orchestrator, context, make_event):
        await _say(orchestrator, make_event, "hola", timestamp=2000)

        outcome, actions = await _turn(orchestrator, make_event("padel mañana", timestamp=1500))

        assert outcome.status == "stale_event"
        assert actions == []
        session = await context.store.get_session(USER_ID)
        assert session.draft.sport is None
        assert session.last_ts == 2000

    async def test_reset_clears_everything(self, orchestrator, context, make_event):
        await _say(orchestrator, make_event, "padel mañana a las 14:00")
        await _say(orchestrator, make_event, "si")
        old_token = await context.flow.current(USER_ID)

        ack = await _say(orchestrator, make_event, "RESET")

        assert ack.body == replies.RESET_ACK
        assert await context.store.get_session(USER_ID) is None
        assert await context.store.get_confirmed_bookings(USER_ID) == []
        assert await context.flow.current(USER_ID) != old_token

    async def test_similar_word_keeps_history(self, orchestrator, context, make_event):
        """Test that only the literal "reset" wipes the conversation"""
        await _say(orchestrator, make_event, "padel mañana a las 14:00")
        await _say(orchestrator, make_event, "si")
        token = await context.flow.current(USER_ID)

        reply = await _say(orchestrator, make_event, "reiniciar")

        assert reply.body != replies.RESET_ACK
        assert len(await context.store.get_confirmed_bookings(USER_ID)) == 1
        assert await context.flow.current(USER_ID) == token

    async def test_reset_during_turn_drops_stale_reply(self, orchestrator, context, gateway, make_event):
        """Test that a reply computed before a reset is neither sent nor persisted"""
        async def concurrent_reset():
            await context.flow.reset(USER_ID)

        gateway.on_get_slots = concurrent_reset

        outcome, actions = await _turn(orchestrator, make_event("padel mañana"))

        assert outcome.status == "stale_flow"
        assert actions == []
        assert await context.store.get_session(USER_ID) is None

    async def test_unsupported_channel_ignored(self, orchestrator, make_event):
        outcome, actions = await _turn(orchestrator, make_event("hola", channel=Channel.TELEGRAM))
        assert outcome.status == "ignored"
        assert actions == []

    async def test_empty_text_ignored(self, orchestrator, make_event):
        outcome, _ = await _turn(orchestrator, make_event("   "))
        assert outcome.status == "ignored"

    async def test_voice_channel_accepted(self, orchestrator, make_event):
        outcome, _ = await _turn(orchestrator, make_event("hola", channel=Channel.VOICE))
        assert outcome.status == "sent"


class TestRepliesAndFailures:
    """Tests for canned replies, escalation and failure handling"""

    async def test_courtesy(self, orchestrator, make_event):
        reply = await _say(orchestrator, make_event, "¡Gracias!")
        assert reply.body == replies.courtesy("Ana")

    async def test_greeting(self, orchestrator, context, make_event):
        reply = await _say(orchestrator, make_event, "hola")
        assert reply.body == replies.greeting("Ana", context.settings.club)

    async def test_location(self, orchestrator, context, make_event):
        reply = await _say(orchestrator, make_event, "¿Dónde están?")
        assert isinstance(reply, SendLocation)
        assert reply.lat == context.settings.club.latitude

    async def test_price_question(self, orchestrator, context, make_event):
        reply = await _say(orchestrator, make_event, "¿Cuánto cuesta?")
        assert reply.body == replies.prices(context.settings.club)

    async def test_hedging_reply_escalates(self, orchestrator, context, make_event):
        class HedgingResponder(Responder):
            async def respond(self, text, session, bookings, now):
                return "Voy a revisar y te aviso"

        context.responder = HedgingResponder()

        reply = await _say(orchestrator, make_event, "¿Tienen clases para niños?")

        assert isinstance(reply, Escalate)
        assert reply.reason == "low_confidence"

    async def test_interpreter_unavailable(self, orchestrator, context, make_event):
        class BrokenInterpreter(Interpreter):
            async def interpret(self, text, session, now):
                raise InterpreterUnavailable("model down")

        context.interpreter = BrokenInterpreter()

        reply = await _say(orchestrator, make_event, "asdfgh")

        assert reply.body == replies.PLEASE_REPEAT

    async def test_backend_down_during_fetch(self, orchestrator, gateway, make_event):
        gateway.slot_errors = [BackendUnavailableError("down")]
        reply = await _say(orchestrator, make_event, "padel mañana")
        assert reply.body == replies.BOOKING_FAILED

    async def test_unexpected_error_still_replies_and_saves(self, orchestrator, context, gateway, make_event):
        gateway.slot_errors = [RuntimeError("boom")]

        reply = await _say(orchestrator, make_event, "padel mañana")

        assert reply.body == replies.PLEASE_REPEAT
        session = await context.store.get_session(USER_ID)
        assert session.draft.sport == "Padel"

    async def test_profile_lookup_failure_retried_next_turn(self, orchestrator, context, gateway, make_event, mocker):
        gateway.get_user = mocker.AsyncMock(
            side_effect=[BackendUnavailableError("down"), UserProfile(found=True, name="Ana")]
        )

        await _say(orchestrator, make_event, "hola")
        session = await context.store.get_session(USER_ID)
        assert session.user.checked is False

        await _say(orchestrator, make_event, "hola")
        session = await context.store.get_session(USER_ID)
        assert session.user.checked is True
        assert session.user.name == "Ana"
