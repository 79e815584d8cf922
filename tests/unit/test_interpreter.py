"""
Unit tests for interpreters
"""

from datetime import datetime

import pytest
from dateutil import tz

from booking_agent.src.services.gemini_service import LLMError
from booking_agent.src.services.interpreter import (
    GeminiInterpreter,
    InterpreterUnavailable,
    RuleBasedInterpreter,
    create_interpreter,
)
from booking_agent.src.services.prompt_manager import PromptManager
from shared.models.session import Session, WaitingFor

NOW = datetime(2026, 10, 16, 10, 0, tzinfo=tz.gettz("America/Mexico_City"))


@pytest.fixture
def rules(settings):
    return RuleBasedInterpreter(settings)


@pytest.fixture
def session():
    return Session(user_id="5512345678")


@pytest.fixture
def prompt_manager(settings):
    return PromptManager(
        club=settings.club,
        sports=settings.sports,
        default_sport=settings.default_sport_name(),
        timezone=settings.timezone,
    )


def _gemini(mocker, text=None, error=None):
    gemini = mocker.MagicMock()
    if error is not None:
        gemini.generate_response = mocker.AsyncMock(side_effect=error)
    else:
        gemini.generate_response = mocker.AsyncMock(return_value={
            "text": text,
            "function_calls": [],
            "finish_reason": "STOP",
            "content": None,
        })
    return gemini


class TestRuleBasedInterpreter:
    """Tests for the deterministic interpreter"""

    async def test_full_booking_request(self, rules, session):
        result = await rules.interpret("Quiero reservar padel mañana a las 19:00", session, NOW)

        assert result.intent == "book"
        assert result.sport == "Padel"
        assert result.date == "2026-10-17"
        assert result.time == "19:00"
        assert result.time_is_ambiguous is False

    async def test_ambiguous_hour_not_today(self, rules, session):
        result = await rules.interpret("padel mañana a las 7", session, NOW)
        assert result.time == "07:00"
        assert result.time_is_ambiguous is True

    async def test_ambiguous_hour_today_moves_to_afternoon(self, rules, session):
        """Test that "hoy a las 7" at 10:00 means 19:00"""
        result = await rules.interpret("padel hoy a las 7", session, NOW)
        assert result.date == "2026-10-16"
        assert result.time == "19:00"
        assert result.time_is_ambiguous is False

    async def test_today_context_from_draft(self, rules, session):
        session.draft.date = "2026-10-16"
        result = await rules.interpret("a las 9", session, NOW)
        assert result.time == "21:00"

    async def test_duration_clamped(self, rules, session):
        result = await rules.interpret("padel mañana 5 horas", session, NOW)
        assert result.duration == 3
        assert result.requested_duration == 5
        assert result.duration_clamped is True
        assert result.time is None

    async def test_bare_name_when_waiting_for_name(self, rules, session):
        session.waiting_for = WaitingFor.NAME
        result = await rules.interpret("Luis Gómez", session, NOW)
        assert (result.name, result.last_name) == ("Luis", "Gómez")

    async def test_bare_words_are_not_a_name_otherwise(self, rules, session):
        result = await rules.interpret("Luis Gómez", session, NOW)
        assert result.name is None

    async def test_info_intent(self, rules, session):
        result = await rules.interpret("¿Tienen estacionamiento?", session, NOW)
        assert result.intent == "info"
        assert result.has_booking_fields() is False


class TestGeminiInterpreter:
    """Tests for the hybrid interpreter"""

    async def test_model_fills_missing_fields(self, mocker, rules, session, prompt_manager):
        gemini = _gemini(mocker, text='```json\n{"intent": "book", "sport": "pickleball", "date": "2026-10-20"}\n```')
        interpreter = GeminiInterpreter(rules, gemini, prompt_manager)

        result = await interpreter.interpret("quiero jugar el día que puede mi amigo", session, NOW)

        assert result.sport == "Pickleball"
        assert result.date == "2026-10-20"
        assert result.intent == "book"

    async def test_rules_win_over_model(self, mocker, rules, session, prompt_manager):
        gemini = _gemini(mocker, text='{"sport": "golf", "date": "2026-10-25"}')
        interpreter = GeminiInterpreter(rules, gemini, prompt_manager)

        result = await interpreter.interpret("padel mañana", session, NOW)

        assert result.sport == "Padel"
        assert result.date == "2026-10-17"

    async def test_complete_rules_skip_model(self, mocker, rules, session, prompt_manager):
        gemini = _gemini(mocker, text="{}")
        interpreter = GeminiInterpreter(rules, gemini, prompt_manager)

        await interpreter.interpret("padel mañana a las 19:00", session, NOW)

        gemini.generate_response.assert_not_called()

    async def test_past_or_invalid_model_values_rejected(self, mocker, rules, session, prompt_manager):
        gemini = _gemini(mocker, text='{"date": "2020-01-01", "time": "25:99", "sport": "tenis"}')
        interpreter = GeminiInterpreter(rules, gemini, prompt_manager)

        result = await interpreter.interpret("quiero jugar", session, NOW)

        assert result.date is None
        assert result.time is None
        assert result.sport is None

    async def test_model_duration_clamped(self, mocker, rules, session, prompt_manager):
        gemini = _gemini(mocker, text='{"duration": 4}')
        interpreter = GeminiInterpreter(rules, gemini, prompt_manager)

        result = await interpreter.interpret("quiero jugar bastante rato", session, NOW)

        assert result.duration == 3
        assert result.duration_clamped is True

    async def test_model_failure_with_nothing_found(self, mocker, rules, session, prompt_manager):
        interpreter = GeminiInterpreter(rules, _gemini(mocker, error=LLMError("timeout")), prompt_manager)

        with pytest.raises(InterpreterUnavailable):
            await interpreter.interpret("mmm", session, NOW)

    async def test_model_failure_falls_back_to_rules(self, mocker, rules, session, prompt_manager):
        interpreter = GeminiInterpreter(rules, _gemini(mocker, error=LLMError("timeout")), prompt_manager)

        result = await interpreter.interpret("padel mañana", session, NOW)

        assert result.sport == "Padel"


class TestCreateInterpreter:
    def test_rules_default(self, settings):
        assert isinstance(create_interpreter(settings), RuleBasedInterpreter)

    def test_gemini_requires_service(self, settings):
        settings.interpreter_backend = "gemini"
        with pytest.raises(ValueError):
            create_interpreter(settings)

    def test_unknown_backend(self, settings):
        settings.interpreter_backend = "magic"
        with pytest.raises(ValueError):
            create_interpreter(settings)
