"""
Unit tests for time/text resolvers
"""

from datetime import date, datetime, timezone

import pytest

from booking_agent.src.core.resolvers import (
    infer_ambiguous_time,
    is_ambiguous_time,
    local_now,
    parse_bare_name,
    resolve_date,
    resolve_duration,
    resolve_name,
    resolve_sport,
    resolve_time,
)

# Friday
TODAY = date(2026, 10, 16)

SPORTS = [
    ("Padel", ["padel", "paddle"]),
    ("Pickleball", ["pickleball", "pickle"]),
    ("Golf", ["golf", "simulador"]),
]


class TestResolveDate:
    """Tests for date resolution"""

    @pytest.mark.parametrize("text,expected", [
        ("hoy", "2026-10-16"),
        ("Mañana", "2026-10-17"),
        ("pasado mañana", "2026-10-18"),
        ("en 3 días", "2026-10-19"),
        ("el lunes", "2026-10-19"),
        ("el viernes", "2026-10-16"),
        ("el próximo viernes", "2026-10-23"),
        ("viernes que viene", "2026-10-23"),
        ("20/10", "2026-10-20"),
        ("17 de octubre", "2026-10-17"),
        ("2026-11-02", "2026-11-02"),
    ])
    def test_recognized(self, text, expected):
        """Test relative and absolute date phrases"""
        assert resolve_date(text, TODAY) == expected

    def test_past_day_month_rolls_to_next_year(self):
        """Test that a day already gone this year means next year"""
        assert resolve_date("15 de marzo", TODAY) == "2027-03-15"

    def test_explicit_year(self):
        assert resolve_date("15 de marzo de 2028", TODAY) == "2028-03-15"

    def test_por_la_manana_is_not_tomorrow(self):
        """Test that "por la mañana" is a time of day, not a date"""
        assert resolve_date("por la mañana", TODAY) is None

    @pytest.mark.parametrize("text", ["", "quiero jugar", "31/02", "2026-13-40"])
    def test_unrecognized(self, text):
        assert resolve_date(text, TODAY) is None


class TestResolveTime:
    """Tests for time resolution"""

    @pytest.mark.parametrize("text,expected", [
        ("19:30", "19:30"),
        ("a las 7:15 pm", "19:15"),
        ("7pm", "19:00"),
        ("7am", "07:00"),
        ("a las 7 de la tarde", "19:00"),
        ("a las 8 y media", "08:30"),
        ("a las siete", "07:00"),
        ("9 de la noche", "21:00"),
        ("a las 12 de la noche", "00:00"),
        ("12 de la noche", "00:00"),
        ("12 de la tarde", "12:00"),
        ("mediodía", "12:00"),
        ("18", "18:00"),
        ("14 hrs", "14:00"),
    ])
    def test_recognized(self, text, expected):
        assert resolve_time(text) == expected

    @pytest.mark.parametrize("text", ["15 de marzo", "2 horas", "en 3 días", "quiero reservar", "99"])
    def test_dates_and_durations_are_not_times(self, text):
        """Test that numbers belonging to dates or durations are ignored"""
        assert resolve_time(text) is None


class TestAmbiguousTime:
    """Tests for ambiguous hour handling"""

    def test_bare_hour_is_ambiguous(self):
        assert is_ambiguous_time("mañana a las 7", "07:00") is True

    @pytest.mark.parametrize("text,resolved", [
        ("a las 7 pm", "19:00"),
        ("a las 7 de la mañana", "07:00"),
        ("a las 7:00", "07:00"),
        ("a las 18", "18:00"),
    ])
    def test_not_ambiguous(self, text, resolved):
        assert is_ambiguous_time(text, resolved) is False

    def test_passed_hour_today_moves_to_afternoon(self):
        """Test that 7 at 10:00 today means 19:00"""
        assert infer_ambiguous_time(7, is_today=True, now_hour=10) == "19:00"

    def test_future_hour_today_is_kept(self):
        assert infer_ambiguous_time(11, is_today=True, now_hour=10) == "11:00"

    def test_not_today_is_left_ambiguous(self):
        assert infer_ambiguous_time(7, is_today=False, now_hour=10) is None


class TestResolveDuration:
    """Tests for duration resolution"""

    def test_digits(self):
        result = resolve_duration("por 2 horas")
        assert result.hours == 2
        assert result.was_clamped is False

    def test_spanish_number(self):
        assert resolve_duration("dos horas").hours == 2
        assert resolve_duration("una hora").hours == 1

    def test_clamped_to_maximum(self):
        """Test that 5 hours becomes 3 with the clamp flag"""
        result = resolve_duration("5 horas", max_duration=3)
        assert result.hours == 3
        assert result.requested == 5
        assert result.was_clamped is True

    def test_missing(self):
        assert resolve_duration("padel mañana") is None


class TestResolveSportAndName:
    """Tests for sport and name extraction"""

    def test_sport_keywords(self):
        assert resolve_sport("quiero jugar PÁDEL", SPORTS) == "Padel"
        assert resolve_sport("una de pickle", SPORTS) == "Pickleball"
        assert resolve_sport("el simulador", SPORTS) == "Golf"
        assert resolve_sport("tenis", SPORTS) is None

    def test_name_intro(self):
        assert resolve_name("me llamo juan pérez") == ("Juan", "Pérez")
        assert resolve_name("a nombre de María") == ("María", None)

    def test_name_stops_at_connector(self):
        """Test that the name ends before "y quiero ..." """
        assert resolve_name("soy Ana y quiero reservar") == ("Ana", None)

    def test_no_name(self):
        assert resolve_name("quiero reservar") == (None, None)

    def test_bare_name(self):
        assert parse_bare_name("María López") == ("María", "López")
        assert parse_bare_name("Luis") == ("Luis", None)

    @pytest.mark.parametrize("text", ["a las 7", "si", "quiero reservar padel mañana temprano"])
    def test_bare_name_rejects_non_names(self, text):
        assert parse_bare_name(text) == (None, None)


def test_local_now_converts_to_club_timezone():
    now = local_now("America/Mexico_City", datetime(2026, 10, 16, 16, 0, tzinfo=timezone.utc))
    assert now.hour == 10
    assert now.date() == TODAY
