"""
Unit tests for the quiz schedule parser.
"""

from datetime import time

import pytest

from quizscout.exceptions import ValidationError
from quizscout.utils.time_parser import (
    normalize_time_text,
    parse_day_of_week,
    parse_start_time,
    parse_time_text,
    to_time,
)


class TestParseTimeText:
    """Tests for parse_time_text."""

    @pytest.mark.parametrize(
        "text,day,start",
        [
            ("Tuesdays, 6.30pm", 2, "18:30"),
            ("Every Thursday at 8pm", 4, "20:00"),
            ("Wednesday 19:30", 3, "19:30"),
            ("Friday 7 pm", 5, "19:00"),
            ("Sundays 12pm", 7, "12:00"),
            ("Mon 7:45pm", 1, "19:45"),
            ("Saturday 11.15am", 6, "11:15"),
            ("THURS 8PM", 4, "20:00"),
        ],
    )
    def test_parses_common_phrases(self, text, day, start):
        """Test day and time extraction from typical listing phrases."""
        schedule = parse_time_text(text)

        assert schedule.day_of_week == day
        assert schedule.start_time == start

    def test_ignores_parenthesised_notes_and_booking_footer(self):
        """Test that '(doors 6.30)' and 'Book: ...' do not shadow the real time."""
        schedule = parse_time_text("Every Tuesday, 7pm (doors 6.30)\nBook: 0123 456")

        assert schedule.day_of_week == 2
        assert schedule.start_time == "19:00"

    def test_midnight_and_noon(self):
        """Test 12am and 12pm conversions."""
        assert parse_start_time("Friday 12am") == "00:00"
        assert parse_start_time("Friday 12pm") == "12:00"

    def test_as_time(self):
        """Test conversion of the parsed start to a time object."""
        assert parse_time_text("Tuesdays, 6.30pm").as_time == time(18, 30)


class TestParseTimeTextFailsClosed:
    """Unparseable phrases raise instead of defaulting."""

    def test_day_without_time(self):
        """Test that a bare day name is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            parse_time_text("Monday")

        assert exc_info.value.field == "start_time"

    def test_time_without_day(self):
        """Test that a bare time is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            parse_time_text("8pm")

        assert exc_info.value.field == "day_of_week"

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_text(self, text):
        """Test that empty schedule text is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            parse_time_text(text)

        assert exc_info.value.field == "time_text"

    def test_twelve_hour_value_out_of_range(self):
        """Test that 13pm is rejected."""
        with pytest.raises(ValidationError):
            parse_time_text("Tuesday 13pm")

    def test_twenty_four_hour_value_out_of_range(self):
        """Test that 25:00 is rejected."""
        with pytest.raises(ValidationError):
            parse_time_text("Friday 25:00")

    def test_minutes_out_of_range(self):
        """Test that 7.75pm is rejected."""
        with pytest.raises(ValidationError):
            parse_time_text("Friday 7.75pm")

    def test_error_names_fragment(self):
        """Test that the error message carries the offending text."""
        with pytest.raises(ValidationError) as exc_info:
            parse_time_text("Quiz night, ask at the bar")

        assert "Quiz night" in str(exc_info.value)


class TestHelpers:
    """Tests for the lower-level helpers."""

    def test_normalize_time_text(self):
        """Test filler removal."""
        assert normalize_time_text("Every Tuesday, at 7pm") == "tuesday 7pm"

    def test_parse_day_of_week(self):
        """Test ISO weekday numbering."""
        assert parse_day_of_week("monday") == 1
        assert parse_day_of_week("Sundays") == 7

    def test_to_time(self):
        """Test HH:MM conversion."""
        assert to_time("09:05") == time(9, 5)

    @pytest.mark.parametrize("value", ["9:05", "24:00", "12:60", "", None])
    def test_to_time_rejects_invalid(self, value):
        """Test that malformed or out-of-range values are rejected."""
        with pytest.raises(ValidationError):
            to_time(value)
