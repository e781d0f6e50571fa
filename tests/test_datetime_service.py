"""Tests for spoken date/time normalization."""

from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from services.datetime_service import (
    parse_date,
    parse_time,
    format_time_12h,
    format_date_spoken,
    localize,
)

WEDNESDAY = date(2026, 10, 14)
MONDAY = date(2026, 10, 12)


class TestParseDate:
    """Tests for parse_date."""

    def test_today_and_tomorrow(self):
        assert parse_date("today", WEDNESDAY) == WEDNESDAY
        assert parse_date("Tomorrow", WEDNESDAY) == date(2026, 10, 15)

    def test_next_monday_from_wednesday(self):
        """Test 'next monday' on a Wednesday lands on the following Monday."""
        assert parse_date("next monday", WEDNESDAY) == date(2026, 10, 19)

    def test_weekday_never_returns_today(self):
        assert parse_date("monday", MONDAY) == date(2026, 10, 19)
        assert parse_date("next monday", MONDAY) == date(2026, 10, 19)

    def test_later_weekday_this_week(self):
        assert parse_date("friday", WEDNESDAY) == date(2026, 10, 16)

    def test_month_day_already_passed_rolls_to_next_year(self):
        assert parse_date("March 3rd", WEDNESDAY) == date(2027, 3, 3)

    def test_month_day_upcoming_stays_this_year(self):
        assert parse_date("December 1st", WEDNESDAY) == date(2026, 12, 1)
        assert parse_date("Nov 2", WEDNESDAY) == date(2026, 11, 2)

    def test_day_of_month_form(self):
        assert parse_date("3rd of January", WEDNESDAY) == date(2027, 1, 3)

    def test_slash_date_with_year(self):
        assert parse_date("3/15/2025", WEDNESDAY) == date(2025, 3, 15)

    def test_slash_date_without_year(self):
        assert parse_date("10/20", WEDNESDAY) == date(2026, 10, 20)

    def test_the_nth(self):
        assert parse_date("the 20th", WEDNESDAY) == date(2026, 10, 20)
        assert parse_date("the 5th", WEDNESDAY) == date(2026, 11, 5)

    def test_iso_date_via_fallback(self):
        assert parse_date("2026-11-03", WEDNESDAY) == date(2026, 11, 3)

    def test_punctuation_and_on_prefix(self):
        assert parse_date("on Friday.", WEDNESDAY) == date(2026, 10, 16)

    @pytest.mark.parametrize("text", [None, "", "sometime soon", "February 30th"])
    def test_unrecognized_returns_none(self, text):
        assert parse_date(text, WEDNESDAY) is None


class TestParseTime:
    """Tests for parse_time."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("9am", "09:00:00"),
            ("9 AM", "09:00:00"),
            ("2:30pm", "14:30:00"),
            ("2:30 p.m.", "14:30:00"),
            ("14:30", "14:30:00"),
            ("12pm", "12:00:00"),
            ("12am", "00:00:00"),
            ("09:15:00", "09:15:00"),
        ],
    )
    def test_recognized(self, text, expected):
        assert parse_time(text) == expected

    @pytest.mark.parametrize("text", [None, "", "noonish", "13pm", "25:00", "9:75"])
    def test_unrecognized(self, text):
        assert parse_time(text) is None


class TestFormatting:
    """Tests for spoken formatting helpers."""

    def test_format_time_12h(self):
        assert format_time_12h("14:30:00") == "2:30 PM"
        assert format_time_12h("09:00") == "9:00 AM"
        assert format_time_12h("00:15:00") == "12:15 AM"
        assert format_time_12h("12:00:00") == "12:00 PM"

    def test_format_date_spoken(self):
        assert format_date_spoken(date(2026, 10, 17)) == "Saturday, October 17"

    def test_localize(self):
        dt = localize(date(2026, 10, 15), "09:30:00", "America/Los_Angeles")
        assert dt == datetime(2026, 10, 15, 9, 30, tzinfo=ZoneInfo("America/Los_Angeles"))
        assert dt.utcoffset().total_seconds() == -7 * 3600
