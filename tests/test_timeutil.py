"""Tests for time reference parsing and relative formatting."""

from datetime import datetime, timedelta, timezone

import pytest

from ideatree.timeutil import format_relative_time, parse_time_reference

NOW = datetime(2026, 3, 15, 12, 30, tzinfo=timezone.utc)


class TestParseTimeReference:
    def test_named(self):
        assert parse_time_reference("today", NOW) == datetime(2026, 3, 15, tzinfo=timezone.utc)
        assert parse_time_reference("Yesterday", NOW) == datetime(2026, 3, 14, tzinfo=timezone.utc)
        assert parse_time_reference("now", NOW) == NOW

    def test_relative(self):
        assert parse_time_reference("2 hours ago", NOW) == NOW - timedelta(hours=2)
        assert parse_time_reference("1 day ago", NOW) == NOW - timedelta(days=1)
        assert parse_time_reference("3 weeks ago", NOW) == NOW - timedelta(weeks=3)

    def test_calendar_units(self):
        assert parse_time_reference("1 month ago", NOW) == datetime(2026, 2, 15, 12, 30, tzinfo=timezone.utc)
        assert parse_time_reference("2 years ago", NOW) == datetime(2024, 3, 15, 12, 30, tzinfo=timezone.utc)

    def test_iso_dates_are_utc(self):
        parsed = parse_time_reference("2026-01-15")
        assert parsed == datetime(2026, 1, 15, tzinfo=timezone.utc)

    def test_garbage(self):
        with pytest.raises(ValueError):
            parse_time_reference("not a time at all")


class TestFormatRelativeTime:
    @pytest.mark.parametrize(
        "delta, expected",
        [
            (timedelta(seconds=5), "just now"),
            (timedelta(minutes=1), "1 minute ago"),
            (timedelta(hours=3), "3 hours ago"),
            (timedelta(days=2), "2 days ago"),
            (timedelta(days=14), "2 weeks ago"),
            (timedelta(days=65), "2 months ago"),
            (timedelta(days=800), "2 years ago"),
        ],
    )
    def test_units(self, delta, expected):
        assert format_relative_time(NOW - delta, NOW) == expected

    def test_future(self):
        assert format_relative_time(NOW + timedelta(hours=1), NOW) == "in the future"
