"""Tests for elapsed-time formatting."""

from datetime import datetime, timedelta, timezone

from support_alerts.utils.durations import format_duration, format_hours_minutes

NOW = datetime(2026, 10, 14, 15, 0, tzinfo=timezone.utc)


def test_format_duration_days_hours_minutes():
    start = NOW - timedelta(hours=26, minutes=5)
    assert format_duration(start, NOW) == "1 day 2 hours 5 minutes"


def test_format_duration_zero_is_empty():
    assert format_duration(NOW, NOW) == ""


def test_format_duration_omits_zero_components():
    assert format_duration(NOW - timedelta(minutes=45), NOW) == "45 minutes"
    assert format_duration(NOW - timedelta(days=2), NOW) == "2 days"
    assert format_duration(NOW - timedelta(hours=1, minutes=1), NOW) == "1 hour 1 minute"


def test_format_duration_ignores_seconds():
    assert format_duration(NOW - timedelta(seconds=59), NOW) == ""


def test_format_hours_minutes():
    assert format_hours_minutes(0) == "0h 0m"
    assert format_hours_minutes(3 * 3600 + 25 * 60 + 10) == "3h 25m"
    assert format_hours_minutes(50 * 3600) == "50h 0m"
