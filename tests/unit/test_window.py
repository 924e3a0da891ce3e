"""Tests for due-window filtering."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from app.core.reminders.window import (
    DueWindow,
    due_window,
    filter_due,
    is_due,
    resolve_timezone,
    target_instant,
)
from app.models.database import Appointment, NotificationEvent

UTC = ZoneInfo("UTC")
NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def make_appointment(starts_at: datetime, duration: int = 60) -> Appointment:
    """Transient appointment; `starts_at` is naive local time."""
    return Appointment(date=starts_at.date(), time=starts_at.time(), duration=duration)


class TestDueWindow:
    """Test window construction."""

    def test_forward_window_centered_after_now(self):
        """Reminders look ahead by the offset."""
        window = due_window(NOW, NotificationEvent.REMINDER_24H, 1440)

        assert window.center == NOW + timedelta(days=1)
        assert window.start == NOW + timedelta(days=1, minutes=-5)
        assert window.end == NOW + timedelta(days=1, minutes=5)

    def test_followup_window_centered_before_now(self):
        """Follow-ups look back by the offset."""
        window = due_window(NOW, NotificationEvent.FOLLOWUP, 60)

        assert window.center == NOW - timedelta(hours=1)

    def test_custom_tolerance(self):
        window = due_window(NOW, NotificationEvent.REMINDER_2H, 120, tolerance=timedelta(minutes=1))

        assert window.end - window.start == timedelta(minutes=2)

    def test_contains_is_inclusive(self):
        window = DueWindow(start=NOW, end=NOW + timedelta(minutes=10))

        assert window.contains(NOW)
        assert window.contains(NOW + timedelta(minutes=10))
        assert not window.contains(NOW - timedelta(microseconds=1))

    def test_local_dates_cover_margin(self):
        """Candidate date range spans one day either side."""
        window = due_window(NOW, NotificationEvent.REMINDER_24H, 1440)

        first, last = window.local_dates(UTC)

        assert first == date(2026, 3, 10)
        assert last == date(2026, 3, 12)


class TestBoundaries:
    """Test ±5:00 inclusion and ±5:01 exclusion."""

    @pytest.mark.parametrize("shift_seconds,expected", [
        (0, True),
        (300, True),
        (-300, True),
        (301, False),
        (-301, False),
    ])
    def test_forward_reminder_boundary(self, shift_seconds, expected):
        """Appointment 24h ahead, shifted by a few seconds."""
        starts_at = datetime(2026, 3, 11, 9, 0) + timedelta(seconds=shift_seconds)
        appointment = make_appointment(starts_at)
        window = due_window(NOW, NotificationEvent.REMINDER_24H, 1440)

        assert is_due(appointment, NotificationEvent.REMINDER_24H, window, UTC) is expected

    @pytest.mark.parametrize("shift_seconds,expected", [
        (0, True),
        (300, True),
        (-300, True),
        (301, False),
        (-301, False),
    ])
    def test_followup_boundary(self, shift_seconds, expected):
        """45-minute visit ending 60 minutes before now, shifted by a few seconds."""
        starts_at = datetime(2026, 3, 10, 7, 15) + timedelta(seconds=shift_seconds)
        appointment = make_appointment(starts_at, duration=45)
        window = due_window(NOW, NotificationEvent.FOLLOWUP, 60)

        assert is_due(appointment, NotificationEvent.FOLLOWUP, window, UTC) is expected

    def test_reminder_2h_at_offset(self):
        appointment = make_appointment(datetime(2026, 3, 10, 11, 0))
        window = due_window(NOW, NotificationEvent.REMINDER_2H, 120)

        assert is_due(appointment, NotificationEvent.REMINDER_2H, window, UTC)


class TestFollowup:
    """Test follow-up anchoring on the appointment end."""

    def test_ended_exactly_offset_ago_is_due(self):
        """45-minute visit that ended 60 minutes ago."""
        appointment = make_appointment(datetime(2026, 3, 10, 7, 15), duration=45)
        window = due_window(NOW, NotificationEvent.FOLLOWUP, 60)

        assert target_instant(appointment, NotificationEvent.FOLLOWUP, UTC) == NOW - timedelta(hours=1)
        assert is_due(appointment, NotificationEvent.FOLLOWUP, window, UTC)

    def test_ended_seventy_minutes_ago_is_not_due(self):
        appointment = make_appointment(datetime(2026, 3, 10, 7, 5), duration=45)
        window = due_window(NOW, NotificationEvent.FOLLOWUP, 60)

        assert not is_due(appointment, NotificationEvent.FOLLOWUP, window, UTC)

    def test_zero_duration_uses_start(self):
        appointment = make_appointment(datetime(2026, 3, 10, 8, 0), duration=0)

        assert target_instant(appointment, NotificationEvent.FOLLOWUP, UTC) == NOW - timedelta(hours=1)

    def test_forward_reminder_ignores_duration(self):
        appointment = make_appointment(datetime(2026, 3, 11, 9, 0), duration=90)

        assert target_instant(appointment, NotificationEvent.REMINDER_24H, UTC) == NOW + timedelta(days=1)


class TestTimezones:
    """Test wall-clock interpretation in the salon's timezone."""

    def test_local_time_is_converted(self):
        """10:00 in Warsaw (CET) is 09:00 UTC."""
        warsaw = ZoneInfo("Europe/Warsaw")
        appointment = make_appointment(datetime(2026, 3, 11, 10, 0))
        window = due_window(NOW, NotificationEvent.REMINDER_24H, 1440)

        assert is_due(appointment, NotificationEvent.REMINDER_24H, window, warsaw)
        assert not is_due(appointment, NotificationEvent.REMINDER_24H, window, UTC)

    def test_followup_end_across_dst_change(self):
        """02:30 CEST on the autumn change night plus 60 minutes is 01:30 UTC."""
        warsaw = ZoneInfo("Europe/Warsaw")
        appointment = make_appointment(datetime(2026, 10, 25, 2, 30), duration=60)

        end = target_instant(appointment, NotificationEvent.FOLLOWUP, warsaw)

        assert end == datetime(2026, 10, 25, 1, 30, tzinfo=timezone.utc)

    def test_followup_across_dst_change_is_due_on_time(self):
        warsaw = ZoneInfo("Europe/Warsaw")
        appointment = make_appointment(datetime(2026, 10, 25, 2, 30), duration=60)
        now = datetime(2026, 10, 25, 2, 30, tzinfo=timezone.utc)
        window = due_window(now, NotificationEvent.FOLLOWUP, 60)

        assert is_due(appointment, NotificationEvent.FOLLOWUP, window, warsaw)

    def test_resolve_timezone_falls_back(self):
        assert resolve_timezone(None, "Europe/Warsaw") == ZoneInfo("Europe/Warsaw")
        assert resolve_timezone("Not/AZone", "UTC") == ZoneInfo("UTC")
        assert resolve_timezone("America/New_York", "UTC") == ZoneInfo("America/New_York")


class TestFilterDue:
    """Test filtering a candidate list."""

    def test_keeps_order_and_drops_out_of_window(self):
        due_a = make_appointment(datetime(2026, 3, 11, 8, 57))
        late = make_appointment(datetime(2026, 3, 11, 9, 30))
        due_b = make_appointment(datetime(2026, 3, 11, 9, 4))
        window = due_window(NOW, NotificationEvent.REMINDER_24H, 1440)

        result = filter_due([due_a, late, due_b], NotificationEvent.REMINDER_24H, window, UTC)

        assert result == [due_a, due_b]

    def test_empty(self):
        window = due_window(NOW, NotificationEvent.REMINDER_24H, 1440)

        assert filter_due([], NotificationEvent.REMINDER_24H, window, UTC) == []
