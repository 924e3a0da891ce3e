"""Tests for reminder event rules."""

import pytest

from app.core.reminders.events import (
    SCHEDULED_EVENTS,
    is_followup,
    offset_minutes,
    setting_offset,
    target_statuses,
)
from app.models.database import AppointmentStatus, NotificationEvent, NotificationSetting


class TestOffsets:
    """Test offset resolution."""

    @pytest.mark.parametrize("event,expected", [
        (NotificationEvent.REMINDER_24H, 1440),
        (NotificationEvent.REMINDER_2H, 120),
        (NotificationEvent.FOLLOWUP, 60),
    ])
    def test_defaults(self, event, expected):
        assert offset_minutes(event) == expected

    def test_override_wins(self):
        assert offset_minutes(NotificationEvent.REMINDER_24H, 720) == 720

    def test_zero_override_is_respected(self):
        """An explicit 0 is a value, not 'unset'."""
        assert offset_minutes(NotificationEvent.REMINDER_2H, 0) == 0

    def test_non_scheduled_event_without_override(self):
        with pytest.raises(ValueError):
            offset_minutes(NotificationEvent.CANCELLATION)

    def test_setting_offset(self):
        setting = NotificationSetting(event=NotificationEvent.FOLLOWUP, timing_minutes=None)

        assert setting_offset(setting) == 60


class TestStatuses:
    """Test which appointment statuses each event targets."""

    def test_forward_reminders(self):
        statuses = target_statuses(NotificationEvent.REMINDER_24H)

        assert AppointmentStatus.SCHEDULED in statuses
        assert AppointmentStatus.CONFIRMED in statuses
        assert AppointmentStatus.COMPLETED not in statuses
        assert AppointmentStatus.CANCELLED not in statuses

    def test_followup(self):
        assert target_statuses(NotificationEvent.FOLLOWUP) == (AppointmentStatus.COMPLETED,)

    def test_scheduled_events(self):
        assert NotificationEvent.BOOKING_CONFIRMATION not in SCHEDULED_EVENTS
        assert NotificationEvent.CANCELLATION not in SCHEDULED_EVENTS
        assert is_followup(NotificationEvent.FOLLOWUP)
        assert not is_followup(NotificationEvent.REMINDER_2H)
