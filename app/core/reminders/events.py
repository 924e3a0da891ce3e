"""
Reminder event kinds.

Which events the scanner handles, their default offsets and the
appointment statuses each one targets.
"""

from typing import Optional

from app.models.database import (
    AppointmentStatus,
    NotificationEvent,
    NotificationSetting,
)


# Events driven by the periodic scan
SCHEDULED_EVENTS: tuple[NotificationEvent, ...] = (
    NotificationEvent.REMINDER_24H,
    NotificationEvent.REMINDER_2H,
    NotificationEvent.FOLLOWUP,
)

DEFAULT_OFFSET_MINUTES: dict[NotificationEvent, int] = {
    NotificationEvent.REMINDER_24H: 24 * 60,
    NotificationEvent.REMINDER_2H: 2 * 60,
    NotificationEvent.FOLLOWUP: 60,
}

FORWARD_STATUSES: tuple[AppointmentStatus, ...] = (
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
)

FOLLOWUP_STATUSES: tuple[AppointmentStatus, ...] = (
    AppointmentStatus.COMPLETED,
)


def is_followup(event: NotificationEvent) -> bool:
    """Follow-ups look backward from the appointment's end."""
    return event == NotificationEvent.FOLLOWUP


def offset_minutes(event: NotificationEvent, timing_minutes: Optional[int] = None) -> int:
    """Resolve the reminder offset for an event.

    Args:
        event: Scheduled event kind
        timing_minutes: Explicit per-salon override

    Returns:
        Offset in minutes

    Raises:
        ValueError: If the event is not scan-driven and no override is given
    """
    if timing_minutes is not None:
        return timing_minutes
    try:
        return DEFAULT_OFFSET_MINUTES[event]
    except KeyError:
        raise ValueError(f"No default offset for event {event.value}") from None


def setting_offset(setting: NotificationSetting) -> int:
    """Offset for a stored setting."""
    return offset_minutes(setting.event, setting.timing_minutes)


def target_statuses(event: NotificationEvent) -> tuple[AppointmentStatus, ...]:
    """Appointment statuses an event applies to."""
    return FOLLOWUP_STATUSES if is_followup(event) else FORWARD_STATUSES
