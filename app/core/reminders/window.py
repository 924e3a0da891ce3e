"""
Due-window filtering.

An appointment is due for an event when its target instant lies within
±tolerance of `now + offset` (forward reminders) or `now - offset`
(follow-ups). Both ends are inclusive.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from app.core.reminders.events import is_followup
from app.models.database import Appointment, NotificationEvent


DEFAULT_TOLERANCE = timedelta(minutes=5)


@dataclass(frozen=True)
class DueWindow:
    """Closed interval [start, end] of target instants that are due."""

    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end

    @property
    def center(self) -> datetime:
        return self.start + (self.end - self.start) / 2

    def local_dates(self, tz: ZoneInfo, margin_days: int = 1) -> tuple[date, date]:
        """Calendar date range (in `tz`) to query candidates for this window."""
        first = self.start.astimezone(tz).date() - timedelta(days=margin_days)
        last = self.end.astimezone(tz).date() + timedelta(days=margin_days)
        return first, last


def due_window(
    now: datetime,
    event: NotificationEvent,
    offset_minutes: int,
    tolerance: timedelta = DEFAULT_TOLERANCE,
) -> DueWindow:
    """Compute the due window for an event at `now`.

    Args:
        now: Current instant (timezone-aware)
        event: Scheduled event kind
        offset_minutes: Reminder offset
        tolerance: Half-width of the window

    Returns:
        DueWindow
    """
    shift = timedelta(minutes=offset_minutes)
    center = now - shift if is_followup(event) else now + shift
    return DueWindow(start=center - tolerance, end=center + tolerance)


def appointment_start(appointment: Appointment, tz: ZoneInfo) -> datetime:
    """Localized start instant of an appointment."""
    return datetime.combine(appointment.date, appointment.time).replace(tzinfo=tz)


def target_instant(
    appointment: Appointment,
    event: NotificationEvent,
    tz: ZoneInfo,
) -> datetime:
    """Instant the event is anchored to.

    Forward reminders anchor on the start; follow-ups on the end
    (start + duration).
    """
    start = appointment_start(appointment, tz)
    if is_followup(event):
        # Elapsed time, so a visit spanning a DST change ends on the real instant
        return start.astimezone(timezone.utc) + timedelta(minutes=appointment.duration or 0)
    return start


def is_due(
    appointment: Appointment,
    event: NotificationEvent,
    window: DueWindow,
    tz: ZoneInfo,
) -> bool:
    return window.contains(target_instant(appointment, event, tz))


def filter_due(
    appointments: Iterable[Appointment],
    event: NotificationEvent,
    window: DueWindow,
    tz: ZoneInfo,
) -> list[Appointment]:
    """Keep only appointments due in `window`, preserving order."""
    return [a for a in appointments if is_due(a, event, window, tz)]


def resolve_timezone(name: Optional[str], default: str) -> ZoneInfo:
    """ZoneInfo for a salon timezone name, falling back to `default`."""
    try:
        return ZoneInfo(name or default)
    except (KeyError, ValueError):
        return ZoneInfo(default)


def utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)
