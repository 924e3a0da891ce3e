"""
Message templates, cancel-link tokens and default notification settings.
"""

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.reminders.window import utcnow
from app.models.database import (
    Appointment,
    AppointmentToken,
    NotificationChannel,
    NotificationEvent,
    NotificationSetting,
    NotificationTemplate,
    TokenType,
)

logger = logging.getLogger(__name__)

CANCEL_TOKEN_TTL = timedelta(days=7)


@dataclass(frozen=True)
class DefaultSetting:
    event: NotificationEvent
    sms_enabled: bool
    email_enabled: bool
    timing_minutes: Optional[int] = None


DEFAULT_SETTINGS: tuple[DefaultSetting, ...] = (
    DefaultSetting(NotificationEvent.BOOKING_CONFIRMATION, True, True),
    DefaultSetting(NotificationEvent.REMINDER_24H, True, False, 24 * 60),
    DefaultSetting(NotificationEvent.REMINDER_2H, True, False, 2 * 60),
    DefaultSetting(NotificationEvent.CANCELLATION, True, True),
    DefaultSetting(NotificationEvent.FOLLOWUP, False, True, 60),
)

DEFAULT_BODIES: dict[NotificationEvent, str] = {
    NotificationEvent.BOOKING_CONFIRMATION: "Your visit at {salon_name} on {date} at {time} is confirmed.",
    NotificationEvent.REMINDER_24H: "Reminder: your visit at {salon_name} on {date} at {time}.",
    NotificationEvent.REMINDER_2H: "Reminder: your visit at {salon_name} on {date} at {time}.",
    NotificationEvent.CANCELLATION: "Your visit at {salon_name} on {date} at {time} has been cancelled.",
    NotificationEvent.FOLLOWUP: "Thank you for your visit on {date} {time}. We hope to see you again!",
}

DEFAULT_SUBJECTS: dict[NotificationEvent, str] = {
    NotificationEvent.BOOKING_CONFIRMATION: "Visit confirmation",
    NotificationEvent.REMINDER_24H: "Visit reminder",
    NotificationEvent.REMINDER_2H: "Visit reminder",
    NotificationEvent.CANCELLATION: "Visit cancelled",
    NotificationEvent.FOLLOWUP: "Thank you for your visit",
}

FALLBACK_BODY = "Visit: {date} {time}, {service}."
FALLBACK_SUBJECT = "Message from your salon"


def render_template(template: str, context: dict[str, str]) -> str:
    """Replace every `{key}` placeholder present in `context`.

    Unknown placeholders are left untouched.
    """
    rendered = template
    for key, value in context.items():
        rendered = rendered.replace(f"{{{key}}}", value)
    return rendered


def default_body(event: NotificationEvent) -> str:
    return DEFAULT_BODIES.get(event, FALLBACK_BODY)


def default_subject(event: NotificationEvent) -> str:
    return DEFAULT_SUBJECTS.get(event, FALLBACK_SUBJECT)


def build_context(appointment: Appointment, cancel_token: str) -> dict[str, str]:
    """Placeholder values for an appointment's messages.

    Requires client, staff, salon and services to be loaded.
    """
    settings = get_settings()
    salon_name = appointment.salon.name if appointment.salon and appointment.salon.name else "Salon"
    staff_name = appointment.staff.name if appointment.staff and appointment.staff.name else "Any"
    return {
        "client_name": appointment.client.name,
        "date": appointment.date.isoformat(),
        "time": appointment.time.strftime("%H:%M"),
        "service": ", ".join(appointment.service_names),
        "staff": staff_name,
        "salon_name": salon_name,
        "cancel_link": f"{settings.cancel_link_base_url.rstrip('/')}/{cancel_token}",
    }


def pick_template(
    templates: list[NotificationTemplate],
    channel: NotificationChannel,
) -> Optional[NotificationTemplate]:
    """First template for a channel, if any."""
    for template in templates:
        if template.channel == channel:
            return template
    return None


async def load_active_templates(
    db: AsyncSession,
    salon_id: uuid.UUID,
    event: NotificationEvent,
) -> list[NotificationTemplate]:
    result = await db.execute(
        select(NotificationTemplate).where(
            NotificationTemplate.salon_id == salon_id,
            NotificationTemplate.event == event,
            NotificationTemplate.active.is_(True),
        )
    )
    return list(result.scalars().all())


async def ensure_cancel_token(
    db: AsyncSession,
    appointment_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> AppointmentToken:
    """Return a usable CANCEL token for an appointment, creating one if needed.

    An unused, unexpired token is reused (newest first). New tokens are 48
    hex characters and expire after 7 days.

    Args:
        db: Database session
        appointment_id: Appointment ID
        now: Current instant (defaults to UTC now)

    Returns:
        AppointmentToken
    """
    # Token timestamps are stored as naive UTC
    current = (now or utcnow()).astimezone(timezone.utc).replace(tzinfo=None)

    result = await db.execute(
        select(AppointmentToken)
        .where(
            AppointmentToken.appointment_id == appointment_id,
            AppointmentToken.type == TokenType.CANCEL,
            AppointmentToken.used_at.is_(None),
            AppointmentToken.expires_at > current,
        )
        .order_by(AppointmentToken.created_at.desc())
        .limit(1)
    )
    existing = result.scalar_one_or_none()
    if existing is not None:
        return existing

    token = AppointmentToken(
        appointment_id=appointment_id,
        token=secrets.token_hex(24),
        type=TokenType.CANCEL,
        expires_at=current + CANCEL_TOKEN_TTL,
    )
    db.add(token)
    await db.flush()
    return token


async def ensure_notification_settings(db: AsyncSession, salon_id: uuid.UUID) -> int:
    """Insert default settings for events the salon has none for.

    Returns:
        Number of settings created
    """
    result = await db.execute(
        select(NotificationSetting.event).where(NotificationSetting.salon_id == salon_id)
    )
    existing = set(result.scalars().all())

    missing = [d for d in DEFAULT_SETTINGS if d.event not in existing]
    for default in missing:
        db.add(NotificationSetting(
            salon_id=salon_id,
            event=default.event,
            sms_enabled=default.sms_enabled,
            email_enabled=default.email_enabled,
            timing_minutes=default.timing_minutes,
        ))

    if missing:
        await db.flush()
        logger.info(f"Created {len(missing)} default notification settings for salon {salon_id}")
    return len(missing)


async def get_setting(
    db: AsyncSession,
    salon_id: uuid.UUID,
    event: NotificationEvent,
) -> Optional[NotificationSetting]:
    result = await db.execute(
        select(NotificationSetting).where(
            NotificationSetting.salon_id == salon_id,
            NotificationSetting.event == event,
        )
    )
    return result.scalar_one_or_none()
