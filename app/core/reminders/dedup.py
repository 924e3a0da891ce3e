"""
Dedup guard for scheduled notifications.

Before sending, drops channels that already have a log row for the
(appointment, event) pair. After sending, records the handled channels
with an insert that skips conflicts, so racing scans cannot create a
second row for the same (appointment, event, channel).
"""

import logging
import uuid
from typing import Iterable, Sequence

from sqlalchemy import insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.database import (
    DeliveryStatus,
    NotificationChannel,
    NotificationEvent,
    NotificationLog,
    NotificationSetting,
)

logger = logging.getLogger(__name__)

_LOG_KEY = ("appointment_id", "event", "channel")


def requested_channels(setting: NotificationSetting) -> list[NotificationChannel]:
    """Channels a setting asks for, SMS first."""
    channels: list[NotificationChannel] = []
    if setting.sms_enabled:
        channels.append(NotificationChannel.SMS)
    if setting.email_enabled:
        channels.append(NotificationChannel.EMAIL)
    return channels


async def logged_channels(
    db: AsyncSession,
    appointment_id: uuid.UUID,
    event: NotificationEvent,
    channels: Sequence[NotificationChannel],
) -> set[NotificationChannel]:
    """Channels among `channels` that already have a log row."""
    if not channels:
        return set()

    result = await db.execute(
        select(NotificationLog.channel).where(
            NotificationLog.appointment_id == appointment_id,
            NotificationLog.event == event,
            NotificationLog.channel.in_(list(channels)),
        )
    )
    return set(result.scalars().all())


async def pending_channels(
    db: AsyncSession,
    appointment_id: uuid.UUID,
    event: NotificationEvent,
    requested: Sequence[NotificationChannel],
) -> list[NotificationChannel]:
    """Requested channels minus already-logged ones, order preserved.

    Args:
        db: Database session
        appointment_id: Appointment to check
        event: Notification event
        requested: Channels the setting asks for

    Returns:
        Channels still to send (empty means nothing to do)
    """
    already = await logged_channels(db, appointment_id, event, requested)
    return [channel for channel in requested if channel not in already]


def _conflict_free_insert(db: AsyncSession):
    """INSERT ... ON CONFLICT DO NOTHING for the session's dialect."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(NotificationLog).on_conflict_do_nothing(index_elements=list(_LOG_KEY))
    if dialect == "sqlite":
        return sqlite_insert(NotificationLog).on_conflict_do_nothing(index_elements=list(_LOG_KEY))
    return None


async def record(
    db: AsyncSession,
    appointment_id: uuid.UUID,
    event: NotificationEvent,
    entries: Iterable[tuple[NotificationChannel, DeliveryStatus, str | None]],
) -> int:
    """Append log rows for handled channels.

    Args:
        db: Database session
        appointment_id: Appointment the notification was for
        event: Notification event
        entries: (channel, status, detail) per handled channel

    Returns:
        Number of rows submitted (conflicting rows are silently skipped)
    """
    rows = [
        {
            "id": uuid.uuid4(),
            "appointment_id": appointment_id,
            "event": event,
            "channel": channel,
            "status": status,
            "detail": detail[:255] if detail else None,
        }
        for channel, status, detail in entries
    ]
    if not rows:
        return 0

    stmt = _conflict_free_insert(db)
    if stmt is not None:
        await db.execute(stmt, rows)
        return len(rows)

    # Other dialects: skip rows that already exist, then plain insert
    already = await logged_channels(db, appointment_id, event, [r["channel"] for r in rows])
    fresh = [r for r in rows if r["channel"] not in already]
    if fresh:
        await db.execute(insert(NotificationLog), fresh)
    return len(fresh)
