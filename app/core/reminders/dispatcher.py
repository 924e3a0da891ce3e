"""
Notification Dispatcher.

Renders an event's messages for one appointment and hands them to the
SMS / e-mail transports, reporting a per-channel outcome.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.reminders.templates import (
    build_context,
    default_body,
    default_subject,
    ensure_cancel_token,
    ensure_notification_settings,
    get_setting,
    load_active_templates,
    pick_template,
    render_template,
)
from app.infra.notifications import (
    NotificationService,
    SendResult,
    get_notification_service,
)
from app.models.database import (
    Appointment,
    DeliveryStatus,
    NotificationChannel,
    NotificationEvent,
)

logger = logging.getLogger(__name__)


class OutcomeStatus(str, Enum):
    """Per-channel dispatch outcome."""
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ChannelOutcome:
    """What happened to one channel of a dispatch."""

    channel: NotificationChannel
    status: OutcomeStatus
    detail: Optional[str] = None

    @classmethod
    def from_send_result(cls, channel: NotificationChannel, result: SendResult) -> "ChannelOutcome":
        if result.ok:
            return cls(channel, OutcomeStatus.SENT)
        if result.skipped:
            return cls(channel, OutcomeStatus.SKIPPED, result.error)
        return cls(channel, OutcomeStatus.FAILED, result.error)

    @property
    def delivery_status(self) -> Optional[DeliveryStatus]:
        """Log status for this outcome; None means it must not be logged."""
        if self.status == OutcomeStatus.SENT:
            return DeliveryStatus.SENT
        if self.status == OutcomeStatus.SKIPPED:
            return DeliveryStatus.SKIPPED
        return None

    def to_dict(self) -> dict:
        result = {"channel": self.channel.value, "status": self.status.value}
        if self.detail:
            result["detail"] = self.detail
        return result


@dataclass
class DispatchResult:
    """Outcomes of one dispatch call."""

    event: NotificationEvent
    appointment_id: str
    outcomes: list[ChannelOutcome] = field(default_factory=list)

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def sent(self) -> int:
        return self.count(OutcomeStatus.SENT)

    @property
    def skipped(self) -> int:
        return self.count(OutcomeStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(OutcomeStatus.FAILED)

    def log_entries(self) -> list[tuple[NotificationChannel, DeliveryStatus, Optional[str]]]:
        """(channel, status, detail) for outcomes that should be logged.

        FAILED channels are left out so a later scan retries them.
        """
        return [
            (o.channel, o.delivery_status, o.detail)
            for o in self.outcomes
            if o.delivery_status is not None
        ]

    def to_dict(self) -> dict:
        return {
            "event": self.event.value,
            "appointment_id": self.appointment_id,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class NotificationDispatcher:
    """
    Sends an event's notifications for an appointment.

    The appointment must have client, staff, salon and services loaded.
    """

    def __init__(self, notification_service: Optional[NotificationService] = None):
        """Initialize dispatcher.

        Args:
            notification_service: Transport wrapper (defaults to singleton)
        """
        self._notification_service = notification_service

    def _get_notification_service(self) -> NotificationService:
        if self._notification_service is None:
            self._notification_service = get_notification_service()
        return self._notification_service

    async def dispatch(
        self,
        db: AsyncSession,
        event: NotificationEvent,
        appointment: Appointment,
        channels: Optional[Sequence[NotificationChannel]] = None,
        now: Optional[datetime] = None,
    ) -> DispatchResult:
        """Send `event` notifications for `appointment`.

        Args:
            db: Database session
            event: Notification event
            appointment: Appointment with relations loaded
            channels: Channels to send; None means every enabled channel
            now: Current instant, used for cancel-token expiry

        Returns:
            DispatchResult with one outcome per requested channel
        """
        requested = list(channels) if channels is not None else list(NotificationChannel)
        result = DispatchResult(event=event, appointment_id=str(appointment.id))

        await ensure_notification_settings(db, appointment.salon_id)
        setting = await get_setting(db, appointment.salon_id, event)
        if setting is None:
            result.outcomes = [
                ChannelOutcome(ch, OutcomeStatus.SKIPPED, "event not configured")
                for ch in requested
            ]
            return result

        templates = await load_active_templates(db, appointment.salon_id, event)
        cancel_token = await ensure_cancel_token(db, appointment.id, now=now)
        context = build_context(appointment, cancel_token.token)
        service = self._get_notification_service()

        for channel in requested:
            if channel == NotificationChannel.SMS:
                outcome = await self._send_sms(service, event, appointment, setting.sms_enabled, templates, context)
            else:
                outcome = await self._send_email(service, event, appointment, setting.email_enabled, templates, context)
            result.outcomes.append(outcome)

        logger.debug(
            f"Dispatched {event.value} for appointment {appointment.id}: "
            f"{[o.to_dict() for o in result.outcomes]}"
        )
        return result

    async def _send_sms(
        self,
        service: NotificationService,
        event: NotificationEvent,
        appointment: Appointment,
        enabled: bool,
        templates: list,
        context: dict[str, str],
    ) -> ChannelOutcome:
        if not enabled:
            return ChannelOutcome(NotificationChannel.SMS, OutcomeStatus.SKIPPED, "channel disabled")

        template = pick_template(templates, NotificationChannel.SMS)
        body = template.body if template and template.body and template.body.strip() else default_body(event)
        message = f"[{context['salon_name']}] {render_template(body, context)}"

        sent = await service.send_sms(appointment.client.phone, message)
        return ChannelOutcome.from_send_result(NotificationChannel.SMS, sent)

    async def _send_email(
        self,
        service: NotificationService,
        event: NotificationEvent,
        appointment: Appointment,
        enabled: bool,
        templates: list,
        context: dict[str, str],
    ) -> ChannelOutcome:
        if not enabled:
            return ChannelOutcome(NotificationChannel.EMAIL, OutcomeStatus.SKIPPED, "channel disabled")
        if not appointment.client.email:
            return ChannelOutcome(NotificationChannel.EMAIL, OutcomeStatus.SKIPPED, "client has no e-mail")

        template = pick_template(templates, NotificationChannel.EMAIL)
        subject = template.subject if template and template.subject and template.subject.strip() else default_subject(event)
        body = template.body if template and template.body and template.body.strip() else default_body(event)

        sent = await service.send_email(
            appointment.client.email,
            subject,
            render_template(body, context),
        )
        return ChannelOutcome.from_send_result(NotificationChannel.EMAIL, sent)


# Singleton
_dispatcher: Optional[NotificationDispatcher] = None


def get_dispatcher() -> NotificationDispatcher:
    """Get singleton NotificationDispatcher."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
    return _dispatcher
