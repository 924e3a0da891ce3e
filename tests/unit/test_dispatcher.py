"""Tests for the notification dispatcher."""

from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock

from app.core.reminders.dispatcher import (
    ChannelOutcome,
    DispatchResult,
    NotificationDispatcher,
    OutcomeStatus,
)
from app.infra.notifications import SendResult
from app.models.database import (
    DeliveryStatus,
    NotificationChannel,
    NotificationEvent,
    NotificationTemplate,
)
from tests.factories import (
    create_appointment,
    create_client,
    create_salon,
    create_setting,
    load_appointment,
)

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
SMS = NotificationChannel.SMS
EMAIL = NotificationChannel.EMAIL


@pytest.fixture
def service():
    """Mock NotificationService where every send succeeds."""
    mock = MagicMock()
    mock.send_sms = AsyncMock(return_value=SendResult.sent())
    mock.send_email = AsyncMock(return_value=SendResult.sent())
    return mock


@pytest.fixture
def dispatcher(service):
    return NotificationDispatcher(notification_service=service)


async def seed(db, email=None, sms=True, send_email=True):
    salon = await create_salon(db, name="Studio Anna")
    client = await create_client(db, salon, name="Jane Doe", email=email)
    await create_setting(db, salon, NotificationEvent.REMINDER_24H, sms=sms, email=send_email)
    appointment = await create_appointment(db, salon, client, datetime(2026, 3, 11, 9, 0))
    await db.commit()
    return salon, await load_appointment(db, appointment.id)


class TestChannelOutcome:
    """Test outcome mapping."""

    def test_from_send_result(self):
        assert ChannelOutcome.from_send_result(SMS, SendResult.sent()).status == OutcomeStatus.SENT
        assert ChannelOutcome.from_send_result(SMS, SendResult.not_configured("x")).status == OutcomeStatus.SKIPPED
        assert ChannelOutcome.from_send_result(SMS, SendResult.failed("x")).status == OutcomeStatus.FAILED

    def test_failed_is_not_logged(self):
        result = DispatchResult(
            event=NotificationEvent.REMINDER_24H,
            appointment_id="a1",
            outcomes=[
                ChannelOutcome(SMS, OutcomeStatus.FAILED, "gateway down"),
                ChannelOutcome(EMAIL, OutcomeStatus.SKIPPED, "client has no e-mail"),
            ],
        )

        assert result.log_entries() == [(EMAIL, DeliveryStatus.SKIPPED, "client has no e-mail")]
        assert result.failed == 1
        assert result.skipped == 1
        assert result.to_dict()["outcomes"][0] == {"channel": "SMS", "status": "failed", "detail": "gateway down"}


class TestDispatch:
    """Test dispatching an event for one appointment."""

    @pytest.mark.asyncio
    async def test_sms_uses_default_body_with_salon_prefix(self, db, dispatcher, service):
        _, appointment = await seed(db)

        result = await dispatcher.dispatch(db, NotificationEvent.REMINDER_24H, appointment, [SMS], now=NOW)

        assert [o.status for o in result.outcomes] == [OutcomeStatus.SENT]
        service.send_sms.assert_called_once_with(
            "+48500100200",
            "[Studio Anna] Reminder: your visit at Studio Anna on 2026-03-11 at 09:00.",
        )
        service.send_email.assert_not_called()

    @pytest.mark.asyncio
    async def test_custom_template(self, db, dispatcher, service):
        salon, appointment = await seed(db)
        db.add(NotificationTemplate(
            salon_id=salon.id,
            event=NotificationEvent.REMINDER_24H,
            channel=SMS,
            body="Hi {client_name}, {service} tomorrow at {time}. Cancel: {cancel_link}",
        ))
        await db.commit()

        await dispatcher.dispatch(db, NotificationEvent.REMINDER_24H, appointment, [SMS], now=NOW)

        message = service.send_sms.call_args.args[1]
        assert message.startswith("[Studio Anna] Hi Jane Doe, Haircut tomorrow at 09:00. Cancel: ")
        assert "{cancel_link}" not in message

    @pytest.mark.asyncio
    async def test_blank_template_falls_back_to_default(self, db, dispatcher, service):
        salon, appointment = await seed(db, email="jane@example.com")
        db.add(NotificationTemplate(
            salon_id=salon.id,
            event=NotificationEvent.REMINDER_24H,
            channel=EMAIL,
            subject="  ",
            body="",
        ))
        await db.commit()

        await dispatcher.dispatch(db, NotificationEvent.REMINDER_24H, appointment, [EMAIL], now=NOW)

        to, subject, body = service.send_email.call_args.args
        assert to == "jane@example.com"
        assert subject == "Visit reminder"
        assert body.startswith("Reminder: your visit at Studio Anna")

    @pytest.mark.asyncio
    async def test_email_skipped_without_address(self, db, dispatcher, service):
        _, appointment = await seed(db, email=None)

        result = await dispatcher.dispatch(db, NotificationEvent.REMINDER_24H, appointment, [SMS, EMAIL], now=NOW)

        assert [(o.channel, o.status) for o in result.outcomes] == [
            (SMS, OutcomeStatus.SENT),
            (EMAIL, OutcomeStatus.SKIPPED),
        ]
        service.send_email.assert_not_called()

    @pytest.mark.asyncio
    async def test_disabled_channel_is_skipped(self, db, dispatcher, service):
        _, appointment = await seed(db, sms=False)

        result = await dispatcher.dispatch(db, NotificationEvent.REMINDER_24H, appointment, [SMS], now=NOW)

        assert result.outcomes[0].status == OutcomeStatus.SKIPPED
        assert result.outcomes[0].detail == "channel disabled"
        service.send_sms.assert_not_called()

    @pytest.mark.asyncio
    async def test_transport_failure(self, db, dispatcher, service):
        _, appointment = await seed(db)
        service.send_sms.return_value = SendResult.failed("gateway down")

        result = await dispatcher.dispatch(db, NotificationEvent.REMINDER_24H, appointment, [SMS], now=NOW)

        assert result.outcomes[0].status == OutcomeStatus.FAILED
        assert result.log_entries() == []

    @pytest.mark.asyncio
    async def test_provider_not_configured_is_skipped(self, db, dispatcher, service):
        _, appointment = await seed(db)
        service.send_sms.return_value = SendResult.not_configured("SMS provider not configured")

        result = await dispatcher.dispatch(db, NotificationEvent.REMINDER_24H, appointment, [SMS], now=NOW)

        assert result.log_entries() == [(SMS, DeliveryStatus.SKIPPED, "SMS provider not configured")]

    @pytest.mark.asyncio
    async def test_all_channels_by_default(self, db, dispatcher, service):
        _, appointment = await seed(db, email="jane@example.com")

        result = await dispatcher.dispatch(db, NotificationEvent.REMINDER_24H, appointment, now=NOW)

        assert [o.channel for o in result.outcomes] == [SMS, EMAIL]
        assert result.sent == 2
