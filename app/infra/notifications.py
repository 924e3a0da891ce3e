"""
Notification Service

SMS (SMSAPI) and e-mail (SendGrid) delivery over HTTP.

Transports never raise on provider or network errors; they return a
SendResult so callers can decide whether the message counts as delivered.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass
from typing import Optional

import httpx

from app.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    """Outcome of a single provider call."""

    ok: bool
    error: Optional[str] = None
    skipped: bool = False

    @classmethod
    def sent(cls) -> "SendResult":
        return cls(ok=True)

    @classmethod
    def failed(cls, error: str) -> "SendResult":
        return cls(ok=False, error=error)

    @classmethod
    def not_configured(cls, reason: str) -> "SendResult":
        return cls(ok=False, error=reason, skipped=True)


def normalize_sender(name: Optional[str]) -> Optional[str]:
    """Turn a display name into a valid SMS sender field.

    Strips diacritics, keeps ASCII letters, digits and spaces, collapses
    whitespace and cuts to 11 characters.

    Args:
        name: Raw sender name

    Returns:
        Normalized sender or None if nothing usable remains
    """
    if not name:
        return None

    decomposed = unicodedata.normalize("NFD", name)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = re.sub(r"[^a-zA-Z0-9 ]", "", stripped).strip()
    cleaned = re.sub(r"\s+", " ", cleaned)
    sender = cleaned[:11]
    return sender or None


def mask_phone(phone: Optional[str]) -> str:
    """Mask a phone number for log output, keeping the last 3 digits."""
    if not phone:
        return "<none>"
    return f"***{phone[-3:]}"


def mask_email(email: Optional[str]) -> str:
    """Mask an e-mail address for log output."""
    if not email or "@" not in email:
        return "<none>"
    local, _, domain = email.partition("@")
    return f"{local[:1]}***@{domain}"


class SmsApiClient:
    """
    HTTP client for the SMSAPI gateway.

    POST {smsapi_url} (form encoded): to, message, format=json,
    encoding=utf-8 and optional from. A JSON body with an "error" key is a
    failure even on HTTP 200.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        sender: Optional[str] = None,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize client.

        Args:
            api_key: SMSAPI bearer token (defaults to settings)
            sender: Sender name (defaults to settings, normalized)
            url: Endpoint URL (defaults to settings)
            timeout: Request timeout in seconds
        """
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.smsapi_api_key
        self.sender = normalize_sender(sender if sender is not None else settings.smsapi_from)
        self.url = url or settings.smsapi_url
        self.timeout = timeout or settings.notification_timeout_seconds
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, to: str, message: str, sender: Optional[str]) -> SendResult:
        client = await self._get_client()

        data = {
            "to": to,
            "message": message,
            "format": "json",
            "encoding": "utf-8",
        }
        if sender:
            data["from"] = sender

        try:
            response = await client.post(
                self.url,
                data=data,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            return SendResult.failed(f"SMSAPI request failed: {e}")

        text = response.text or ""
        parsed = None
        if text:
            try:
                parsed = response.json()
            except ValueError:
                parsed = None

        if isinstance(parsed, dict) and "error" in parsed:
            return SendResult.failed(parsed.get("message") or "SMSAPI error")
        if not response.is_success:
            return SendResult.failed(text or f"SMSAPI error: {response.status_code}")
        return SendResult.sent()

    async def send(self, to: str, message: str) -> SendResult:
        """Send an SMS.

        If a sender name is configured and the gateway rejects the first
        attempt, retries once without it.

        Args:
            to: Recipient phone number
            message: Message text

        Returns:
            SendResult
        """
        if not self.configured:
            return SendResult.not_configured("SMS provider not configured")

        primary = await self._request(to, message, self.sender)
        if primary.ok:
            return primary

        if self.sender:
            fallback = await self._request(to, message, None)
            if fallback.ok:
                return fallback
            logger.warning(
                f"SMSAPI error for {mask_phone(to)}: "
                f"primary={primary.error!r} fallback={fallback.error!r}"
            )
            return fallback

        logger.warning(f"SMSAPI error for {mask_phone(to)}: {primary.error!r}")
        return primary


class SendGridClient:
    """HTTP client for the SendGrid v3 mail/send endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.sendgrid_api_key
        self.from_email = from_email if from_email is not None else settings.sendgrid_from
        self.from_name = from_name if from_name is not None else settings.sendgrid_from_name
        self.url = url or settings.sendgrid_url
        self.timeout = timeout or settings.notification_timeout_seconds
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.from_email)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def build_payload(self, to: str, subject: str, html: str) -> dict:
        """Build the mail/send request body."""
        sender: dict = {"email": self.from_email}
        if self.from_name:
            sender["name"] = self.from_name
        return {
            "personalizations": [{"to": [{"email": to}]}],
            "from": sender,
            "subject": subject,
            "content": [{"type": "text/html", "value": html}],
        }

    async def send(self, to: str, subject: str, html: str) -> SendResult:
        """Send an HTML e-mail.

        Args:
            to: Recipient address
            subject: Subject line
            html: HTML body

        Returns:
            SendResult
        """
        if not self.configured:
            return SendResult.not_configured("E-mail provider not configured")

        client = await self._get_client()
        try:
            response = await client.post(
                self.url,
                json=self.build_payload(to, subject, html),
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"SendGrid request failed for {mask_email(to)}: {e}")
            return SendResult.failed(f"SendGrid request failed: {e}")

        if not response.is_success:
            logger.warning(
                f"SendGrid error for {mask_email(to)}: "
                f"status={response.status_code} body={response.text[:200]!r}"
            )
            return SendResult.failed(f"SendGrid error: {response.status_code}")

        return SendResult.sent()


class NotificationService:
    """Handles SMS and Email notifications."""

    def __init__(
        self,
        sms_client: Optional[SmsApiClient] = None,
        email_client: Optional[SendGridClient] = None,
    ):
        """Initialize notification service.

        Args:
            sms_client: SMS transport (defaults to SMSAPI from settings)
            email_client: E-mail transport (defaults to SendGrid from settings)
        """
        self.sms_client = sms_client or SmsApiClient()
        self.email_client = email_client or SendGridClient()

    async def send_sms(self, to: str, message: str) -> SendResult:
        """Send SMS notification.

        Args:
            to: Phone number
            message: SMS text content

        Returns:
            SendResult
        """
        result = await self.sms_client.send(to, message)
        if result.ok:
            logger.debug(f"SMS sent to {mask_phone(to)}")
        return result

    async def send_email(self, to: str, subject: str, body: str) -> SendResult:
        """Send Email notification.

        Args:
            to: Email address
            subject: Email subject
            body: Email body (HTML supported)

        Returns:
            SendResult
        """
        result = await self.email_client.send(to, subject, body)
        if result.ok:
            logger.debug(f"E-mail sent to {mask_email(to)}")
        return result

    async def close(self) -> None:
        """Close both transports."""
        await self.sms_client.close()
        await self.email_client.close()


# Singleton
_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """Get singleton NotificationService."""
    global _service
    if _service is None:
        _service = NotificationService()
    return _service


async def close_notification_service() -> None:
    """Close the singleton's HTTP clients, if created."""
    global _service
    if _service is not None:
        await _service.close()
        _service = None
