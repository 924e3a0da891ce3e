"""
Reminder Scanner.

One scan pass: load enabled reminder settings, select each salon's
appointments that are due, drop already-logged channels, dispatch the
rest and log what was handled.

Each setting runs in its own database session, and each appointment is
committed as soon as its log rows are written, so an error rolls back
only the appointment in flight and never hides another salon's reminders.
A retried setting never sends again to an appointment it already
dispatched in the same pass; it only re-writes the log rows.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, AsyncContextManager, Awaitable, Callable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import get_settings
from app.core.reminders import dedup
from app.core.reminders.dispatcher import DispatchResult, NotificationDispatcher, get_dispatcher
from app.core.reminders.errors import ErrorKind, classify_error
from app.core.reminders.events import (
    SCHEDULED_EVENTS,
    setting_offset,
    target_statuses,
)
from app.core.reminders.window import DueWindow, due_window, filter_due, resolve_timezone
from app.infra.database import get_db_context
from app.models.database import (
    Appointment,
    AppointmentService,
    NotificationChannel,
    NotificationEvent,
    NotificationSetting,
    Salon,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


@dataclass(frozen=True)
class ScanTarget:
    """Detached snapshot of one enabled setting."""

    salon_id: uuid.UUID
    event: NotificationEvent
    channels: tuple[NotificationChannel, ...]
    offset_minutes: int

    @classmethod
    def from_setting(cls, setting: NotificationSetting) -> "ScanTarget":
        return cls(
            salon_id=setting.salon_id,
            event=setting.event,
            channels=tuple(dedup.requested_channels(setting)),
            offset_minutes=setting_offset(setting),
        )

    @property
    def label(self) -> str:
        return f"{self.event.value}@{self.salon_id}"


@dataclass
class ScanError:
    """A setting (or the settings load) that could not be processed."""

    target: str
    kind: ErrorKind
    message: str
    attempts: int

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "kind": self.kind.value,
            "message": self.message,
            "attempts": self.attempts,
        }


@dataclass
class ScanResult:
    """Statistics for one scan pass."""

    now: datetime
    settings_scanned: int = 0
    settings_skipped: int = 0
    appointments_due: int = 0
    already_notified: int = 0
    dispatches: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    retries: int = 0
    errors: list[ScanError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "now": self.now.isoformat(),
            "ok": self.ok,
            "settings_scanned": self.settings_scanned,
            "settings_skipped": self.settings_skipped,
            "appointments_due": self.appointments_due,
            "already_notified": self.already_notified,
            "dispatches": self.dispatches,
            "sent": self.sent,
            "skipped": self.skipped,
            "failed": self.failed,
            "retries": self.retries,
            "errors": [e.to_dict() for e in self.errors],
        }


class ReminderScanner:
    """
    Runs scan passes.

    The scanner never reads the wall clock: `now` comes from the caller.
    """

    def __init__(
        self,
        dispatcher: Optional[NotificationDispatcher] = None,
        session_factory: Optional[SessionFactory] = None,
        tolerance: Optional[timedelta] = None,
        max_retries: Optional[int] = None,
        retry_backoff_seconds: Optional[float] = None,
        default_timezone: Optional[str] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize scanner.

        Args:
            dispatcher: Notification dispatcher (defaults to singleton)
            session_factory: Async context manager yielding sessions
            tolerance: Half-width of the due window
            max_retries: Retries for transient errors per setting
            retry_backoff_seconds: First retry delay, doubled each attempt
            default_timezone: Timezone for salons without one
            sleep: Awaitable sleep, replaceable in tests
        """
        settings = get_settings()
        self._dispatcher = dispatcher
        self._session_factory = session_factory or get_db_context
        self.tolerance = tolerance if tolerance is not None else timedelta(minutes=settings.reminder_window_minutes)
        self.max_retries = max_retries if max_retries is not None else settings.reminder_max_retries
        self.retry_backoff_seconds = (
            retry_backoff_seconds if retry_backoff_seconds is not None
            else settings.reminder_retry_backoff_seconds
        )
        self.default_timezone = default_timezone or settings.default_timezone
        self._sleep = sleep

    def _get_dispatcher(self) -> NotificationDispatcher:
        if self._dispatcher is None:
            self._dispatcher = get_dispatcher()
        return self._dispatcher

    async def scan(self, now: datetime) -> ScanResult:
        """Run one scan pass.

        Args:
            now: Current instant (timezone-aware)

        Returns:
            ScanResult
        """
        result = ScanResult(now=now)

        targets = await self._with_retry("settings", self._load_targets, result)
        if targets is None:
            return result

        for target in targets:
            if not target.channels:
                result.settings_skipped += 1
                continue
            result.settings_scanned += 1
            dispatched: dict[uuid.UUID, DispatchResult] = {}
            await self._with_retry(
                target.label,
                lambda t=target, d=dispatched: self._process_target(t, now, result, d),
                result,
            )

        log = logger.warning if result.errors else logger.info
        log(
            f"Reminder scan at {now.isoformat()}: settings={result.settings_scanned} "
            f"due={result.appointments_due} sent={result.sent} skipped={result.skipped} "
            f"failed={result.failed} errors={len(result.errors)}"
        )
        return result

    async def _with_retry(
        self,
        label: str,
        operation: Callable[[], Awaitable[T]],
        result: ScanResult,
    ) -> Optional[T]:
        """Run `operation`, retrying transient errors with exponential backoff.

        Permanent errors, and transient ones that exhaust retries, are
        logged and appended to `result.errors`; None is returned.
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                kind = classify_error(e)
                if kind == ErrorKind.TRANSIENT and attempt < self.max_retries:
                    delay = self.retry_backoff_seconds * (2 ** attempt)
                    attempt += 1
                    result.retries += 1
                    logger.warning(
                        f"Transient error scanning {label} (attempt {attempt}): {e!r}; "
                        f"retrying in {delay:.1f}s"
                    )
                    await self._sleep(delay)
                    continue

                logger.error(
                    f"Reminder scan failed for {label} ({kind.value}): {e!r}",
                    exc_info=kind == ErrorKind.PERMANENT,
                )
                result.errors.append(ScanError(
                    target=label,
                    kind=kind,
                    message=str(e) or type(e).__name__,
                    attempts=attempt + 1,
                ))
                return None

    async def _load_targets(self) -> list[ScanTarget]:
        async with self._session_factory() as db:
            rows = await db.execute(
                select(NotificationSetting)
                .where(NotificationSetting.event.in_(SCHEDULED_EVENTS))
                .order_by(NotificationSetting.salon_id, NotificationSetting.event)
            )
            return [ScanTarget.from_setting(s) for s in rows.scalars().all()]

    async def _load_candidates(
        self,
        db: AsyncSession,
        target: ScanTarget,
        window: DueWindow,
        tz,
    ) -> list[Appointment]:
        first, last = window.local_dates(tz)
        rows = await db.execute(
            select(Appointment)
            .where(
                Appointment.salon_id == target.salon_id,
                Appointment.status.in_(target_statuses(target.event)),
                Appointment.date >= first,
                Appointment.date <= last,
            )
            .options(
                selectinload(Appointment.client),
                selectinload(Appointment.staff),
                selectinload(Appointment.salon),
                selectinload(Appointment.appointment_services).selectinload(AppointmentService.service),
            )
            .order_by(Appointment.date, Appointment.time)
        )
        return list(rows.scalars().all())

    async def _process_target(
        self,
        target: ScanTarget,
        now: datetime,
        result: ScanResult,
        dispatched: dict[uuid.UUID, DispatchResult],
    ) -> None:
        """Dispatch and log every due appointment for one setting.

        `dispatched` outlives a single attempt: when a transient error
        hits after messages went out (while logging or committing), the
        retry writes the stored outcomes again instead of sending twice.
        """
        async with self._session_factory() as db:
            salon = await db.get(Salon, target.salon_id)
            if salon is None:
                return
            tz = resolve_timezone(salon.timezone, self.default_timezone)

            window = due_window(now, target.event, target.offset_minutes, self.tolerance)
            candidates = await self._load_candidates(db, target, window, tz)
            due = filter_due(candidates, target.event, window, tz)
            if not dispatched:
                result.appointments_due += len(due)

            for appointment in due:
                dispatch = dispatched.get(appointment.id)
                if dispatch is None:
                    pending = await dedup.pending_channels(db, appointment.id, target.event, target.channels)
                    if not pending:
                        result.already_notified += 1
                        continue

                    dispatch = await self._get_dispatcher().dispatch(
                        db, target.event, appointment, pending, now=now,
                    )
                    dispatched[appointment.id] = dispatch

                    result.dispatches += 1
                    result.sent += dispatch.sent
                    result.skipped += dispatch.skipped
                    result.failed += dispatch.failed
                    if dispatch.failed:
                        logger.warning(
                            f"{dispatch.failed} channel(s) failed for {target.event.value} "
                            f"appointment {appointment.id}; will retry on a later scan"
                        )
                else:
                    logger.info(
                        f"Re-logging {target.event.value} outcomes for appointment "
                        f"{appointment.id} without sending again"
                    )

                await dedup.record(db, appointment.id, target.event, dispatch.log_entries())
                await db.commit()
