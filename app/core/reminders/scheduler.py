"""
Reminder Scheduler.

Owns the periodic task that drives scan passes. A scan never overlaps
another one in the same process (asyncio.Lock), and optionally not in
any other process either (Redis lock).
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from app.config import get_settings
from app.core.reminders.errors import ReminderError, classify_error
from app.core.reminders.scanner import ReminderScanner, ScanResult
from app.core.reminders.window import utcnow
from app.infra.redis import ScanLock, get_scan_lock, scan_lock_ttl

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
LockFactory = Callable[[int], Awaitable[ScanLock]]


class ScanInProgressError(ReminderError):
    """Raised when a manual scan is requested while one is running."""
    pass


class ScanFailedError(ReminderError):
    """Raised when a manual scan was aborted (timeout or unexpected error)."""
    pass


@dataclass
class SchedulerStats:
    """Counters since the scheduler was created."""

    scans_started: int = 0
    scans_completed: int = 0
    scans_failed: int = 0
    ticks_skipped: int = 0
    last_started_at: Optional[datetime] = None
    last_finished_at: Optional[datetime] = None
    last_duration_seconds: Optional[float] = None
    last_error: Optional[str] = None
    last_result: Optional[ScanResult] = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scans_started": self.scans_started,
            "scans_completed": self.scans_completed,
            "scans_failed": self.scans_failed,
            "ticks_skipped": self.ticks_skipped,
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_finished_at": self.last_finished_at.isoformat() if self.last_finished_at else None,
            "last_duration_seconds": self.last_duration_seconds,
            "last_error": self.last_error,
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }


class ReminderScheduler:
    """
    Periodic driver for ReminderScanner.

    Usage:
        scheduler = ReminderScheduler()
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        scanner: Optional[ReminderScanner] = None,
        clock: Clock = utcnow,
        interval_seconds: Optional[float] = None,
        scan_timeout_seconds: Optional[float] = None,
        use_redis_lock: Optional[bool] = None,
        lock_factory: Optional[LockFactory] = None,
    ):
        """Initialize scheduler.

        Args:
            scanner: Scanner to run (created on first use if omitted)
            clock: Returns the current timezone-aware instant
            interval_seconds: Seconds between scan starts
            scan_timeout_seconds: Upper bound for one scan
            use_redis_lock: Also take the cross-process Redis lock
            lock_factory: Builds the Redis lock for a TTL (defaults to get_scan_lock)
        """
        settings = get_settings()
        self._scanner = scanner
        self.clock = clock
        self.interval_seconds = interval_seconds if interval_seconds is not None else settings.reminder_interval_seconds
        self.scan_timeout_seconds = (
            scan_timeout_seconds if scan_timeout_seconds is not None
            else settings.reminder_scan_timeout_seconds
        )
        self.use_redis_lock = use_redis_lock if use_redis_lock is not None else settings.reminder_use_redis_lock
        self._lock_factory = lock_factory or get_scan_lock
        self.lock_ttl_seconds = scan_lock_ttl(self.scan_timeout_seconds) if self.use_redis_lock else None
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()
        self.stats = SchedulerStats()

    def _get_scanner(self) -> ReminderScanner:
        if self._scanner is None:
            self._scanner = ReminderScanner()
        return self._scanner

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def scan_in_progress(self) -> bool:
        return self._lock.locked()

    def start(self) -> None:
        """Start the periodic task (no-op if already running)."""
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._run_loop(), name="reminder-scheduler")
        logger.info(f"Reminder scheduler started (interval={self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the periodic task, letting an in-flight scan finish."""
        if self._task is None:
            return
        self._stopping.set()
        task, self._task = self._task, None
        try:
            await asyncio.wait_for(task, timeout=self.scan_timeout_seconds)
        except asyncio.TimeoutError:
            task.cancel()
            logger.warning("Reminder scheduler did not stop in time; cancelled")
        logger.info("Reminder scheduler stopped")

    async def _run_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while not self._stopping.is_set():
            started = loop.time()
            try:
                await self.run_once()
            except Exception:
                # run_once already records failures; never let the loop die
                logger.exception("Unexpected error in reminder scheduler loop")

            delay = max(0.0, self.interval_seconds - (loop.time() - started))
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> Optional[ScanResult]:
        """Run one scan now unless another one is in progress.

        Returns:
            ScanResult, or None if the scan was skipped or failed
        """
        if self._lock.locked():
            self.stats.ticks_skipped += 1
            logger.warning("Reminder scan still running; skipping this tick")
            return None

        async with self._lock:
            redis_lock: Optional[ScanLock] = None
            if self.use_redis_lock:
                redis_lock = await self._lock_factory(self.lock_ttl_seconds)
                if not await redis_lock.acquire():
                    self.stats.ticks_skipped += 1
                    return None
            try:
                return await self._scan()
            finally:
                if redis_lock is not None:
                    await redis_lock.release()

    async def trigger(self) -> ScanResult:
        """Operator-requested scan.

        Raises:
            ScanInProgressError: If a scan is already running here or elsewhere
            ScanFailedError: If the scan was aborted
        """
        if self._lock.locked():
            raise ScanInProgressError("A reminder scan is already in progress")

        skipped_before = self.stats.ticks_skipped
        result = await self.run_once()
        if result is not None:
            return result
        if self.stats.ticks_skipped > skipped_before:
            raise ScanInProgressError("A reminder scan is already in progress")
        raise ScanFailedError(self.stats.last_error or "Reminder scan failed")

    async def _scan(self) -> Optional[ScanResult]:
        now = self.clock()
        self.stats.scans_started += 1
        self.stats.last_started_at = now
        loop = asyncio.get_running_loop()
        started = loop.time()

        try:
            result = await asyncio.wait_for(
                self._get_scanner().scan(now),
                timeout=self.scan_timeout_seconds,
            )
        except Exception as e:
            self.stats.scans_failed += 1
            self.stats.last_error = f"{classify_error(e).value}: {e!r}"
            logger.error(f"Reminder scan aborted: {e!r}", exc_info=True)
            return None
        finally:
            self.stats.last_duration_seconds = loop.time() - started
            self.stats.last_finished_at = self.clock()

        self.stats.scans_completed += 1
        self.stats.last_result = result
        self.stats.last_error = None
        return result

    def status(self) -> dict[str, Any]:
        """Scheduler state for the status endpoint."""
        return {
            "running": self.running,
            "scan_in_progress": self.scan_in_progress,
            "interval_seconds": self.interval_seconds,
            "redis_lock": self.use_redis_lock,
            **self.stats.to_dict(),
        }


# Singleton
_scheduler: Optional[ReminderScheduler] = None


def get_reminder_scheduler() -> ReminderScheduler:
    """Get singleton ReminderScheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = ReminderScheduler()
    return _scheduler


async def shutdown_scheduler() -> None:
    """Stop and drop the singleton scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None
