"""
Reminders Module

Periodic scan that sends appointment reminders and follow-ups exactly once
per (appointment, event, channel).

Usage:
    from app.core.reminders import get_reminder_scheduler

    scheduler = get_reminder_scheduler()
    scheduler.start()

    # Operator-triggered pass
    result = await scheduler.trigger()
    print(result.sent, result.failed)
"""

# Due windows
from app.core.reminders.window import (
    DueWindow,
    due_window,
    filter_due,
    target_instant,
)

# Dedup guard
from app.core.reminders.dedup import (
    pending_channels,
    record,
    requested_channels,
)

# Dispatcher
from app.core.reminders.dispatcher import (
    ChannelOutcome,
    DispatchResult,
    NotificationDispatcher,
    OutcomeStatus,
    get_dispatcher,
)

# Scanner
from app.core.reminders.scanner import (
    ReminderScanner,
    ScanResult,
    ScanTarget,
)

# Scheduler
from app.core.reminders.scheduler import (
    ReminderScheduler,
    ScanInProgressError,
    get_reminder_scheduler,
    shutdown_scheduler,
)

__all__ = [
    # Due windows
    "DueWindow",
    "due_window",
    "filter_due",
    "target_instant",
    # Dedup guard
    "pending_channels",
    "record",
    "requested_channels",
    # Dispatcher
    "ChannelOutcome",
    "DispatchResult",
    "NotificationDispatcher",
    "OutcomeStatus",
    "get_dispatcher",
    # Scanner
    "ReminderScanner",
    "ScanResult",
    "ScanTarget",
    # Scheduler
    "ReminderScheduler",
    "ScanInProgressError",
    "get_reminder_scheduler",
    "shutdown_scheduler",
]
