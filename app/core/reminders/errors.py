"""
Error classification for reminder scans.

Transient errors (lost connections, timeouts) are worth retrying within
the same scan; permanent ones are recorded and left for an operator.
"""

import asyncio
from enum import Enum

import httpx
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError


class ErrorKind(str, Enum):
    """Error classification."""
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class ReminderError(Exception):
    """Base error for the reminder subsystem."""
    pass


class TransientReminderError(ReminderError):
    """Raised for failures expected to clear on retry."""
    pass


class PermanentReminderError(ReminderError):
    """Raised for failures that retrying will not fix."""
    pass


_TRANSIENT_TYPES: tuple[type[BaseException], ...] = (
    TransientReminderError,
    OperationalError,
    InterfaceError,
    DisconnectionError,
    PoolTimeoutError,
    httpx.TransportError,
    RedisConnectionError,
    RedisTimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
)


def classify_error(exc: BaseException) -> ErrorKind:
    """Classify an exception raised while scanning.

    Args:
        exc: The exception

    Returns:
        ErrorKind.TRANSIENT or ErrorKind.PERMANENT
    """
    if isinstance(exc, PermanentReminderError):
        return ErrorKind.PERMANENT
    if isinstance(exc, _TRANSIENT_TYPES):
        return ErrorKind.TRANSIENT
    return ErrorKind.PERMANENT


def is_transient(exc: BaseException) -> bool:
    return classify_error(exc) == ErrorKind.TRANSIENT
