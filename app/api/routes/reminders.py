"""
Reminder Operator Endpoints

Scheduler status and an operator-triggered scan.
"""

import hmac
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from app.config import get_settings
from app.core.reminders.scheduler import (
    ReminderScheduler,
    ScanFailedError,
    ScanInProgressError,
    get_reminder_scheduler,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reminders", tags=["Reminders"])

admin_key_header = APIKeyHeader(name="X-Admin-Key", auto_error=False)


class ScanErrorModel(BaseModel):
    """A setting that could not be processed."""
    target: str
    kind: str
    message: str
    attempts: int


class ScanResultModel(BaseModel):
    """Statistics for one scan pass."""
    now: str
    ok: bool
    settings_scanned: int
    settings_skipped: int
    appointments_due: int
    already_notified: int
    dispatches: int
    sent: int
    skipped: int
    failed: int
    retries: int
    errors: list[ScanErrorModel] = Field(default_factory=list)


class SchedulerStatusResponse(BaseModel):
    """Scheduler state."""
    running: bool
    scan_in_progress: bool
    interval_seconds: float
    redis_lock: bool
    scans_started: int
    scans_completed: int
    scans_failed: int
    ticks_skipped: int
    last_started_at: Optional[str] = None
    last_finished_at: Optional[str] = None
    last_duration_seconds: Optional[float] = None
    last_error: Optional[str] = None
    last_result: Optional[ScanResultModel] = None


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: Optional[str] = None


async def require_admin_key(
    request: Request,
    api_key: Optional[str] = Security(admin_key_header),
) -> None:
    """
    FastAPI dependency that checks the X-Admin-Key header.

    Raises:
        HTTPException 503: No admin key configured
        HTTPException 401: No key provided
        HTTPException 403: Wrong key
    """
    expected = get_settings().admin_api_key
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Operator endpoints are disabled (ADMIN_API_KEY not set)",
        )

    client_ip = request.client.host if request.client else "unknown"
    if not api_key:
        logger.warning(f"Admin auth failed: no key provided | IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin key required",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    # Constant-time comparison
    if not hmac.compare_digest(api_key.encode(), expected.encode()):
        logger.warning(f"Admin auth failed: invalid key | IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin key",
        )


@router.get(
    "/status",
    response_model=SchedulerStatusResponse,
    summary="Reminder scheduler status",
    description="Returns scheduler state and the statistics of the last scan.",
)
async def reminder_status(
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
) -> dict[str, Any]:
    return scheduler.status()


@router.post(
    "/run",
    response_model=ScanResultModel,
    status_code=status.HTTP_200_OK,
    summary="Run a reminder scan now",
    responses={
        401: {"model": ErrorResponse, "description": "Admin key missing"},
        403: {"model": ErrorResponse, "description": "Invalid admin key"},
        409: {"model": ErrorResponse, "description": "A scan is already running"},
        500: {"model": ErrorResponse, "description": "Scan aborted"},
        503: {"model": ErrorResponse, "description": "Operator endpoints disabled"},
    },
    dependencies=[Depends(require_admin_key)],
)
async def run_reminders(
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
) -> dict[str, Any]:
    """
    Trigger one scan immediately.

    Uses the same overlap guard as the periodic loop, so a manual run
    never overlaps a scheduled one.
    """
    try:
        result = await scheduler.trigger()
    except ScanInProgressError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        )
    except ScanFailedError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )

    logger.info(f"Manual reminder scan finished: sent={result.sent} failed={result.failed}")
    return result.to_dict()
