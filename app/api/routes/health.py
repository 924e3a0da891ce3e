"""
Health Check Endpoints

Liveness and readiness probes plus a development-only detailed view.

Readiness requires the database. Redis only matters when the scan lock is
enabled; otherwise an unreachable Redis is reported but does not fail the
probe.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.config import settings
from app.core.reminders.scheduler import get_reminder_scheduler
from app.infra.database import check_db_health
from app.infra.redis import check_redis_health

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

VERSION = "1.0.0"

# Track application start time for uptime calculation
_start_time: Optional[datetime] = None


def set_start_time() -> None:
    """Set application start time. Called once on startup."""
    global _start_time
    _start_time = datetime.now(timezone.utc)


def get_uptime_seconds() -> Optional[float]:
    """Get application uptime in seconds."""
    if _start_time is None:
        return None
    return (datetime.now(timezone.utc) - _start_time).total_seconds()


class HealthResponse(BaseModel):
    """Basic health check response."""
    status: str
    timestamp: datetime
    version: str
    environment: str


class ReadyResponse(BaseModel):
    """Readiness check response with dependency status."""
    status: str
    timestamp: datetime
    checks: dict[str, str]


class LiveResponse(BaseModel):
    """Liveness check response."""
    status: str
    timestamp: datetime
    uptime_seconds: Optional[float] = None


class DetailedHealthResponse(BaseModel):
    """Detailed health check with reminder configuration."""
    status: str
    timestamp: datetime
    version: str
    environment: str
    uptime_seconds: Optional[float]
    checks: dict[str, str]
    config: dict[str, str]


async def _run_checks() -> tuple[dict[str, str], bool]:
    """Probe dependencies.

    Returns:
        (checks, ready) where checks maps dependency name to ok/failed/error
    """
    checks: dict[str, str] = {}
    ready = True

    try:
        db_ok = await check_db_health()
        checks["database"] = "ok" if db_ok else "failed"
        if not db_ok:
            ready = False
            logger.warning("Readiness check: Database unhealthy")
    except Exception as e:
        checks["database"] = "error"
        ready = False
        logger.error(f"Readiness check: Database error - {e}")

    try:
        redis_ok = await check_redis_health()
        checks["redis"] = "ok" if redis_ok else "failed"
    except Exception as e:
        redis_ok = False
        checks["redis"] = "error"
        logger.error(f"Readiness check: Redis error - {e}")

    if not redis_ok and settings.reminder_use_redis_lock:
        ready = False
        logger.warning("Readiness check: Redis unavailable while scan lock is enabled")

    scheduler = get_reminder_scheduler()
    if settings.reminders_enabled:
        checks["scheduler"] = "ok" if scheduler.running else "stopped"
    else:
        checks["scheduler"] = "disabled"

    return checks, ready


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns 200 if the application is running. Does not check dependencies.",
)
async def health() -> HealthResponse:
    """
    Basic health check.

    Always returns 200 if the application is running.
    Use /health/ready for dependency checks.
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=VERSION,
        environment=settings.app_env,
    )


@router.get(
    "/ready",
    response_model=ReadyResponse,
    summary="Readiness probe",
    description="Checks database (and Redis when the scan lock is on). Returns 503 if not ready.",
    responses={
        200: {"description": "All required dependencies are ready"},
        503: {"description": "A required dependency is unavailable"},
    },
)
async def ready() -> ReadyResponse:
    """
    Readiness probe for load balancers and Kubernetes.

    Returns 503 if a required check fails.
    """
    checks, all_ok = await _run_checks()

    response = ReadyResponse(
        status="ready" if all_ok else "not_ready",
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )

    if not all_ok:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(mode="json"),
        )

    return response


@router.get(
    "/live",
    response_model=LiveResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
    description="Returns 200 if the process is alive.",
)
async def live() -> LiveResponse:
    """Liveness probe. Always returns 200 if the process is running."""
    return LiveResponse(
        status="alive",
        timestamp=datetime.now(timezone.utc),
        uptime_seconds=get_uptime_seconds(),
    )


@router.get(
    "/detailed",
    response_model=DetailedHealthResponse,
    summary="Detailed health check",
    description="Returns dependency checks and reminder configuration. Only available in development.",
    include_in_schema=settings.is_development,
)
async def detailed() -> DetailedHealthResponse:
    """
    Detailed health check.

    Only available in development mode for debugging.
    """
    if not settings.is_development:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Not found",
        )

    checks, all_ok = await _run_checks()

    # Safe config info (no secrets)
    config = {
        "app_name": settings.app_name,
        "environment": settings.app_env,
        "debug": str(settings.debug),
        "reminders_enabled": str(settings.reminders_enabled),
        "reminder_interval_seconds": str(settings.reminder_interval_seconds),
        "reminder_window_minutes": str(settings.reminder_window_minutes),
        "sms_configured": str(settings.sms_configured),
        "email_configured": str(settings.email_configured),
    }

    return DetailedHealthResponse(
        status="healthy" if all_ok else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=VERSION,
        environment=settings.app_env,
        uptime_seconds=get_uptime_seconds(),
        checks=checks,
        config=config,
    )
