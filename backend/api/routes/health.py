"""Health check endpoints.

Provides:
- Basic liveness probe (/health/)
- Database connectivity check (/health/health)
- Service status with the enrollment backlog (/health/status)
"""

import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.config import get_settings
from app.dependencies import get_db
from core.constants import EnrollmentStatus
from core.utils import utc_now_naive
from db.models.enrollment import WorkflowEnrollment
from messaging.registry import get_channel_registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_start_time = time.monotonic()
_start_datetime = datetime.now(timezone.utc).isoformat()


@router.get("/", response_model=dict[str, Any])
async def root() -> dict[str, Any]:
    """
    Get API root information and version.
    Used as a simple liveness probe.
    """
    settings = get_settings()
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "ok",
    }


@router.get("/health", response_model=dict[str, Any])
async def health_check() -> dict[str, Any]:
    """
    Health check with dependency verification.
    Returns 503 if the database is unreachable.
    """
    from db import database

    checks: dict[str, str] = {}
    try:
        async with database.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        checks["database"] = "unavailable"

    if checks["database"] == "unavailable":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "checks": checks},
        )

    return {"status": "healthy", **checks}


@router.get("/status", response_model=dict[str, Any])
async def system_status(db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    """
    Service status including uptime, configured channels and the
    enrollment backlog. A growing ``due`` count means passes are not
    running or cannot keep up.
    """
    settings = get_settings()
    uptime_seconds = time.monotonic() - _start_time
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "started_at": _start_datetime,
        "uptime_seconds": round(uptime_seconds, 1),
        "channels": get_channel_registry().list_channels(),
        "enrollments": await _enrollment_backlog(db),
    }


async def _enrollment_backlog(db: AsyncSession) -> dict[str, int]:
    rows = await db.execute(
        select(WorkflowEnrollment.status, func.count()).group_by(WorkflowEnrollment.status)
    )
    backlog = {s.value: 0 for s in EnrollmentStatus}
    backlog.update({row[0]: row[1] for row in rows.all()})

    due = await db.execute(
        select(func.count()).select_from(WorkflowEnrollment).where(
            WorkflowEnrollment.status == EnrollmentStatus.ACTIVE.value,
            WorkflowEnrollment.next_send_at <= utc_now_naive(),
        )
    )
    backlog["due"] = due.scalar() or 0
    return backlog
