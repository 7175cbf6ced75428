"""
Health Check Endpoints

Session connectivity for operators and a liveness probe for containers.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from gateway.api.deps import get_session_manager
from gateway.core.session import ConnectionStatus, SessionManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

# Track application start time for uptime calculation
_start_time: Optional[datetime] = None

# Status names on the wire
STATUS_NAMES: dict[ConnectionStatus, str] = {
    ConnectionStatus.CONNECTED: "connected",
    ConnectionStatus.AWAITING_SCAN: "scan_qr",
    ConnectionStatus.DISCONNECTED: "disconnected",
}


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
    """Session connectivity."""
    status: str
    user: Optional[dict] = None


class LiveResponse(BaseModel):
    """Liveness check response."""
    status: str
    timestamp: datetime
    uptime_seconds: Optional[float] = None


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Session status",
    description="connected, scan_qr (waiting for a QR scan) or disconnected.",
)
async def health(manager: SessionManager = Depends(get_session_manager)) -> HealthResponse:
    """
    Report the session status.

    Always returns 200; the body says whether the session is usable.
    """
    snapshot = manager.current_status()
    user = snapshot.identity.model_dump(exclude_none=True) if snapshot.identity else None
    return HealthResponse(status=STATUS_NAMES[snapshot.status], user=user)


@router.get(
    "/live",
    response_model=LiveResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
    description="Returns 200 if the process is alive. Used for container restart decisions.",
)
async def live() -> LiveResponse:
    """Liveness probe. Always returns 200 if the process is running."""
    return LiveResponse(
        status="alive",
        timestamp=datetime.now(timezone.utc),
        uptime_seconds=get_uptime_seconds(),
    )
