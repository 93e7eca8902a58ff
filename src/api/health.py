"""Health check endpoints for monitoring and orchestration."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from src.config import settings
from src.health.monitor import HealthMonitor
from src.health.schemas import HealthState

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str
    timestamp: datetime
    version: str
    environment: str


class LivenessResponse(BaseModel):
    """Response model for liveness probe."""

    status: str


class ReadinessResponse(BaseModel):
    """Response model for readiness probe."""

    status: str
    checks: dict[str, str]


def get_health_monitor(request: Request) -> HealthMonitor:
    """Get HealthMonitor from app state."""
    if not hasattr(request.app.state, "health_monitor"):
        raise HTTPException(status_code=500, detail="HealthMonitor not initialized")
    return request.app.state.health_monitor


@router.get("/", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=settings.app_version,
        environment=settings.app_env,
    )


@router.get("/live", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    """Liveness probe - app is running."""
    return LivenessResponse(status="alive")


@router.get("/ready", response_model=ReadinessResponse)
async def readiness(request: Request) -> ReadinessResponse:
    """Readiness probe - app can serve traffic.

    Checks:
    - API is responding
    - Backend connection is healthy
    """
    checks: dict[str, str] = {"api": "ok"}

    monitor = getattr(request.app.state, "health_monitor", None)
    if monitor:
        state = monitor.get_state()
        checks["connection"] = "ok" if state.is_healthy else state.status.value
    else:
        checks["connection"] = "not_configured"

    status = "ready" if all(v == "ok" for v in checks.values()) else "not_ready"
    return ReadinessResponse(status=status, checks=checks)


@router.get("/connection", response_model=HealthState)
async def connection_health(
    monitor: HealthMonitor = Depends(get_health_monitor),
) -> HealthState:
    """Current connection health snapshot."""
    return monitor.get_state()
