"""Connection health state models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field


class HealthStatus(str, Enum):
    """Classification of the client's connection to the backend."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    OFFLINE = "offline"


class HealthState(BaseModel):
    """Point-in-time snapshot of connection health.

    Consumers that only need a gate read ``is_healthy``; ``status`` carries
    the richer classification.
    """

    model_config = ConfigDict(frozen=True)

    status: HealthStatus = Field(description="Current connection classification")
    last_check: datetime | None = Field(
        default=None, description="When the last probe or transition happened"
    )
    retry_attempts: int = Field(
        default=0, ge=0, description="Consecutive failed health probes"
    )

    @computed_field
    @property
    def is_healthy(self) -> bool:
        """True only when the connection is fully healthy."""
        return self.status is HealthStatus.HEALTHY
