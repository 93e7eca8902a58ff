"""Connection health monitoring.

Provides:
- HealthState / HealthStatus: health snapshot models
- HealthMonitor: protocol consumed by the retry queue
- ConnectionHealthMonitor: probe-driven implementation
"""

from src.health.monitor import (
    ConnectionHealthMonitor,
    HealthCallback,
    HealthMonitor,
    Probe,
    Unsubscribe,
)
from src.health.probes import http_probe
from src.health.schemas import HealthState, HealthStatus

__all__ = [
    "ConnectionHealthMonitor",
    "HealthCallback",
    "HealthMonitor",
    "HealthState",
    "HealthStatus",
    "Probe",
    "Unsubscribe",
    "http_probe",
]
