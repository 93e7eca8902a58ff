"""Connection health monitoring.

Tracks whether the backend is reachable and notifies subscribers when the
classification changes. Checks are event driven (startup, network
reconnect, realtime silence) plus an optional low-frequency safety timer
wired up in ``src.health.scheduler``.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Protocol, runtime_checkable

import structlog

from src.clock import Clock, SystemClock
from src.config import Settings
from src.health.schemas import HealthState, HealthStatus

logger = structlog.get_logger()

HealthCallback = Callable[[HealthState], None]
Unsubscribe = Callable[[], None]
Probe = Callable[[], Awaitable[bool]]


@runtime_checkable
class HealthMonitor(Protocol):
    """What the retry queue needs from a health source."""

    def get_state(self) -> HealthState:
        """Return a synchronous snapshot of the current health."""
        ...

    def subscribe(self, callback: HealthCallback) -> Unsubscribe:
        """Register a transition callback and return its unsubscribe handle."""
        ...


class ConnectionHealthMonitor:
    """Health monitor driven by an async probe and network events.

    Features:
    - Subscribers are notified only when the status changes
    - Overlap protection (one probe in flight at a time)
    - Cooldown between checks, bypassed by forced checks
    - Degraded after a failed probe, offline after repeated failures
      while the network reports down
    - Error isolation (a failing subscriber doesn't affect others)
    """

    def __init__(
        self,
        probe: Probe | None = None,
        *,
        probe_timeout_seconds: float = 5.0,
        min_cooldown_seconds: float = 120.0,
        offline_after_failures: int = 3,
        silence_threshold_seconds: float = 120.0,
        is_network_online: Callable[[], bool] | None = None,
        initial_status: HealthStatus = HealthStatus.HEALTHY,
        clock: Clock | None = None,
    ):
        """Initialize monitor.

        Args:
            probe: Async callable returning True when the backend is reachable
            probe_timeout_seconds: Probe time limit; a timeout counts as failure
            min_cooldown_seconds: Minimum gap between non-forced checks
            offline_after_failures: Consecutive failures before going offline
            silence_threshold_seconds: Realtime silence that prompts a check
            is_network_online: Local network indicator (assumed up if omitted)
            initial_status: Status before the first check
            clock: Time source (SystemClock if not provided)
        """
        self._probe = probe
        self._probe_timeout = probe_timeout_seconds
        self._min_cooldown = min_cooldown_seconds
        self._offline_after = offline_after_failures
        self._silence_threshold = silence_threshold_seconds
        self._is_network_online = is_network_online or (lambda: True)
        self._clock = clock or SystemClock()

        self._status = initial_status
        self._retry_attempts = 0
        self._last_check: datetime | None = None
        self._last_success: datetime | None = None
        self._last_activity = self._clock.now()
        self._is_checking = False
        self._callbacks: list[HealthCallback] = []

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        probe: Probe | None = None,
        *,
        clock: Clock | None = None,
    ) -> "ConnectionHealthMonitor":
        """Build a monitor from application settings."""
        return cls(
            probe,
            probe_timeout_seconds=settings.health_probe_timeout_seconds,
            min_cooldown_seconds=settings.health_min_cooldown_seconds,
            offline_after_failures=settings.health_offline_after_failures,
            silence_threshold_seconds=settings.health_silence_threshold_seconds,
            clock=clock,
        )

    def get_state(self) -> HealthState:
        return HealthState(
            status=self._status,
            last_check=self._last_check,
            retry_attempts=self._retry_attempts,
        )

    def subscribe(self, callback: HealthCallback) -> Unsubscribe:
        """Subscribe to status transitions.

        The callback is invoked immediately with the current state, then
        once per transition.
        """
        self._callbacks.append(callback)
        self._invoke(callback, self.get_state())

        def unsubscribe() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass  # Already unsubscribed

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._callbacks)

    @property
    def is_checking(self) -> bool:
        return self._is_checking

    def set_status(self, status: HealthStatus) -> None:
        """Force a status, e.g. from an embedding app's own signal."""
        attempts = 0 if status is HealthStatus.HEALTHY else None
        self._transition(status, retry_attempts=attempts)

    def report_offline(self) -> None:
        """Network went down: go offline immediately without probing."""
        logger.warning(
            "network went offline",
            component="ConnectionHealth",
            action="report_offline",
        )
        self._transition(HealthStatus.OFFLINE)

    async def report_online(self) -> bool:
        """Network came back: probe right away, ignoring the cooldown."""
        logger.info(
            "network came online, performing health check",
            component="ConnectionHealth",
            action="report_online",
        )
        return await self.check("network-reconnect", bypass_cooldown=True)

    async def report_resume(self) -> bool:
        """App or tab resumed: probe unless a check ran recently."""
        logger.info(
            "app resumed, performing health check",
            component="ConnectionHealth",
            action="report_resume",
        )
        return await self.check("app-resume")

    def record_activity(self) -> None:
        """Note realtime traffic; resets the silence timer."""
        self._last_activity = self._clock.now()

    async def force_check(self) -> bool:
        """Probe immediately, bypassing the cooldown."""
        return await self.check("force", bypass_cooldown=True)

    async def safety_check(self, interval_seconds: float) -> bool:
        """Seatbelt probe for the periodic timer.

        Skipped while another check runs or when a probe succeeded within
        the last ``interval_seconds``.
        """
        if self._is_checking:
            return False
        if self._last_success is not None:
            since_success = (self._clock.now() - self._last_success).total_seconds()
            if since_success < interval_seconds:
                return False
        return await self.check("safety-timer")

    async def check_silence(self) -> bool:
        """Probe if realtime traffic has been silent while not healthy.

        Returns:
            True if a probe ran and succeeded
        """
        if self._is_checking or self._in_cooldown():
            return False

        silence = (self._clock.now() - self._last_activity).total_seconds()
        if self._status is HealthStatus.HEALTHY or silence < self._silence_threshold:
            return False

        logger.info(
            "realtime silence detected, performing health check",
            component="ConnectionHealth",
            action="check_silence",
            silence_seconds=int(silence),
            status=self._status.value,
        )
        return await self.check("realtime-silence")

    async def check(
        self, trigger: str = "manual", *, bypass_cooldown: bool = False
    ) -> bool:
        """Run the probe and update status.

        Args:
            trigger: What prompted the check (for logs)
            bypass_cooldown: Skip the minimum-interval guard

        Returns:
            True only if a probe ran and succeeded
        """
        if self._is_checking:
            logger.info(
                "health check already in progress, skipping",
                component="ConnectionHealth",
                action="check",
                trigger=trigger,
            )
            return False

        if not bypass_cooldown and self._in_cooldown():
            logger.info(
                "health check skipped due to cooldown",
                component="ConnectionHealth",
                action="check",
                trigger=trigger,
            )
            return False

        if self._probe is None:
            logger.warning(
                "no health probe configured",
                component="ConnectionHealth",
                action="check",
                trigger=trigger,
            )
            return False

        self._is_checking = True
        try:
            try:
                healthy = await asyncio.wait_for(
                    self._probe(), timeout=self._probe_timeout
                )
            except Exception as e:
                logger.error(
                    "health check error",
                    component="ConnectionHealth",
                    action="check",
                    trigger=trigger,
                    error=str(e) or type(e).__name__,
                )
                healthy = False

            if healthy:
                self._record_success(trigger)
            else:
                self._record_failure(trigger)
            return healthy
        finally:
            self._is_checking = False

    def _in_cooldown(self) -> bool:
        if self._last_check is None:
            return False
        elapsed = (self._clock.now() - self._last_check).total_seconds()
        return elapsed < self._min_cooldown

    def _record_success(self, trigger: str) -> None:
        recovered = self._status is not HealthStatus.HEALTHY
        self._last_success = self._clock.now()
        self._transition(HealthStatus.HEALTHY, retry_attempts=0)
        if recovered:
            logger.info(
                "health check successful",
                component="ConnectionHealth",
                action="check",
                trigger=trigger,
                recovered=True,
            )

    def _record_failure(self, trigger: str) -> None:
        attempts = self._retry_attempts + 1
        if attempts >= self._offline_after and not self._is_network_online():
            next_status = HealthStatus.OFFLINE
        else:
            next_status = HealthStatus.DEGRADED

        logger.warning(
            "health check failed",
            component="ConnectionHealth",
            action="check",
            trigger=trigger,
            retry_attempts=attempts,
            status=next_status.value,
        )
        self._transition(next_status, retry_attempts=attempts)

    def _transition(
        self, status: HealthStatus, *, retry_attempts: int | None = None
    ) -> None:
        previous = self._status
        self._status = status
        self._last_check = self._clock.now()
        if retry_attempts is not None:
            self._retry_attempts = retry_attempts

        if previous is status:
            return

        logger.info(
            "connection status changed",
            component="ConnectionHealth",
            previous=previous.value,
            status=status.value,
        )
        state = self.get_state()
        for callback in list(self._callbacks):
            self._invoke(callback, state)

    def _invoke(self, callback: HealthCallback, state: HealthState) -> None:
        try:
            callback(state)
        except Exception as e:
            logger.error(
                "health subscriber failed",
                component="ConnectionHealth",
                action="notify",
                error=str(e),
            )
