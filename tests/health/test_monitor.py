"""Tests for ConnectionHealthMonitor."""

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest

from src.config import Settings
from src.health.monitor import ConnectionHealthMonitor, HealthMonitor
from src.health.schemas import HealthState, HealthStatus


def make_monitor(clock, probe=None, **kwargs) -> ConnectionHealthMonitor:
    return ConnectionHealthMonitor(probe, clock=clock, **kwargs)


class TestSubscribe:
    """Tests for subscription and notification."""

    def test_subscribe_emits_current_state(self, clock):
        """New subscribers learn the current state right away."""
        monitor = make_monitor(clock)
        received: list[HealthState] = []

        monitor.subscribe(received.append)

        assert len(received) == 1
        assert received[0].status is HealthStatus.HEALTHY
        assert received[0].is_healthy

    def test_notifies_only_on_change(self, clock):
        """Setting the same status twice notifies once."""
        monitor = make_monitor(clock)
        received: list[HealthState] = []
        monitor.subscribe(received.append)

        monitor.set_status(HealthStatus.DEGRADED)
        monitor.set_status(HealthStatus.DEGRADED)

        assert [s.status for s in received] == [
            HealthStatus.HEALTHY,
            HealthStatus.DEGRADED,
        ]

    def test_unsubscribe(self, clock):
        """Unsubscribed callbacks get no further updates."""
        monitor = make_monitor(clock)
        callback = Mock()
        unsubscribe = monitor.subscribe(callback)

        unsubscribe()
        unsubscribe()  # Second call is harmless
        monitor.set_status(HealthStatus.OFFLINE)

        callback.assert_called_once()
        assert monitor.subscriber_count == 0

    def test_subscriber_error_isolated(self, clock):
        """A raising subscriber doesn't block the others."""
        monitor = make_monitor(clock)
        monitor.subscribe(Mock(side_effect=RuntimeError("broken")))
        good = Mock()
        monitor.subscribe(good)

        with patch("src.health.monitor.logger") as mock_logger:
            monitor.set_status(HealthStatus.DEGRADED)

        assert good.call_count == 2
        mock_logger.error.assert_called_once()

    def test_satisfies_health_monitor_protocol(self, clock):
        """The monitor can be used wherever a HealthMonitor is expected."""
        assert isinstance(make_monitor(clock), HealthMonitor)


class TestCheck:
    """Tests for probing and status classification."""

    @pytest.mark.asyncio
    async def test_successful_probe(self, clock):
        """A passing probe keeps the connection healthy."""
        probe = AsyncMock(return_value=True)
        monitor = make_monitor(clock, probe, initial_status=HealthStatus.DEGRADED)

        assert await monitor.check() is True

        state = monitor.get_state()
        assert state.status is HealthStatus.HEALTHY
        assert state.retry_attempts == 0
        assert state.last_check == clock.now()

    @pytest.mark.asyncio
    async def test_failed_probe_degrades(self, clock):
        """A failing probe marks the connection degraded."""
        monitor = make_monitor(clock, AsyncMock(return_value=False))

        assert await monitor.check() is False

        state = monitor.get_state()
        assert state.status is HealthStatus.DEGRADED
        assert state.retry_attempts == 1

    @pytest.mark.asyncio
    async def test_probe_exception_counts_as_failure(self, clock):
        """Probe errors are recorded, not raised."""
        monitor = make_monitor(clock, AsyncMock(side_effect=OSError("refused")))

        assert await monitor.check() is False
        assert monitor.get_state().status is HealthStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_probe_timeout_counts_as_failure(self, clock):
        """A probe that exceeds its time limit fails the check."""

        async def slow_probe() -> bool:
            await asyncio.sleep(10)
            return True

        monitor = make_monitor(clock, slow_probe, probe_timeout_seconds=0.01)

        assert await monitor.check() is False
        assert monitor.get_state().status is HealthStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_offline_after_repeated_failures_with_network_down(self, clock):
        """Three failures while the network is down mean offline."""
        monitor = make_monitor(
            clock,
            AsyncMock(return_value=False),
            is_network_online=lambda: False,
        )

        await monitor.force_check()
        await monitor.force_check()
        assert monitor.get_state().status is HealthStatus.DEGRADED

        await monitor.force_check()
        state = monitor.get_state()
        assert state.status is HealthStatus.OFFLINE
        assert state.retry_attempts == 3

    @pytest.mark.asyncio
    async def test_stays_degraded_with_network_up(self, clock):
        """Repeated failures with the network up stay degraded."""
        monitor = make_monitor(clock, AsyncMock(return_value=False))

        for _ in range(4):
            await monitor.force_check()

        assert monitor.get_state().status is HealthStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_cooldown_skips_check(self, clock):
        """Checks within the cooldown window don't probe."""
        probe = AsyncMock(return_value=True)
        monitor = make_monitor(clock, probe)

        await monitor.check()
        clock.advance(60)
        assert await monitor.check() is False
        probe.assert_awaited_once()

        clock.advance(61)
        assert await monitor.check() is True
        assert probe.await_count == 2

    @pytest.mark.asyncio
    async def test_force_check_bypasses_cooldown(self, clock):
        """force_check probes even right after another check."""
        probe = AsyncMock(return_value=True)
        monitor = make_monitor(clock, probe)

        await monitor.check()
        assert await monitor.force_check() is True
        assert probe.await_count == 2

    @pytest.mark.asyncio
    async def test_overlapping_checks_skipped(self, clock):
        """Only one probe runs at a time."""
        release = asyncio.Event()

        async def blocked_probe() -> bool:
            await release.wait()
            return True

        monitor = make_monitor(clock, blocked_probe)
        first = asyncio.create_task(monitor.force_check())
        await asyncio.sleep(0)

        assert monitor.is_checking
        assert await monitor.force_check() is False

        release.set()
        assert await first is True
        assert not monitor.is_checking

    @pytest.mark.asyncio
    async def test_no_probe_configured(self, clock):
        """Without a probe, checks report nothing and keep the status."""
        monitor = make_monitor(clock)

        assert await monitor.check() is False
        assert monitor.get_state().status is HealthStatus.HEALTHY


class TestNetworkEvents:
    """Tests for network offline/online reports."""

    def test_report_offline(self, clock):
        """Going offline needs no probe."""
        monitor = make_monitor(clock)
        received: list[HealthState] = []
        monitor.subscribe(received.append)

        monitor.report_offline()

        assert monitor.get_state().status is HealthStatus.OFFLINE
        assert received[-1].status is HealthStatus.OFFLINE

    @pytest.mark.asyncio
    async def test_report_online_probes_immediately(self, clock):
        """Reconnecting probes even inside the cooldown window."""
        probe = AsyncMock(return_value=True)
        monitor = make_monitor(clock, probe)
        monitor.report_offline()

        assert await monitor.report_online() is True
        assert monitor.get_state().status is HealthStatus.HEALTHY
        probe.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_report_resume_probes(self, clock):
        """Resuming the app checks the connection."""
        probe = AsyncMock(return_value=False)
        monitor = make_monitor(clock, probe)

        assert await monitor.report_resume() is False
        probe.assert_awaited_once()
        assert monitor.get_state().status is HealthStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_report_resume_respects_cooldown(self, clock):
        """A resume shortly after a check doesn't probe again."""
        probe = AsyncMock(return_value=True)
        monitor = make_monitor(clock, probe)
        await monitor.check()

        clock.advance(30)
        assert await monitor.report_resume() is False
        probe.assert_awaited_once()

        clock.advance(91)
        assert await monitor.report_resume() is True
        assert probe.await_count == 2


class TestSilenceCheck:
    """Tests for realtime silence detection."""

    @pytest.mark.asyncio
    async def test_probes_after_silence_when_not_healthy(self, clock):
        """Prolonged silence while degraded triggers a probe."""
        probe = AsyncMock(return_value=True)
        monitor = make_monitor(clock, probe)
        monitor.set_status(HealthStatus.DEGRADED)

        clock.advance(121)

        assert await monitor.check_silence() is True
        assert monitor.get_state().status is HealthStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_skipped_when_healthy(self, clock):
        """Silence on a healthy connection is not suspicious."""
        probe = AsyncMock(return_value=True)
        monitor = make_monitor(clock, probe)

        clock.advance(600)

        assert await monitor.check_silence() is False
        probe.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_recent_activity_skips_probe(self, clock):
        """Realtime traffic resets the silence timer."""
        probe = AsyncMock(return_value=True)
        monitor = make_monitor(clock, probe)
        monitor.set_status(HealthStatus.DEGRADED)

        clock.advance(121)
        monitor.record_activity()

        assert await monitor.check_silence() is False
        probe.assert_not_awaited()


class TestSafetyCheck:
    """Tests for the periodic seatbelt probe."""

    @pytest.mark.asyncio
    async def test_skipped_after_recent_success(self, clock):
        """A recent successful probe makes the safety check unnecessary."""
        probe = AsyncMock(return_value=True)
        monitor = make_monitor(clock, probe)
        await monitor.check()

        clock.advance(200)
        assert await monitor.safety_check(300) is False

        clock.advance(101)
        assert await monitor.safety_check(300) is True
        assert probe.await_count == 2

    @pytest.mark.asyncio
    async def test_runs_without_prior_success(self, clock):
        """With no successful probe yet, the safety check probes."""
        probe = AsyncMock(return_value=False)
        monitor = make_monitor(clock, probe)

        assert await monitor.safety_check(300) is False
        probe.assert_awaited_once()


def test_from_settings(clock):
    """Thresholds come from settings."""
    settings = Settings(
        health_probe_timeout_seconds=1.5,
        health_min_cooldown_seconds=30,
        health_offline_after_failures=5,
    )
    monitor = ConnectionHealthMonitor.from_settings(settings, clock=clock)

    assert monitor._probe_timeout == 1.5
    assert monitor._min_cooldown == 30
    assert monitor._offline_after == 5
