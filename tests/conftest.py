"""Pytest configuration and fixtures."""

import asyncio
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from src.health.monitor import ConnectionHealthMonitor
from src.main import app
from src.retry.service import RetryQueueService


class FakeClock:
    """Clock whose sleeps advance virtual time instead of waiting."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 1, 15, 10, 0, tzinfo=UTC)
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    """Virtual clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def monitor(clock: FakeClock) -> ConnectionHealthMonitor:
    """Healthy monitor without a probe; tests drive it via set_status."""
    return ConnectionHealthMonitor(clock=clock)


@pytest.fixture
def service(monitor: ConnectionHealthMonitor, clock: FakeClock) -> RetryQueueService:
    """Retry queue service gated by the test monitor."""
    return RetryQueueService(monitor, clock=clock)


@pytest.fixture
async def client(
    monitor: ConnectionHealthMonitor, service: RetryQueueService
) -> AsyncIterator[AsyncClient]:
    """Create async test client for FastAPI app with test services."""
    app.state.health_monitor = monitor
    app.state.retry_queue = service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await service.shutdown()
    del app.state.health_monitor
    del app.state.retry_queue
