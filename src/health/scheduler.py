"""APScheduler integration for periodic connection health checks.

Event-driven checks cover most transitions; these jobs are the slow
safety net plus realtime-silence detection.
"""

from contextlib import asynccontextmanager
from datetime import UTC
from typing import TYPE_CHECKING

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from src.health.monitor import ConnectionHealthMonitor

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = structlog.get_logger()

SAFETY_JOB_ID = "connection_health_check"
SILENCE_JOB_ID = "realtime_silence_check"


@asynccontextmanager
async def health_monitor_lifespan(
    monitor: ConnectionHealthMonitor,
    *,
    safety_interval_seconds: int = 300,
    silence_check_interval_seconds: int = 180,
    scheduler: AsyncIOScheduler | None = None,
) -> "AsyncGenerator[AsyncIOScheduler, None]":
    """Run periodic health jobs for the lifetime of the context.

    Performs an initial check, then schedules the safety-timer and
    realtime-silence jobs. Shuts the scheduler down on exit.

    Usage:
        async with health_monitor_lifespan(monitor):
            # Jobs are running
            ...
        # Scheduler stopped
    """
    scheduler = scheduler or AsyncIOScheduler(timezone=UTC)

    scheduler.add_job(
        run_safety_check,
        "interval",
        seconds=safety_interval_seconds,
        args=[monitor, safety_interval_seconds],
        id=SAFETY_JOB_ID,
        replace_existing=True,
        max_instances=1,  # Prevent overlap if a probe hangs
    )
    scheduler.add_job(
        run_silence_check,
        "interval",
        seconds=silence_check_interval_seconds,
        args=[monitor],
        id=SILENCE_JOB_ID,
        replace_existing=True,
        max_instances=1,
    )

    logger.info("Starting health monitor scheduler")
    await monitor.check("initial")
    scheduler.start()

    try:
        yield scheduler
    finally:
        logger.info("Shutting down health monitor scheduler")
        scheduler.shutdown(wait=False)


async def run_safety_check(
    monitor: ConnectionHealthMonitor, interval_seconds: float
) -> None:
    """Scheduled job: low-frequency seatbelt probe."""
    try:
        await monitor.safety_check(interval_seconds)
    except Exception as e:
        logger.error("Safety health check failed", error=str(e))


async def run_silence_check(monitor: ConnectionHealthMonitor) -> None:
    """Scheduled job: probe after prolonged realtime silence."""
    try:
        await monitor.check_silence()
    except Exception as e:
        logger.error("Silence health check failed", error=str(e))
