"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import AsyncExitStack, asynccontextmanager

import structlog
from fastapi import FastAPI

from src.api.router import api_router
from src.config import settings
from src.health.monitor import ConnectionHealthMonitor
from src.health.probes import http_probe
from src.health.scheduler import health_monitor_lifespan
from src.logging_config import setup_logging
from src.retry.service import RetryQueueService

setup_logging(settings.log_level, json_logs=settings.json_logs)
logger = structlog.get_logger()


def _build_health_monitor() -> ConnectionHealthMonitor:
    """Create the health monitor, with an HTTP probe when one is configured."""
    probe = None
    if settings.health_probe_url:
        probe = http_probe(
            settings.health_probe_url,
            timeout=settings.health_probe_timeout_seconds,
        )
    else:
        logger.warning("No health probe URL configured; health is set externally")
    return ConnectionHealthMonitor.from_settings(settings, probe)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan management.

    Startup:
    - Create health monitor
    - Create retry queue service and subscribe it to health transitions
    - Start periodic health checks

    Shutdown:
    - Stop health checks
    - Stop monitoring and cancel retry processing
    """
    logger.info(f"Starting {settings.app_name}...")

    monitor = _build_health_monitor()
    app.state.health_monitor = monitor
    logger.info("Health monitor initialized")

    retry_queue = RetryQueueService.from_settings(settings, monitor)
    retry_queue.start_monitoring()
    app.state.retry_queue = retry_queue
    logger.info("Retry queue initialized")

    async with AsyncExitStack() as stack:
        await stack.enter_async_context(
            health_monitor_lifespan(
                monitor,
                safety_interval_seconds=settings.health_safety_interval_seconds,
                silence_check_interval_seconds=(
                    settings.health_silence_check_interval_seconds
                ),
            )
        )
        yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    dropped = len(retry_queue)
    await retry_queue.shutdown()
    logger.info("Retry queue stopped", pending_dropped=dropped)


app = FastAPI(
    title=settings.app_name,
    description="Connection-gated retry queue for mutating operations",
    version=settings.app_version,
    lifespan=lifespan,
)

app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
