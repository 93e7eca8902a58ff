"""Retry queue service: the public API for connection-gated retries.

Callers submit mutating operations here while the connection is degraded
or unknown. The service holds them in a RetryQueue and replays them
through a QueueProcessor whenever the HealthMonitor reports healthy.

One instance is created at startup and injected where needed; nothing is
held in module-level state.
"""

import asyncio
import functools

import structlog

from src.clock import Clock, SystemClock
from src.config import Settings
from src.health.monitor import HealthMonitor, Unsubscribe
from src.health.schemas import HealthState
from src.retry.policy import BackoffPolicy, ErrorClassifier, linear_backoff
from src.retry.processor import QueueProcessor
from src.retry.queue import RetryQueue
from src.retry.schemas import (
    Action,
    FailureCallback,
    Operation,
    OperationContext,
    OperationResult,
    OperationSnapshot,
    SuccessCallback,
)

logger = structlog.get_logger()

DEFAULT_MAX_RETRIES = 3


class RetryQueueService:
    """Owns a retry queue, its processor, and the health subscription."""

    def __init__(
        self,
        monitor: HealthMonitor,
        *,
        default_max_retries: int = DEFAULT_MAX_RETRIES,
        backoff: BackoffPolicy | None = None,
        classifier: ErrorClassifier | None = None,
        clock: Clock | None = None,
    ):
        """Initialize service.

        Args:
            monitor: Connection health source gating execution
            default_max_retries: Attempt ceiling when a caller gives none
            backoff: Delay policy by retry count (linear 1s steps by default)
            classifier: Marks errors non-retryable (none are by default)
            clock: Time source for timestamps and backoff waits
        """
        self._monitor = monitor
        self._default_max_retries = default_max_retries
        self._clock = clock or SystemClock()
        self._queue = RetryQueue()
        self._processor = QueueProcessor(
            self._queue,
            monitor,
            backoff=backoff,
            classifier=classifier,
            clock=self._clock,
        )
        self._unsubscribe: Unsubscribe | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        monitor: HealthMonitor,
        *,
        classifier: ErrorClassifier | None = None,
        clock: Clock | None = None,
    ) -> "RetryQueueService":
        """Build a service from application settings."""
        return cls(
            monitor,
            default_max_retries=settings.retry_default_max_retries,
            backoff=functools.partial(
                linear_backoff, step_seconds=settings.retry_backoff_step_seconds
            ),
            classifier=classifier,
            clock=clock,
        )

    def queue_for_retry(
        self,
        action: Action,
        *,
        context: OperationContext | None = None,
        max_retries: int | None = None,
        on_success: SuccessCallback | None = None,
        on_failure: FailureCallback | None = None,
    ) -> str:
        """Queue an operation for (re)execution.

        Never fails. If the connection is healthy and nothing is being
        processed, a processing pass starts in the background.

        Args:
            action: Zero-argument async callable to run
            context: Where the operation came from (logging only)
            max_retries: Attempt ceiling (settings default if omitted)
            on_success: Called once with the successful result
            on_failure: Called once with the terminal error

        Returns:
            Operation ID for removal and log correlation
        """
        operation = self._build(action, context, max_retries, on_success, on_failure)
        self._submit(operation)
        return operation.id

    async def run(
        self,
        action: Action,
        *,
        context: OperationContext | None = None,
        max_retries: int | None = None,
        on_success: SuccessCallback | None = None,
        on_failure: FailureCallback | None = None,
    ) -> OperationResult:
        """Queue an operation and wait for its final outcome.

        Raises:
            asyncio.CancelledError: If the operation is removed or cleared
                before it finishes
        """
        operation = self._build(action, context, max_retries, on_success, on_failure)
        outcome: asyncio.Future[OperationResult] = (
            asyncio.get_running_loop().create_future()
        )
        operation.attach_outcome(outcome)
        self._submit(operation)
        return await outcome

    def remove_from_retry_queue(self, operation_id: str) -> bool:
        """Cancel a queued operation. Unknown IDs are ignored.

        Returns:
            True if an operation was removed
        """
        operation = self._queue.remove(operation_id)
        if operation is None:
            return False
        operation.cancel_outcome()
        return True

    def clear_retry_queue(self) -> int:
        """Abandon every queued operation without firing callbacks.

        Returns:
            Number of operations removed
        """
        removed = self._queue.clear()
        for operation in removed:
            operation.cancel_outcome()
        return len(removed)

    def get_queued_operations(self) -> list[OperationSnapshot]:
        """Snapshots of pending operations in attempt order."""
        return self._queue.snapshot()

    def start_monitoring(self) -> None:
        """Subscribe to health transitions to resume processing on recovery."""
        if self._unsubscribe is not None:
            logger.warning(
                "retry queue monitoring already started",
                context="RetryQueue",
                action="start_monitoring",
            )
            return

        self._unsubscribe = self._monitor.subscribe(self._on_health_change)
        logger.info(
            "retry queue monitoring started",
            context="RetryQueue",
            action="start_monitoring",
            queue_size=len(self._queue),
        )

    def stop_monitoring(self) -> None:
        """Unsubscribe from health transitions."""
        if self._unsubscribe is None:
            return
        self._unsubscribe()
        self._unsubscribe = None
        logger.info(
            "retry queue monitoring stopped",
            context="RetryQueue",
            action="stop_monitoring",
            queue_size=len(self._queue),
        )

    @property
    def is_monitoring(self) -> bool:
        return self._unsubscribe is not None

    @property
    def is_processing(self) -> bool:
        return self._processor.is_processing

    async def wait_idle(self) -> None:
        """Wait for the current processing pass, if any, to finish."""
        await self._processor.wait_idle()

    async def shutdown(self) -> None:
        """Stop monitoring and cancel any running processing pass."""
        self.stop_monitoring()
        await self._processor.shutdown()

    def __len__(self) -> int:
        return len(self._queue)

    def _build(
        self,
        action: Action,
        context: OperationContext | None,
        max_retries: int | None,
        on_success: SuccessCallback | None,
        on_failure: FailureCallback | None,
    ) -> Operation:
        return Operation(
            action=action,
            context=context or OperationContext(),
            max_retries=(
                self._default_max_retries if max_retries is None else max_retries
            ),
            queued_at=self._clock.now(),
            on_success=on_success,
            on_failure=on_failure,
        )

    def _submit(self, operation: Operation) -> None:
        self._queue.append(operation)
        if self._processor.is_processing:
            return
        if not self._monitor.get_state().is_healthy:
            logger.info(
                "connection not healthy, operation will wait",
                queue_size=len(self._queue),
                **operation.log_context,
            )
            return
        self._processor.trigger()

    def _on_health_change(self, state: HealthState) -> None:
        if not state.is_healthy:
            return
        if len(self._queue) == 0 or self._processor.is_processing:
            return
        logger.info(
            "connection healthy, resuming retry queue",
            context="RetryQueue",
            action="health_restored",
            queue_size=len(self._queue),
        )
        self._processor.trigger()
