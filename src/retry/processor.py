"""Serial processing loop for the retry queue.

The processor is the only component that invokes an operation's action
and the only writer of its retry counter. At most one processing pass is
active at a time, and it runs at most one action at a time.
"""

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

import structlog

from src.clock import Clock, SystemClock
from src.health.monitor import HealthMonitor
from src.retry.policy import BackoffPolicy, ErrorClassifier, linear_backoff, retry_all
from src.retry.queue import RetryQueue
from src.retry.schemas import Operation, OperationResult

logger = structlog.get_logger()


class QueueProcessor:
    """Drains a RetryQueue one operation at a time while health allows.

    Per iteration: stop if the queue is empty or the connection is not
    healthy, otherwise attempt the head operation. Success removes it.
    A retryable failure moves it to the tail and waits out the backoff.
    An exhausted or non-retryable failure removes it for good.

    Health is read once per iteration; an in-flight action is always
    awaited to completion.
    """

    def __init__(
        self,
        queue: RetryQueue,
        monitor: HealthMonitor,
        *,
        backoff: BackoffPolicy | None = None,
        classifier: ErrorClassifier | None = None,
        clock: Clock | None = None,
    ):
        """Initialize processor.

        Args:
            queue: Queue to drain
            monitor: Health source consulted before each attempt
            backoff: Delay policy by retry count (linear 1s steps by default)
            classifier: Returns False for errors that must not be retried
                (every error is retryable by default)
            clock: Time source for backoff waits
        """
        self._queue = queue
        self._monitor = monitor
        self._backoff = backoff or linear_backoff
        self._classifier = classifier or retry_all
        self._clock = clock or SystemClock()
        self._is_processing = False
        self._task: asyncio.Task | None = None

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    def trigger(self) -> bool:
        """Start a background processing pass unless one is active.

        Fire-and-forget: returns without waiting for the pass.

        Returns:
            True if a new pass was started
        """
        if self._is_processing:
            logger.debug("retry queue already processing", queue_size=len(self._queue))
            return False

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "no running event loop, retry processing deferred",
                queue_size=len(self._queue),
            )
            return False

        # Set before scheduling so a second trigger in the same tick is a no-op
        self._is_processing = True
        self._task = loop.create_task(self._run())
        return True

    async def process(self) -> None:
        """Run a processing pass in the calling task."""
        if self._is_processing:
            logger.info("retry queue already processing", queue_size=len(self._queue))
            return
        self._is_processing = True
        await self._run()

    async def wait_idle(self) -> None:
        """Wait until no background processing pass is running."""
        while self._task is not None:
            await self._task

    async def shutdown(self) -> None:
        """Cancel the background pass; interrupted work stays queued."""
        task = self._task
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        # A task cancelled before its first step never reaches _run's finally
        self._is_processing = False
        self._task = None
        logger.info("retry queue processing stopped", queue_size=len(self._queue))

    async def _run(self) -> None:
        try:
            await self._drain()
        except Exception as e:
            logger.error(
                "retry queue processing aborted",
                queue_size=len(self._queue),
                error=str(e),
            )
        finally:
            self._is_processing = False
            self._task = None

    async def _drain(self) -> None:
        logger.info("retry queue processing started", queue_size=len(self._queue))
        while True:
            operation = self._queue.head()
            if operation is None:
                logger.info("retry queue drained")
                return

            state = self._monitor.get_state()
            if not state.is_healthy:
                logger.info(
                    "connection not healthy, pausing retry queue",
                    status=state.status.value,
                    queue_size=len(self._queue),
                )
                return

            delay = await self._attempt(operation)
            if delay > 0:
                await self._clock.sleep(delay)

    async def _attempt(self, operation: Operation) -> float:
        """Run one attempt and apply the outcome.

        Returns:
            Backoff delay to wait before the next iteration
        """
        logger.info(
            "attempting queued operation",
            queue_size=len(self._queue),
            **operation.log_context,
        )
        try:
            value = await operation.action()
        except Exception as e:
            return await self._handle_failure(operation, e)

        await self._handle_success(operation, value)
        return 0.0

    async def _handle_success(self, operation: Operation, value: Any) -> None:
        if not self._queue.discard(operation):
            logger.info(
                "operation removed while in flight, dropping result",
                **operation.log_context,
            )
            return

        attempts = operation.retry_count + 1
        logger.info(
            "queued operation succeeded",
            attempts=attempts,
            queue_size=len(self._queue),
            **operation.log_context,
        )
        if operation.on_success is not None:
            await self._invoke_callback(operation, operation.on_success, value)
        operation.resolve(
            OperationResult(
                operation_id=operation.id,
                success=True,
                value=value,
                attempts=attempts,
            )
        )

    async def _handle_failure(self, operation: Operation, error: Exception) -> float:
        message = str(error) or type(error).__name__
        if operation not in self._queue:
            logger.info(
                "operation removed while in flight, dropping failure",
                error=message,
                **operation.log_context,
            )
            return 0.0

        operation.retry_count += 1
        operation.last_error = message
        retryable = self._is_retryable(operation, error)

        if not retryable or operation.retry_count >= operation.max_retries:
            self._queue.discard(operation)
            logger.error(
                "queued operation failed permanently",
                retryable=retryable,
                queue_size=len(self._queue),
                error=message,
                **operation.log_context,
            )
            if operation.on_failure is not None:
                await self._invoke_callback(operation, operation.on_failure, error)
            operation.resolve(
                OperationResult(
                    operation_id=operation.id,
                    success=False,
                    error=error,
                    error_message=message,
                    attempts=operation.retry_count,
                )
            )
            return 0.0

        self._queue.move_to_tail(operation)
        delay = self._backoff(operation.retry_count)
        logger.warning(
            "queued operation failed, will retry",
            delay_seconds=delay,
            queue_size=len(self._queue),
            error=message,
            **operation.log_context,
        )
        return delay

    def _is_retryable(self, operation: Operation, error: Exception) -> bool:
        """Classify a failure; a raising classifier counts as retryable."""
        try:
            return bool(self._classifier(error))
        except Exception as e:
            logger.error(
                "retry classifier failed",
                error=str(e),
                **operation.log_context,
            )
            return True

    async def _invoke_callback(
        self,
        operation: Operation,
        callback: Callable[[Any], Any],
        argument: Any,
    ) -> None:
        """Run an outcome callback; its errors are logged, never raised."""
        try:
            outcome = callback(argument)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error(
                "retry callback failed",
                callback=getattr(callback, "__name__", repr(callback)),
                error=str(e),
                **operation.log_context,
            )
