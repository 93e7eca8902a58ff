"""Inline retry with exponential backoff.

For callers that want to retry a single awaitable in place rather than
hand it to the queue. Client errors (4xx other than 408) are not retried
by default.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.retry.policy import ErrorClassifier, is_transient_error
from src.retry.schemas import OperationContext

logger = structlog.get_logger()

T = TypeVar("T")

MAX_RETRY_DELAY = 30.0
INITIAL_RETRY_DELAY = 1.0


def _log_before_retry(
    log_context: dict[str, Any], max_retries: int
) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else None
        logger.warning(
            "operation failed, retrying",
            attempt=retry_state.attempt_number,
            max_retries=max_retries,
            delay_seconds=delay,
            error=str(error) if error else None,
            **log_context,
        )

    return before_sleep


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    initial_delay: float = INITIAL_RETRY_DELAY,
    max_delay: float = MAX_RETRY_DELAY,
    classifier: ErrorClassifier | None = None,
    context: OperationContext | None = None,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> T:
    """Run ``operation``, retrying failures with exponential backoff.

    Delays are ``initial_delay * 2**n`` capped at ``max_delay``. Logs
    before each retry and once more when giving up.

    Args:
        operation: Zero-argument async callable
        max_retries: Total attempts allowed
        initial_delay: Delay after the first failure, in seconds
        max_delay: Upper bound for any single delay
        classifier: Returns False for errors that must not be retried
            (defaults to is_transient_error)
        context: Where the call came from (logging only)
        sleep: Async sleep used between attempts (asyncio.sleep by default)

    Returns:
        The operation's result

    Raises:
        Exception: The last error once retries are exhausted, or the first
            non-retryable error
    """
    classifier = classifier or is_transient_error
    context = context or OperationContext()
    log_context = {
        "context": context.component,
        "action": context.action or "retry_with_backoff",
    }

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries),
        wait=wait_exponential(multiplier=initial_delay, max=max_delay),
        retry=retry_if_exception(classifier),
        before_sleep=_log_before_retry(log_context, max_retries),
        sleep=sleep or asyncio.sleep,
        reraise=True,
    )

    try:
        return await retrying(operation)
    except Exception as e:
        attempts = retrying.statistics.get("attempt_number", max_retries)
        if classifier(e):
            logger.error(
                "operation failed after retries",
                attempts=attempts,
                max_retries=max_retries,
                error=str(e),
                **log_context,
            )
        else:
            logger.warning(
                "operation failed with non-retryable error, not retrying",
                attempts=attempts,
                max_retries=max_retries,
                error=str(e),
                **log_context,
            )
        raise
