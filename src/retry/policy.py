"""Backoff and error-classification policies for retried operations."""

from collections.abc import Callable

BackoffPolicy = Callable[[int], float]
ErrorClassifier = Callable[[BaseException], bool]


def linear_backoff(retry_count: int, step_seconds: float = 1.0) -> float:
    """Delay before the next attempt: ``retry_count * step_seconds``.

    With the default step this yields 1s, 2s, 3s, ...

    Args:
        retry_count: Failed attempts so far (>= 1 after a failure)
        step_seconds: Delay added per failed attempt

    Returns:
        Delay in seconds
    """
    return max(retry_count, 0) * step_seconds


def retry_all(error: BaseException) -> bool:
    """Treat every failure as retryable until the budget runs out."""
    return True


def is_transient_error(error: BaseException) -> bool:
    """Classify HTTP-style client errors as permanent.

    Errors exposing a ``status`` or ``status_code`` (directly or on an
    attached ``response``, as httpx.HTTPStatusError does) in the 4xx range
    are not retried, except 408 (request timeout). Everything else is
    transient.
    """
    status = getattr(error, "status", None)
    if status is None:
        status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(getattr(error, "response", None), "status_code", None)
    if isinstance(status, int) and 400 <= status < 500 and status != 408:
        return False
    return True
