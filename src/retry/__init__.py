"""Connection-gated retry queue.

Provides:
- RetryQueueService: public API (queue, remove, clear, inspect, monitor)
- RetryQueue: ordered in-memory operation storage
- QueueProcessor: serial, single-flight processing loop
- retry_with_backoff: inline exponential retry helper
"""

from src.retry.backoff import retry_with_backoff
from src.retry.policy import (
    BackoffPolicy,
    ErrorClassifier,
    is_transient_error,
    linear_backoff,
    retry_all,
)
from src.retry.processor import QueueProcessor
from src.retry.queue import RetryQueue
from src.retry.schemas import (
    Operation,
    OperationContext,
    OperationResult,
    OperationSnapshot,
)
from src.retry.service import RetryQueueService

__all__ = [
    # Service
    "RetryQueueService",
    # Infrastructure
    "RetryQueue",
    "QueueProcessor",
    # Models
    "Operation",
    "OperationContext",
    "OperationResult",
    "OperationSnapshot",
    # Policy
    "BackoffPolicy",
    "ErrorClassifier",
    "linear_backoff",
    "retry_all",
    "is_transient_error",
    "retry_with_backoff",
]
