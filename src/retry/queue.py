"""In-memory storage for pending retry operations.

The queue holds Operations in attempt order and executes nothing itself.
Reordering and removal on outcome are done by the QueueProcessor.
"""

import structlog

from src.retry.schemas import Operation, OperationSnapshot

logger = structlog.get_logger()


class RetryQueue:
    """Ordered, in-memory collection of pending operations.

    FIFO by submission, except that a failed operation is moved to the
    tail so others behind it get a turn. Not persisted: a process restart
    loses the queue.
    """

    def __init__(self):
        """Initialize empty queue."""
        self._items: list[Operation] = []

    def append(self, operation: Operation) -> None:
        """Add an operation at the tail.

        Args:
            operation: Operation to queue
        """
        self._items.append(operation)
        logger.info(
            "operation added to retry queue",
            queue_size=len(self._items),
            **operation.log_context,
        )

    def remove(self, operation_id: str) -> Operation | None:
        """Remove an operation by ID.

        Absent IDs are not an error.

        Args:
            operation_id: ID returned at enqueue time

        Returns:
            The removed operation, or None if it was not queued
        """
        operation = self.get(operation_id)
        if operation is None:
            logger.info("operation not in retry queue", operation_id=operation_id)
            return None
        del self._items[self._index(operation)]
        logger.info(
            "operation removed from retry queue",
            queue_size=len(self._items),
            **operation.log_context,
        )
        return operation

    def clear(self) -> list[Operation]:
        """Remove all operations.

        Returns:
            The operations that were queued, in order
        """
        removed = list(self._items)
        self._items.clear()
        logger.info("retry queue cleared", items_removed=len(removed))
        return removed

    def snapshot(self) -> list[OperationSnapshot]:
        """Get read-only copies of all pending operations, in order."""
        return [operation.snapshot() for operation in self._items]

    def get(self, operation_id: str) -> Operation | None:
        for operation in self._items:
            if operation.id == operation_id:
                return operation
        return None

    def head(self) -> Operation | None:
        """Next operation to attempt, without removing it."""
        return self._items[0] if self._items else None

    def move_to_tail(self, operation: Operation) -> None:
        """Reposition an operation behind everything else queued."""
        del self._items[self._index(operation)]
        self._items.append(operation)

    def discard(self, operation: Operation) -> bool:
        """Drop an operation that has finished; False if already gone."""
        if operation not in self:
            return False
        del self._items[self._index(operation)]
        return True

    def _index(self, operation: Operation) -> int:
        for index, item in enumerate(self._items):
            if item is operation:
                return index
        raise ValueError(f"Operation {operation.id} is not queued")

    def __contains__(self, operation: object) -> bool:
        return any(item is operation for item in self._items)

    def __len__(self) -> int:
        """Return number of operations in queue."""
        return len(self._items)
