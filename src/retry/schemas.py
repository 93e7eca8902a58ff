"""Retry queue data models.

An Operation is the unit of work held by the queue. Retries mutate the
same record (counter and position); its identity never changes.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

Action = Callable[[], Awaitable[Any]]
SuccessCallback = Callable[[Any], Any]
FailureCallback = Callable[[BaseException], Any]


class OperationContext(BaseModel):
    """Descriptive metadata about where an operation came from.

    Used only for logging and diagnostics; the queue never acts on it.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    component: str | None = Field(default=None, description="Originating component")
    action: str | None = Field(default=None, description="Originating action name")
    metadata: dict[str, Any] = Field(
        default_factory=dict, description="Free-form extra context"
    )


class OperationSnapshot(BaseModel):
    """Read-only view of a queued operation for diagnostics."""

    model_config = ConfigDict(frozen=True)

    id: str
    context: OperationContext
    max_retries: int
    retry_count: int
    queued_at: datetime
    last_error: str | None = None


class OperationResult(BaseModel):
    """Final outcome of an operation after it leaves the queue."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    operation_id: str = Field(description="ID of the finished operation")
    success: bool = Field(description="Whether an attempt eventually succeeded")
    value: Any = Field(default=None, description="Result of the successful attempt")
    error: BaseException | None = Field(
        default=None, exclude=True, description="Terminal error if failed"
    )
    error_message: str | None = Field(
        default=None, description="Terminal error message if failed"
    )
    attempts: int = Field(default=0, ge=0, description="Attempts made")


class Operation(BaseModel):
    """A queued unit of asynchronous work with a bounded retry budget.

    ``retry_count`` and queue position are owned by the QueueProcessor.
    Callers only ever see OperationSnapshot copies.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    action: Action = Field(description="Zero-argument async callable to run")
    context: OperationContext = Field(default_factory=OperationContext)
    max_retries: int = Field(default=3, ge=1, description="Attempt ceiling")
    retry_count: int = Field(default=0, ge=0, description="Failed attempts so far")
    queued_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="First enqueue time; not refreshed on requeue",
    )
    last_error: str | None = Field(default=None, description="Latest failure message")
    on_success: SuccessCallback | None = None
    on_failure: FailureCallback | None = None

    _outcome: asyncio.Future | None = PrivateAttr(default=None)

    @property
    def log_context(self) -> dict[str, Any]:
        """Structured fields identifying this operation in logs."""
        return {
            "context": self.context.component,
            "action": self.context.action,
            "operation_id": self.id,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
        }

    def snapshot(self) -> OperationSnapshot:
        return OperationSnapshot(
            id=self.id,
            context=self.context,
            max_retries=self.max_retries,
            retry_count=self.retry_count,
            queued_at=self.queued_at,
            last_error=self.last_error,
        )

    def attach_outcome(self, future: asyncio.Future) -> None:
        """Bind a future that will receive the OperationResult."""
        self._outcome = future

    def resolve(self, result: OperationResult) -> None:
        """Deliver the final result to an awaiting caller, if any."""
        if self._outcome is not None and not self._outcome.done():
            self._outcome.set_result(result)

    def cancel_outcome(self) -> None:
        """Cancel the awaiting caller's future (removed or cleared)."""
        if self._outcome is not None and not self._outcome.done():
            self._outcome.cancel()
