"""Retry queue diagnostics endpoints.

Read-mostly view of pending operations, plus caller-initiated removal
and clearing.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from src.retry.schemas import OperationSnapshot
from src.retry.service import RetryQueueService

logger = structlog.get_logger()
router = APIRouter(prefix="/retry-queue", tags=["retry-queue"])


class RetryQueueResponse(BaseModel):
    """Response for retry queue inspection."""

    size: int = Field(description="Number of pending operations")
    is_processing: bool = Field(description="A processing pass is running")
    is_monitoring: bool = Field(description="Subscribed to health transitions")
    operations: list[OperationSnapshot] = Field(
        default_factory=list, description="Pending operations in attempt order"
    )


class RemoveResponse(BaseModel):
    """Response for removing one operation."""

    success: bool = Field(description="Whether the operation was removed")
    operation_id: str = Field(description="ID of the removed operation")


class ClearResponse(BaseModel):
    """Response for clearing the queue."""

    cleared: int = Field(description="Number of operations removed")


def get_retry_queue(request: Request) -> RetryQueueService:
    """Get RetryQueueService from app state."""
    if not hasattr(request.app.state, "retry_queue"):
        raise HTTPException(status_code=500, detail="RetryQueueService not initialized")
    return request.app.state.retry_queue


@router.get("", response_model=RetryQueueResponse)
async def list_operations(
    service: RetryQueueService = Depends(get_retry_queue),
) -> RetryQueueResponse:
    """List pending operations with queue status."""
    operations = service.get_queued_operations()
    return RetryQueueResponse(
        size=len(operations),
        is_processing=service.is_processing,
        is_monitoring=service.is_monitoring,
        operations=operations,
    )


@router.delete("/{operation_id}", response_model=RemoveResponse)
async def remove_operation(
    operation_id: str,
    service: RetryQueueService = Depends(get_retry_queue),
) -> RemoveResponse:
    """Remove one pending operation.

    Raises:
        HTTPException: 404 if the operation is not queued
    """
    if not service.remove_from_retry_queue(operation_id):
        raise HTTPException(status_code=404, detail="Operation not found")
    logger.info("operation removed via api", operation_id=operation_id)
    return RemoveResponse(success=True, operation_id=operation_id)


@router.delete("", response_model=ClearResponse)
async def clear_operations(
    service: RetryQueueService = Depends(get_retry_queue),
) -> ClearResponse:
    """Abandon every pending operation."""
    cleared = service.clear_retry_queue()
    logger.info("retry queue cleared via api", cleared=cleared)
    return ClearResponse(cleared=cleared)
