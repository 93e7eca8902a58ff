"""API router aggregation."""

from fastapi import APIRouter

from src.api.health import router as health_router
from src.api.retry_queue import router as retry_queue_router

api_router = APIRouter()
api_router.include_router(health_router)
# Retry queue diagnostics
api_router.include_router(retry_queue_router)
