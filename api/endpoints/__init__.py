"""API endpoints for Hireflow."""

from fastapi import APIRouter

from .health import router as health_router
from .applications import router as applications_router
from .ai_settings import router as ai_settings_router
from .outbox import router as outbox_router

# Create main API router
api_router = APIRouter()

# Include all routers
api_router.include_router(health_router, prefix="/health", tags=["Health"])
api_router.include_router(applications_router, prefix="/applications", tags=["Applications"])
api_router.include_router(ai_settings_router, prefix="/ai-settings", tags=["AI Settings"])
api_router.include_router(outbox_router, prefix="/outbox", tags=["Outbox"])

__all__ = ["api_router"]
