"""Pydantic schemas for API request/response validation.

All schemas use CamelCase for JSON field names (via alias_generator).
"""

from .base import CamelModel, PaginatedResponse, PaginationMeta, ErrorResponse

# Re-export all schemas
from .applications import (
    ApplicationSubmit,
    StatusChangeRequest,
    WithdrawRequest,
    InterviewStatusUpdate,
    ApplicationListItem,
    ApplicationResponse,
    StatusHistoryItem,
    EvaluationResponse,
)
from .ai_settings import (
    AISettingsCreate,
    AISettingsUpdate,
    AISettingsResponse,
    DepartmentStatsResponse,
    CalibrationSummaryResponse,
)
from .outbox import (
    OutboxEventItem,
    OutboxStatusResponse,
)

__all__ = [
    # Base
    "CamelModel",
    "PaginatedResponse",
    "PaginationMeta",
    "ErrorResponse",
    # Applications
    "ApplicationSubmit",
    "StatusChangeRequest",
    "WithdrawRequest",
    "InterviewStatusUpdate",
    "ApplicationListItem",
    "ApplicationResponse",
    "StatusHistoryItem",
    "EvaluationResponse",
    # AI settings
    "AISettingsCreate",
    "AISettingsUpdate",
    "AISettingsResponse",
    "DepartmentStatsResponse",
    "CalibrationSummaryResponse",
    # Outbox
    "OutboxEventItem",
    "OutboxStatusResponse",
]
