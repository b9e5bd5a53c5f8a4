"""Pydantic schemas for AI settings endpoints."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from .base import CamelModel


class AISettingsCreate(CamelModel):
    department: str = Field(..., min_length=1, max_length=255)
    auto_accept_threshold: float
    auto_reject_threshold: float
    review_threshold: Optional[float] = None
    is_active: bool = True
    is_auto_accept_enabled: bool = True
    is_auto_reject_enabled: bool = True
    is_self_calibrating: bool = False


class AISettingsUpdate(CamelModel):
    """Partial update; omitted fields keep their value."""

    auto_accept_threshold: Optional[float] = None
    auto_reject_threshold: Optional[float] = None
    review_threshold: Optional[float] = None
    is_active: Optional[bool] = None
    is_auto_accept_enabled: Optional[bool] = None
    is_auto_reject_enabled: Optional[bool] = None
    is_self_calibrating: Optional[bool] = None


class AISettingsResponse(CamelModel):
    id: int
    department: str
    auto_accept_threshold: float
    auto_reject_threshold: float
    review_threshold: Optional[float] = None
    is_active: bool
    is_auto_accept_enabled: bool
    is_auto_reject_enabled: bool
    is_self_calibrating: bool
    last_calibration_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DepartmentStatsResponse(CamelModel):
    department: str
    settings_exist: bool
    is_active: Optional[bool] = None
    auto_accept_threshold: Optional[float] = None
    auto_reject_threshold: Optional[float] = None
    last_calibration_date: Optional[datetime] = None
    total_evaluations: int = 0
    auto_decision_count: int = 0
    auto_decision_rate: float = 0.0
    auto_accept_count: int = 0
    auto_reject_count: int = 0
    average_score: Optional[float] = None


class CalibrationSummaryResponse(CamelModel):
    calibrated: List[str] = []
    skipped: List[str] = []
    failed: Dict[str, str] = {}
