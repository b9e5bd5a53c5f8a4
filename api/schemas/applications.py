"""Pydantic schemas for Application endpoints."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from api.services.transitions import ApplicationStatus
from .base import CamelModel, decode_json_text


class ApplicationSubmit(CamelModel):
    """Candidate's submission request."""

    job_posting_id: int
    resume_document_id: Optional[int] = None
    cover_letter_document_id: Optional[int] = None
    candidate_message: Optional[str] = Field(None, max_length=2000)


class StatusChangeRequest(CamelModel):
    """Recruiter's manual status decision."""

    status: ApplicationStatus
    reason: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = None


class WithdrawRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=1000)


class InterviewStatusUpdate(CamelModel):
    """Callback payload from the interview subsystem."""

    interview_id: int
    status: str


class ApplicationListItem(CamelModel):
    """Schema for application in list response."""

    id: int
    reference: str
    candidate_id: str
    candidate_name: Optional[str] = None
    job_posting_id: int
    job_title: Optional[str] = None
    job_department: Optional[str] = None
    status: ApplicationStatus
    ai_score: Optional[float] = None
    auto_decision: bool = False
    submitted_at: datetime


class ApplicationResponse(ApplicationListItem):
    """Schema for full application response."""

    resume_document_id: Optional[int] = None
    cover_letter_document_id: Optional[int] = None
    candidate_message: Optional[str] = None
    recruiter_notes: Optional[str] = None
    ai_processed: bool = False
    is_shortlisted: bool = False
    interview_id: Optional[int] = None
    interview_requested_at: Optional[datetime] = None
    last_status_changed_at: Optional[datetime] = None
    last_status_changed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    version: int


class StatusHistoryItem(CamelModel):
    id: int
    from_status: Optional[ApplicationStatus] = None
    to_status: ApplicationStatus
    changed_by: str
    reason: Optional[str] = None
    changed_at: datetime
    is_system_change: bool = False
    is_automatic_decision: bool = False


class EvaluationResponse(CamelModel):
    """AI evaluation of an application."""

    id: int
    application_id: int
    overall_score: float
    category_scores: Dict[str, float] = {}
    recommendation: str
    justification: Optional[str] = None
    strengths: List[str] = []
    weaknesses: List[str] = []
    model_used: Optional[str] = None
    exceeded_auto_threshold: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("category_scores", mode="before")
    @classmethod
    def decode_categories(cls, v: Any) -> Dict[str, float]:
        return decode_json_text(v, {})

    @field_validator("strengths", "weaknesses", mode="before")
    @classmethod
    def decode_lists(cls, v: Any) -> List[str]:
        return decode_json_text(v, [])

    @field_validator("recommendation", mode="before")
    @classmethod
    def recommendation_value(cls, v: Any) -> str:
        return getattr(v, "value", v)
