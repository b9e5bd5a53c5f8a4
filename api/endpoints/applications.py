"""Application lifecycle endpoints."""

from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query

from api.endpoints.deps import get_actor, get_application_service
from api.schemas.applications import (
    ApplicationListItem,
    ApplicationResponse,
    ApplicationSubmit,
    EvaluationResponse,
    InterviewStatusUpdate,
    StatusChangeRequest,
    StatusHistoryItem,
    WithdrawRequest,
)
from api.schemas.base import PaginatedResponse, PaginationMeta
from api.services.application_service import ApplicationService, SubmissionRequest
from api.services.transitions import ApplicationStatus

logger = structlog.get_logger()
router = APIRouter()


@router.get("", response_model=PaginatedResponse[ApplicationListItem])
async def list_applications(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    job_posting_id: Optional[int] = Query(None, alias="jobPostingId"),
    status: Optional[ApplicationStatus] = None,
    candidate_id: Optional[str] = Query(None, alias="candidateId"),
    department: Optional[str] = None,
    service: ApplicationService = Depends(get_application_service),
) -> PaginatedResponse[ApplicationListItem]:
    """List applications with filters, newest first."""
    items, total = service.list_applications(
        page=page,
        per_page=per_page,
        job_posting_id=job_posting_id,
        status=status,
        candidate_id=candidate_id,
        department=department,
    )
    return PaginatedResponse(
        data=[ApplicationListItem.model_validate(item) for item in items],
        meta=PaginationMeta.for_page(page, per_page, total),
    )


@router.post("", response_model=ApplicationResponse, status_code=201)
async def submit_application(
    request: ApplicationSubmit,
    candidate_id: str = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    """Submit an application as the calling candidate.

    AI evaluation runs in the background; the response reflects the
    SUBMITTED state.
    """
    application = await service.submit_application(
        candidate_id,
        SubmissionRequest(
            job_posting_id=request.job_posting_id,
            resume_document_id=request.resume_document_id,
            cover_letter_document_id=request.cover_letter_document_id,
            candidate_message=request.candidate_message,
        ),
    )
    return ApplicationResponse.model_validate(application)


@router.get("/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: int,
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    return ApplicationResponse.model_validate(service.get_application(application_id))


@router.get("/{application_id}/history", response_model=List[StatusHistoryItem])
async def get_status_history(
    application_id: int,
    service: ApplicationService = Depends(get_application_service),
) -> List[StatusHistoryItem]:
    """Status history, oldest first."""
    return [StatusHistoryItem.model_validate(entry) for entry in service.get_status_history(application_id)]


@router.get("/{application_id}/evaluation", response_model=EvaluationResponse)
async def get_evaluation(
    application_id: int,
    service: ApplicationService = Depends(get_application_service),
) -> EvaluationResponse:
    return EvaluationResponse.model_validate(service.get_evaluation(application_id))


@router.put("/{application_id}/status", response_model=ApplicationResponse)
async def change_status(
    application_id: int,
    request: StatusChangeRequest,
    actor: str = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    """Apply a recruiter decision. Illegal edges return 409."""
    application = service.change_status(
        application_id,
        request.status,
        actor,
        reason=request.reason,
        notes=request.notes,
    )
    return ApplicationResponse.model_validate(application)


@router.post("/{application_id}/withdraw", response_model=ApplicationResponse)
async def withdraw_application(
    application_id: int,
    request: Optional[WithdrawRequest] = None,
    candidate_id: str = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    reason = request.reason if request else None
    return ApplicationResponse.model_validate(
        service.withdraw_application(candidate_id, application_id, reason)
    )


@router.post("/{application_id}/interview", response_model=ApplicationResponse)
async def request_interview(
    application_id: int,
    actor: str = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    """Send a shortlisted application to the interview subsystem."""
    return ApplicationResponse.model_validate(service.request_interview(application_id, actor))


@router.put("/{application_id}/interview-status", response_model=ApplicationResponse)
async def update_interview_status(
    application_id: int,
    request: InterviewStatusUpdate,
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    """Callback from the interview subsystem."""
    application = service.update_interview_status(application_id, request.interview_id, request.status)
    return ApplicationResponse.model_validate(application)


@router.post("/{application_id}/evaluate", response_model=ApplicationResponse, status_code=202)
async def request_evaluation(
    application_id: int,
    actor: str = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    """Queue a fresh AI evaluation; the previous result is overwritten."""
    return ApplicationResponse.model_validate(service.request_evaluation(application_id, actor))
