"""AI settings and calibration endpoints."""

from typing import List

import structlog
from fastapi import APIRouter, Depends

from api.endpoints.deps import get_actor, get_ai_settings_service
from api.schemas.ai_settings import (
    AISettingsCreate,
    AISettingsResponse,
    AISettingsUpdate,
    CalibrationSummaryResponse,
    DepartmentStatsResponse,
)
from api.services.ai_settings_service import AISettingsService

logger = structlog.get_logger()
router = APIRouter()


@router.get("", response_model=List[AISettingsResponse])
async def list_settings(
    service: AISettingsService = Depends(get_ai_settings_service),
) -> List[AISettingsResponse]:
    return [AISettingsResponse.model_validate(s) for s in service.list_settings()]


@router.post("", response_model=AISettingsResponse, status_code=201)
async def create_settings(
    request: AISettingsCreate,
    actor: str = Depends(get_actor),
    service: AISettingsService = Depends(get_ai_settings_service),
) -> AISettingsResponse:
    ai_settings = service.create_settings(**request.model_dump())
    logger.info("AI settings created via API", department=ai_settings.department, actor=actor)
    return AISettingsResponse.model_validate(ai_settings)


@router.post("/calibrate", response_model=CalibrationSummaryResponse)
async def calibrate_all(
    actor: str = Depends(get_actor),
    service: AISettingsService = Depends(get_ai_settings_service),
) -> CalibrationSummaryResponse:
    """Run the calibration batch now instead of waiting for the schedule."""
    summary = service.calibrate_all()
    logger.info("Calibration batch triggered via API", actor=actor)
    return CalibrationSummaryResponse(**summary.to_dict())


@router.get("/department/{department}", response_model=AISettingsResponse)
async def get_by_department(
    department: str,
    service: AISettingsService = Depends(get_ai_settings_service),
) -> AISettingsResponse:
    return AISettingsResponse.model_validate(service.get_by_department(department))


@router.get("/department/{department}/stats", response_model=DepartmentStatsResponse)
async def department_stats(
    department: str,
    service: AISettingsService = Depends(get_ai_settings_service),
) -> DepartmentStatsResponse:
    return DepartmentStatsResponse(**service.department_stats(department))


@router.get("/{settings_id}", response_model=AISettingsResponse)
async def get_settings(
    settings_id: int,
    service: AISettingsService = Depends(get_ai_settings_service),
) -> AISettingsResponse:
    return AISettingsResponse.model_validate(service.get_settings(settings_id))


@router.put("/{settings_id}", response_model=AISettingsResponse)
async def update_settings(
    settings_id: int,
    request: AISettingsUpdate,
    actor: str = Depends(get_actor),
    service: AISettingsService = Depends(get_ai_settings_service),
) -> AISettingsResponse:
    """Partial update; the resulting accept/reject pair is validated."""
    ai_settings = service.update_settings(settings_id, **request.model_dump(exclude_unset=True))
    return AISettingsResponse.model_validate(ai_settings)


@router.post("/{settings_id}/activate", response_model=AISettingsResponse)
async def activate_settings(
    settings_id: int,
    actor: str = Depends(get_actor),
    service: AISettingsService = Depends(get_ai_settings_service),
) -> AISettingsResponse:
    return AISettingsResponse.model_validate(service.set_active(settings_id, True))


@router.post("/{settings_id}/deactivate", response_model=AISettingsResponse)
async def deactivate_settings(
    settings_id: int,
    actor: str = Depends(get_actor),
    service: AISettingsService = Depends(get_ai_settings_service),
) -> AISettingsResponse:
    return AISettingsResponse.model_validate(service.set_active(settings_id, False))


@router.post("/{settings_id}/calibrate", response_model=AISettingsResponse)
async def calibrate_settings(
    settings_id: int,
    actor: str = Depends(get_actor),
    service: AISettingsService = Depends(get_ai_settings_service),
) -> AISettingsResponse:
    """Calibrate one department. 422 when it has no evaluated applications."""
    return AISettingsResponse.model_validate(service.calibrate(settings_id))
