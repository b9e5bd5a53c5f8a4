"""Shared endpoint dependencies."""

from functools import lru_cache
from typing import Optional

from fastapi import Header

from api.middleware.error_handler import APIError
from api.services.ai_settings_service import AISettingsService
from api.services.application_service import ApplicationService


def get_actor(x_user_id: Optional[str] = Header(None)) -> str:
    """Identity of the caller, forwarded by the gateway as X-User-Id."""
    if not x_user_id or not x_user_id.strip():
        raise APIError("Missing X-User-Id header", code="UNAUTHORIZED", status_code=401)
    return x_user_id.strip()


@lru_cache
def get_application_service() -> ApplicationService:
    return ApplicationService()


@lru_cache
def get_ai_settings_service() -> AISettingsService:
    return AISettingsService()
