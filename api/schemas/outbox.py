"""Pydantic schemas for outbox inspection endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import field_validator

from .base import CamelModel, decode_json_text


class OutboxEventItem(CamelModel):
    id: int
    aggregate_type: str
    aggregate_id: int
    event_type: str
    payload: dict = {}
    processed: bool
    retry_count: int
    error_message: Optional[str] = None
    creation_time: datetime
    processed_at: Optional[datetime] = None

    @field_validator("payload", mode="before")
    @classmethod
    def decode_payload(cls, v: Any) -> dict:
        return decode_json_text(v, {})


class OutboxStatusResponse(CamelModel):
    """Counts of outbox rows by state."""

    pending: int
    delivered: int
    dead: int
