"""Outbox inspection endpoints for operators."""

from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.config.database import get_db
from api.endpoints.deps import get_actor
from api.middleware.error_handler import NotFoundError, ValidationAPIError
from api.models import OutboxEvent
from api.schemas.outbox import OutboxEventItem, OutboxStatusResponse
from api.services.outbox import outbox_status, retry_dead_event

logger = structlog.get_logger()
router = APIRouter()

STATE_FILTERS = {"pending", "delivered", "dead"}


@router.get("", response_model=OutboxStatusResponse)
async def get_outbox_status(db: Session = Depends(get_db)) -> OutboxStatusResponse:
    return OutboxStatusResponse(**outbox_status(db))


@router.get("/events", response_model=List[OutboxEventItem])
async def list_events(
    db: Session = Depends(get_db),
    state: Optional[str] = Query(None),
    aggregate_id: Optional[int] = Query(None, alias="aggregateId"),
    limit: int = Query(50, ge=1, le=200),
) -> List[OutboxEventItem]:
    """Recent outbox events, newest first."""
    query = db.query(OutboxEvent)
    if state is not None:
        if state not in STATE_FILTERS:
            raise ValidationAPIError(f"Unknown state filter: {state}", field="state")
        if state == "pending":
            query = query.filter(OutboxEvent.processed.is_(False))
        elif state == "delivered":
            query = query.filter(OutboxEvent.processed.is_(True), OutboxEvent.processed_at.isnot(None))
        else:
            query = query.filter(OutboxEvent.processed.is_(True), OutboxEvent.processed_at.is_(None))
    if aggregate_id is not None:
        query = query.filter(OutboxEvent.aggregate_id == aggregate_id)

    events = query.order_by(OutboxEvent.id.desc()).limit(limit).all()
    return [OutboxEventItem.model_validate(e) for e in events]


@router.post("/events/{event_id}/retry", response_model=OutboxEventItem)
async def retry_event(
    event_id: int,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
) -> OutboxEventItem:
    """Re-arm a dead-lettered event for delivery."""
    event = db.query(OutboxEvent).filter(OutboxEvent.id == event_id).first()
    if not event:
        raise NotFoundError("Outbox event", event_id)
    if not retry_dead_event(db, event_id):
        raise ValidationAPIError("Only dead-lettered events can be retried", field="eventId")

    logger.info("Outbox event retry requested", event_id=event_id, actor=actor)
    db.refresh(event)
    return OutboxEventItem.model_validate(event)
