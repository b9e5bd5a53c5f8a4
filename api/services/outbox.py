"""Transactional outbox, write path.

Events are rows in the caller's session. They become visible to the
dispatcher only when the caller's transaction commits, so a state change and
its event are persisted together or not at all.
"""

import json
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.orm import Session

from api.models.outbox_events import OutboxEvent

logger = structlog.get_logger()

# Event types
APPLICATION_CREATED = "ApplicationCreated"
APPLICATION_STATUS_CHANGED = "ApplicationStatusChanged"
INTERVIEW_REQUESTED = "InterviewRequested"
EVALUATION_REQUESTED = "EvaluationRequested"

ROUTING_KEYS: Dict[str, str] = {
    APPLICATION_CREATED: "application.created",
    APPLICATION_STATUS_CHANGED: "application.status-changed",
    INTERVIEW_REQUESTED: "interview.requested",
    EVALUATION_REQUESTED: "application.evaluation-requested",
}

DEFAULT_ROUTING_KEY = "events.generic"


def routing_key_for(event_type: str) -> str:
    """Map an event type to its broker routing key."""
    return ROUTING_KEYS.get(event_type, DEFAULT_ROUTING_KEY)


class OutboxPublisher:
    """Records domain events into the outbox table.

    Never commits; the caller's unit of work owns the transaction.
    """

    def record(
        self,
        db: Session,
        aggregate_type: str,
        aggregate_id: int,
        event_type: str,
        payload: Dict[str, Any],
    ) -> OutboxEvent:
        event = OutboxEvent(
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type,
            payload=json.dumps(payload, default=str),
            processed=False,
            retry_count=0,
        )
        db.add(event)
        logger.debug(
            "Outbox event recorded",
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type,
        )
        return event

    def record_status_change(
        self,
        db: Session,
        application,
        from_status,
        changed_by: str,
        reason: Optional[str] = None,
        automatic: bool = False,
    ) -> OutboxEvent:
        """Record an ApplicationStatusChanged event for ``application``."""
        return self.record(
            db,
            "application",
            application.id,
            APPLICATION_STATUS_CHANGED,
            {
                "applicationId": application.id,
                "reference": application.reference,
                "candidateId": application.candidate_id,
                "jobPostingId": application.job_posting_id,
                "fromStatus": from_status.value if from_status is not None else None,
                "toStatus": application.status.value,
                "changedBy": changed_by,
                "reason": reason,
                "isAutomaticDecision": automatic,
                "changedAt": application.last_status_changed_at,
            },
        )


outbox = OutboxPublisher()


def retry_dead_event(db: Session, event_id: int) -> bool:
    """Re-arm a dead-lettered event so the dispatcher delivers it again.

    Returns False if the event is pending or was delivered. Commits.
    """
    event = db.query(OutboxEvent).filter(OutboxEvent.id == event_id).with_for_update().first()
    if event is None or not event.dead_lettered:
        return False

    event.processed = False
    event.retry_count = 0
    event.error_message = None
    db.commit()
    logger.info("Dead outbox event re-armed", event_id=event_id, event_type=event.event_type)
    return True


def outbox_status(db: Session) -> Dict[str, int]:
    """Counts of pending, delivered and dead-lettered events."""
    pending = db.query(OutboxEvent).filter(OutboxEvent.processed.is_(False)).count()
    delivered = (
        db.query(OutboxEvent)
        .filter(OutboxEvent.processed.is_(True), OutboxEvent.processed_at.isnot(None))
        .count()
    )
    dead = (
        db.query(OutboxEvent)
        .filter(OutboxEvent.processed.is_(True), OutboxEvent.processed_at.is_(None))
        .count()
    )
    return {"pending": pending, "delivered": delivered, "dead": dead}
