"""Outbox dispatcher: drains committed outbox rows to the message broker."""

import asyncio
import json
from typing import Callable, List, Optional, Protocol

import structlog
from sqlalchemy.orm import Session

from api.models import OutboxEvent
from api.models.applications import utcnow
from api.services.outbox import retry_dead_event, routing_key_for
from processor.config import settings
from processor.database import SessionLocal
from processor.integrations.broker import BrokerClient

logger = structlog.get_logger()


class DeliveryFailure(Exception):
    """Raised when an outbox event could not be handed to the broker."""

    def __init__(self, event_id: int, reason: str):
        super().__init__(f"Outbox event {event_id} not delivered: {reason}")
        self.event_id = event_id
        self.reason = reason


class Publisher(Protocol):
    def publish(self, routing_key: str, payload: dict, headers: Optional[dict] = None) -> None: ...


class OutboxDispatcher:
    """Publishes unprocessed outbox events in creation order.

    Each event is claimed, published and committed in its own short
    transaction, so one bad event never holds back or rolls back the others.
    Events that keep failing are dead-lettered after ``max_retries`` attempts:
    they are flagged processed with ``processed_at`` left empty and the last
    error kept.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        broker: Optional[Publisher] = None,
        batch_size: Optional[int] = None,
        max_retries: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.broker = broker or BrokerClient()
        self.batch_size = batch_size or settings.OUTBOX_BATCH_SIZE
        self.max_retries = max_retries or settings.OUTBOX_MAX_RETRIES
        self.interval = settings.OUTBOX_DISPATCH_INTERVAL
        self.running = False
        self.last_dispatch_stats: dict = {}

    def dispatch_once(self) -> dict:
        """Run one dispatch tick.

        Returns:
            Counts of delivered, failed and dead-lettered events
        """
        stats = {"delivered": 0, "failed": 0, "dead_lettered": 0}
        for event_id in self._pending_ids():
            outcome = self._dispatch_event(event_id)
            if outcome:
                stats[outcome] += 1

        if any(stats.values()):
            logger.info("Outbox dispatch tick complete", **stats)
        self.last_dispatch_stats = stats
        return stats

    def _pending_ids(self) -> List[int]:
        db = self.session_factory()
        try:
            rows = (
                db.query(OutboxEvent.id)
                .filter(OutboxEvent.processed.is_(False))
                .order_by(OutboxEvent.creation_time.asc(), OutboxEvent.id.asc())
                .limit(self.batch_size)
                .all()
            )
            return [row.id for row in rows]
        finally:
            db.close()

    def _dispatch_event(self, event_id: int) -> Optional[str]:
        """Claim, publish and settle one event. Returns the outcome key or None if skipped."""
        db = self.session_factory()
        try:
            event = (
                db.query(OutboxEvent)
                .filter(OutboxEvent.id == event_id, OutboxEvent.processed.is_(False))
                .with_for_update(skip_locked=True)
                .first()
            )
            if event is None:
                # Delivered by another dispatcher or locked right now
                db.rollback()
                return None

            try:
                self._publish(event)
            except DeliveryFailure as e:
                return self._record_failure(db, event, e.reason)

            event.processed = True
            event.processed_at = utcnow()
            event.error_message = None
            db.commit()
            logger.info(
                "Outbox event delivered",
                event_id=event.id,
                event_type=event.event_type,
                routing_key=routing_key_for(event.event_type),
            )
            return "delivered"
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _publish(self, event: OutboxEvent) -> None:
        try:
            payload = json.loads(event.payload)
        except (TypeError, ValueError) as e:
            raise DeliveryFailure(event.id, f"invalid payload: {e}") from e

        headers = {
            "eventType": event.event_type,
            "aggregateType": event.aggregate_type,
            "aggregateId": event.aggregate_id,
            "outboxEventId": event.id,
        }
        try:
            self.broker.publish(routing_key_for(event.event_type), payload, headers)
        except Exception as e:
            raise DeliveryFailure(event.id, str(e)) from e

    def _record_failure(self, db: Session, event: OutboxEvent, reason: str) -> str:
        event.retry_count = (event.retry_count or 0) + 1
        event.error_message = reason

        if event.retry_count >= self.max_retries:
            event.processed = True
            event.processed_at = None
            db.commit()
            logger.error(
                "Outbox event dead-lettered",
                event_id=event.id,
                event_type=event.event_type,
                retry_count=event.retry_count,
                error=reason,
            )
            return "dead_lettered"

        db.commit()
        logger.warning(
            "Outbox event delivery failed",
            event_id=event.id,
            event_type=event.event_type,
            retry_count=event.retry_count,
            error=reason,
        )
        return "failed"

    def retry_dead_event(self, event_id: int) -> bool:
        """Re-arm a dead-lettered event for another round of delivery."""
        db = self.session_factory()
        try:
            return retry_dead_event(db, event_id)
        finally:
            db.close()

    async def run(self) -> None:
        """Dispatch loop. Tick errors are logged and the loop carries on."""
        self.running = True
        logger.info(
            "Outbox dispatcher started",
            interval_seconds=self.interval,
            batch_size=self.batch_size,
            max_retries=self.max_retries,
        )

        while self.running:
            try:
                await asyncio.to_thread(self.dispatch_once)
            except Exception as e:
                logger.error("Outbox dispatch tick failed", error=str(e), exc_info=True)

            await asyncio.sleep(self.interval)

        logger.info("Outbox dispatcher stopped")

    def stop(self) -> None:
        self.running = False
        close = getattr(self.broker, "close", None)
        if close is not None:
            close()

    def get_status(self) -> dict:
        return {
            "running": self.running,
            "interval_seconds": self.interval,
            "last_dispatch": self.last_dispatch_stats,
        }
