"""OutboxEvent model for transactional event publishing."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, Index

from api.config.database import Base
from api.models.applications import utcnow


class OutboxEvent(Base):
    """
    A domain event waiting for delivery to the message broker.

    Inserted in the same transaction as the state change it describes; the
    processor's dispatcher drains unprocessed rows in creation order.
    """

    __tablename__ = "outbox_events"

    id = Column(Integer, primary_key=True, autoincrement=True)

    aggregate_type = Column(String(100), nullable=False)  # application
    aggregate_id = Column(Integer, nullable=False)
    # ApplicationCreated, ApplicationStatusChanged, InterviewRequested, EvaluationRequested
    event_type = Column(String(100), nullable=False)

    payload = Column(Text, nullable=False)  # JSON

    processed = Column(Boolean, nullable=False, default=False)
    retry_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)

    creation_time = Column(DateTime, nullable=False, default=utcnow)
    processed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_outbox_pending", "processed", "creation_time"),
        Index("idx_outbox_aggregate", "aggregate_type", "aggregate_id"),
    )

    @property
    def dead_lettered(self) -> bool:
        """Processed without ever being delivered."""
        return bool(self.processed and self.processed_at is None and self.error_message)

    def __repr__(self) -> str:
        return f"<OutboxEvent(id={self.id}, type={self.event_type}, processed={self.processed})>"
