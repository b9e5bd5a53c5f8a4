"""StatusHistoryEntry model, the append-only audit trail of status changes."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey, Index
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship

from api.config.database import Base
from api.services.transitions import ApplicationStatus


class StatusHistoryEntry(Base):
    """
    One status change of an application.

    Written for every transition (human, system or AI) and for the initial
    submission (from_status is NULL). Never updated or deleted.
    """

    __tablename__ = "application_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False)

    from_status = Column(SAEnum(ApplicationStatus, native_enum=False, length=50), nullable=True)
    to_status = Column(SAEnum(ApplicationStatus, native_enum=False, length=50), nullable=False)

    # Candidate id, recruiter id, "SYSTEM", "AI" or "INTERVIEW_SERVICE"
    changed_by = Column(String(255), nullable=False)
    reason = Column(Text, nullable=True)
    changed_at = Column(DateTime, nullable=False)

    is_system_change = Column(Boolean, nullable=False, default=False)
    is_automatic_decision = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_status_history_application", "application_id", "changed_at"),
    )

    # Relationships
    application = relationship("Application", back_populates="status_history")

    def __repr__(self) -> str:
        return f"<StatusHistoryEntry(id={self.id}, {self.from_status} -> {self.to_status})>"
