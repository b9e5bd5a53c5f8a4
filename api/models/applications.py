"""Application model, the aggregate root of the hiring pipeline."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, Text, Index
from sqlalchemy import Enum as SAEnum, UniqueConstraint
from sqlalchemy.orm import relationship

from api.config.database import Base
from api.services.transitions import ApplicationStatus, PROCESSED_STATUSES, validate_transition


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Application(Base):
    """
    A candidate's application to one job posting.

    Status only changes through ``transition_to``; every change appends one
    StatusHistoryEntry. Rows are never deleted, withdrawal is a status.
    """

    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Human-readable reference, e.g. APP-250114-42-K7Q2
    reference = Column(String(50), nullable=False, unique=True)

    candidate_id = Column(String(255), nullable=False)
    job_posting_id = Column(Integer, nullable=False)

    # Documents (ids in the document service)
    resume_document_id = Column(Integer, nullable=True)
    cover_letter_document_id = Column(Integer, nullable=True)

    candidate_message = Column(Text, nullable=True)
    recruiter_notes = Column(Text, nullable=True)

    # Denormalized from the profile/posting lookups at submission
    candidate_name = Column(String(255), nullable=True)
    job_title = Column(String(255), nullable=True)
    job_department = Column(String(255), nullable=True)

    status = Column(
        SAEnum(ApplicationStatus, native_enum=False, length=50),
        nullable=False,
        default=ApplicationStatus.SUBMITTED,
    )

    # AI evaluation outcome
    ai_processed = Column(Boolean, nullable=False, default=False)
    ai_score = Column(Float, nullable=True)
    auto_decision = Column(Boolean, nullable=False, default=False)
    is_shortlisted = Column(Boolean, nullable=False, default=False)

    # Interview integration
    interview_id = Column(Integer, nullable=True)
    interview_requested_at = Column(DateTime, nullable=True)

    submitted_at = Column(DateTime, nullable=False, default=utcnow)
    last_status_changed_at = Column(DateTime, nullable=True)
    last_status_changed_by = Column(String(255), nullable=True)
    processed_at = Column(DateTime, nullable=True)  # First SHORTLISTED/REJECTED only

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, onupdate=utcnow)

    # Optimistic concurrency counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("candidate_id", "job_posting_id", name="uq_applications_candidate_posting"),
        Index("idx_applications_department", "job_department"),
        Index("idx_applications_status", "status"),
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    status_history = relationship(
        "StatusHistoryEntry",
        back_populates="application",
        order_by="StatusHistoryEntry.id",
        cascade="save-update, merge",
        passive_deletes="all",
    )
    evaluation = relationship("Evaluation", back_populates="application", uselist=False)
    jobs = relationship("Job", back_populates="application")

    def record_history(
        self,
        from_status: Optional[ApplicationStatus],
        to_status: ApplicationStatus,
        changed_by: str,
        reason: Optional[str],
        system: bool = False,
        automatic: bool = False,
        changed_at: Optional[datetime] = None,
    ) -> None:
        """Append one history entry. Entries are never edited or removed."""
        from api.models.status_history import StatusHistoryEntry

        self.status_history.append(
            StatusHistoryEntry(
                from_status=from_status,
                to_status=to_status,
                changed_by=changed_by,
                reason=reason,
                changed_at=changed_at or utcnow(),
                is_system_change=system,
                is_automatic_decision=automatic,
            )
        )

    def transition_to(
        self,
        new_status: ApplicationStatus,
        changed_by: str,
        reason: Optional[str] = None,
        system: bool = False,
        automatic: bool = False,
    ) -> Optional[ApplicationStatus]:
        """Move to ``new_status``.

        Returns the previous status, or None when the application already was in
        ``new_status`` (a no-op that writes nothing).

        Raises:
            InvalidTransitionError: If the edge is not in the transition table
        """
        new_status = ApplicationStatus(new_status)
        current = self.status
        validate_transition(current, new_status)
        if current == new_status:
            return None

        now = utcnow()
        self.status = new_status
        self.last_status_changed_at = now
        self.last_status_changed_by = changed_by
        self.record_history(current, new_status, changed_by, reason, system, automatic, changed_at=now)

        if new_status in PROCESSED_STATUSES and self.processed_at is None:
            self.processed_at = now
        if new_status == ApplicationStatus.SHORTLISTED:
            self.is_shortlisted = True
        elif new_status == ApplicationStatus.REJECTED:
            self.is_shortlisted = False

        return current

    def revert_review(self, changed_by: str, reason: str) -> bool:
        """Undo an optimistic UNDER_REVIEW back to SUBMITTED after a failed evaluation.

        Not an edge of the transition table; only reachable from UNDER_REVIEW.
        Returns False, writing nothing, when the status has moved on.
        """
        if self.status != ApplicationStatus.UNDER_REVIEW:
            return False

        now = utcnow()
        self.status = ApplicationStatus.SUBMITTED
        self.last_status_changed_at = now
        self.last_status_changed_by = changed_by
        self.record_history(
            ApplicationStatus.UNDER_REVIEW,
            ApplicationStatus.SUBMITTED,
            changed_by,
            reason,
            system=True,
            changed_at=now,
        )
        return True

    def __repr__(self) -> str:
        return f"<Application(id={self.id}, reference={self.reference}, status={self.status})>"
