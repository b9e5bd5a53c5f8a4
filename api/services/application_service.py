"""Application lifecycle operations.

Every mutating operation runs in one unit of work: the application row is
loaded with a row lock, changed through ``Application.transition_to``, and the
resulting outbox rows are written in the same transaction. Version conflicts
are retried by ``run_in_transaction``.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from api.config.database import SessionLocal, run_in_transaction, unit_of_work
from api.config.settings import settings
from api.integrations import CandidateProfileClient, DocumentClient, JobPostingClient
from api.middleware.error_handler import NotFoundError, ValidationAPIError
from api.models import Application, Evaluation, Job, StatusHistoryEntry
from api.models.applications import utcnow
from api.services.outbox import (
    APPLICATION_CREATED,
    EVALUATION_REQUESTED,
    INTERVIEW_REQUESTED,
    OutboxPublisher,
    outbox,
)
from api.services.reference import generate_reference
from api.services.transitions import ApplicationStatus

logger = structlog.get_logger()

EVALUATE_JOB_TYPE = "evaluate_application"
INTERVIEW_SERVICE_ACTOR = "INTERVIEW_SERVICE"

# Interview subsystem status -> application status
INTERVIEW_STATUS_MAP = {
    "SCHEDULED": ApplicationStatus.INTERVIEW_SCHEDULED,
    "COMPLETED": ApplicationStatus.INTERVIEW_COMPLETED,
    "CANCELED": ApplicationStatus.SHORTLISTED,
    "CANCELLED": ApplicationStatus.SHORTLISTED,
}


@dataclass
class SubmissionRequest:
    job_posting_id: int
    resume_document_id: Optional[int] = None
    cover_letter_document_id: Optional[int] = None
    candidate_message: Optional[str] = None


class ApplicationService:
    """Submission, status changes, withdrawal and interview hand-offs."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        profiles: Optional[CandidateProfileClient] = None,
        postings: Optional[JobPostingClient] = None,
        documents: Optional[DocumentClient] = None,
        publisher: OutboxPublisher = outbox,
    ):
        self.session_factory = session_factory
        self.profiles = profiles or CandidateProfileClient()
        self.postings = postings or JobPostingClient()
        self.documents = documents or DocumentClient()
        self.publisher = publisher
        self.max_attempts = settings.TRANSITION_MAX_ATTEMPTS

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit_application(self, candidate_id: str, request: SubmissionRequest) -> Application:
        """Create an application for ``candidate_id``.

        Gates run before any write. Collaborator failures abort the whole
        submission.

        Raises:
            ValidationAPIError: Duplicate, missing resume, incomplete profile,
                unpublished posting, or wrong document type
            NotFoundError: Profile, posting or document does not exist
            DownstreamUnavailableError: A collaborator could not be reached
        """
        log = logger.bind(candidate_id=candidate_id, job_posting_id=request.job_posting_id)

        with unit_of_work(self.session_factory) as db:
            existing = (
                db.query(Application)
                .filter(
                    Application.candidate_id == candidate_id,
                    Application.job_posting_id == request.job_posting_id,
                )
                .first()
            )
            if existing:
                raise ValidationAPIError(
                    f"You have already applied for this position (ref: {existing.reference})",
                    field="jobPostingId",
                )

        if request.resume_document_id is None:
            raise ValidationAPIError("A resume is required to submit an application", field="resumeDocumentId")

        profile, posting = await asyncio.gather(
            self.profiles.get_profile(candidate_id),
            self.postings.get_posting(request.job_posting_id),
        )

        missing = profile.missing_fields()
        if missing:
            raise ValidationAPIError(
                "Your profile is incomplete. Please complete it before submitting an application "
                f"(missing: {', '.join(missing)})",
                field="profile",
            )

        if not posting.is_published:
            raise ValidationAPIError("This job posting is no longer open for applications", field="jobPostingId")

        resume = await self.documents.get_document(request.resume_document_id)
        if not resume.is_resume:
            raise ValidationAPIError("The resume document is not a resume", field="resumeDocumentId")
        if request.cover_letter_document_id is not None:
            await self.documents.get_document(request.cover_letter_document_id)

        try:
            with unit_of_work(self.session_factory) as db:
                now = utcnow()
                application = Application(
                    reference=generate_reference(request.job_posting_id, now),
                    candidate_id=candidate_id,
                    job_posting_id=request.job_posting_id,
                    resume_document_id=request.resume_document_id,
                    cover_letter_document_id=request.cover_letter_document_id,
                    candidate_message=request.candidate_message,
                    candidate_name=profile.full_name,
                    job_title=posting.title,
                    job_department=posting.department,
                    status=ApplicationStatus.SUBMITTED,
                    ai_processed=False,
                    auto_decision=False,
                    is_shortlisted=False,
                    submitted_at=now,
                    last_status_changed_at=now,
                    last_status_changed_by=candidate_id,
                )
                application.record_history(
                    None,
                    ApplicationStatus.SUBMITTED,
                    candidate_id,
                    "Application submitted",
                    changed_at=now,
                )
                db.add(application)
                db.flush()

                self.publisher.record(
                    db,
                    "application",
                    application.id,
                    APPLICATION_CREATED,
                    {
                        "applicationId": application.id,
                        "reference": application.reference,
                        "candidateId": candidate_id,
                        "candidateName": application.candidate_name,
                        "jobPostingId": application.job_posting_id,
                        "jobTitle": application.job_title,
                        "jobDepartment": application.job_department,
                        "status": application.status.value,
                        "submittedAt": now,
                    },
                )

                if settings.AI_EVALUATION_ENABLED:
                    self._request_evaluation(db, application)
        except IntegrityError as e:
            # Lost a race with a concurrent submission for the same pair
            log.warning("Duplicate application rejected by constraint", error=str(e.orig))
            raise ValidationAPIError("You have already applied for this position", field="jobPostingId") from e

        log.info("Application submitted", application_id=application.id, reference=application.reference)
        return application

    def request_evaluation(self, application_id: int, requested_by: str) -> Application:
        """Queue a (re-)evaluation of an application. Existing results are overwritten."""

        def work(db: Session) -> Application:
            application = self._load_for_update(db, application_id)
            if application.resume_document_id is None:
                raise ValidationAPIError("Cannot evaluate an application without a resume", field="resumeDocumentId")
            self._request_evaluation(db, application, force=True)
            logger.info("Evaluation requested", application_id=application_id, requested_by=requested_by)
            return application

        return run_in_transaction(self.session_factory, work, self.max_attempts)

    def _request_evaluation(self, db: Session, application: Application, force: bool = False) -> None:
        self.publisher.record(
            db,
            "application",
            application.id,
            EVALUATION_REQUESTED,
            {
                "applicationId": application.id,
                "reference": application.reference,
                "jobPostingId": application.job_posting_id,
                "resumeDocumentId": application.resume_document_id,
            },
        )
        db.add(
            Job(
                application_id=application.id,
                job_type=EVALUATE_JOB_TYPE,
                priority=5,
                max_attempts=settings.QUEUE_MAX_ATTEMPTS,
                payload=json.dumps({"force": True}) if force else None,
                scheduled_for=utcnow(),
            )
        )

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def change_status(
        self,
        application_id: int,
        new_status: ApplicationStatus,
        changed_by: str,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Application:
        """Apply a recruiter's manual decision.

        Raises:
            NotFoundError: If the application does not exist
            InvalidTransitionError: If the edge is not allowed
        """

        def work(db: Session) -> Application:
            application = self._load_for_update(db, application_id)
            previous = application.transition_to(new_status, changed_by, reason)
            if notes is not None:
                application.recruiter_notes = notes
            if previous is not None:
                self.publisher.record_status_change(db, application, previous, changed_by, reason)
                logger.info(
                    "Application status changed",
                    application_id=application_id,
                    from_status=previous.value,
                    to_status=application.status.value,
                    changed_by=changed_by,
                )
            return application

        return run_in_transaction(self.session_factory, work, self.max_attempts)

    def withdraw_application(self, candidate_id: str, application_id: int, reason: Optional[str] = None) -> Application:
        """Withdraw an application on behalf of its candidate.

        Raises:
            NotFoundError: If the application does not exist or is not the candidate's
            InvalidTransitionError: If the application is already terminal
        """

        def work(db: Session) -> Application:
            application = self._load_for_update(db, application_id)
            if application.candidate_id != candidate_id:
                raise NotFoundError("Application", application_id)
            reason_text = reason or "Withdrawn by candidate"
            previous = application.transition_to(ApplicationStatus.WITHDRAWN, candidate_id, reason_text)
            if previous is not None:
                self.publisher.record_status_change(db, application, previous, candidate_id, reason_text)
                logger.info("Application withdrawn", application_id=application_id, from_status=previous.value)
            return application

        return run_in_transaction(self.session_factory, work, self.max_attempts)

    def request_interview(self, application_id: int, requested_by: str) -> Application:
        """Hand a shortlisted application to the interview subsystem.

        Raises:
            ValidationAPIError: If the application is not SHORTLISTED
        """

        def work(db: Session) -> Application:
            application = self._load_for_update(db, application_id)
            if application.status != ApplicationStatus.SHORTLISTED:
                raise ValidationAPIError(
                    "Only shortlisted applications can be sent to interview "
                    f"(current status: {application.status.value})",
                    field="status",
                )
            reason = "Interview requested"
            previous = application.transition_to(ApplicationStatus.INTERVIEW_REQUESTED, requested_by, reason)
            application.interview_requested_at = application.last_status_changed_at
            self.publisher.record(
                db,
                "application",
                application.id,
                INTERVIEW_REQUESTED,
                {
                    "applicationId": application.id,
                    "reference": application.reference,
                    "candidateId": application.candidate_id,
                    "candidateName": application.candidate_name,
                    "jobPostingId": application.job_posting_id,
                    "jobTitle": application.job_title,
                    "requestedBy": requested_by,
                    "requestedAt": application.interview_requested_at,
                },
            )
            self.publisher.record_status_change(db, application, previous, requested_by, reason)
            logger.info("Interview requested", application_id=application_id, requested_by=requested_by)
            return application

        return run_in_transaction(self.session_factory, work, self.max_attempts)

    def update_interview_status(self, application_id: int, interview_id: int, interview_status: str) -> Application:
        """Apply a status callback from the interview subsystem.

        SCHEDULED and COMPLETED advance the application. CANCELED sends it
        back to SHORTLISTED, or to INTERVIEW_REQUESTED when an interview was
        already scheduled.

        Raises:
            ValidationAPIError: Unknown interview status or mismatching interview id
            InvalidTransitionError: If the mapped edge is not allowed
        """
        key = (interview_status or "").strip().upper()
        if key not in INTERVIEW_STATUS_MAP:
            raise ValidationAPIError(f"Unknown interview status: {interview_status}", field="status")

        def work(db: Session) -> Application:
            application = self._load_for_update(db, application_id)

            if application.interview_id is None:
                application.interview_id = interview_id
            elif application.interview_id != interview_id:
                raise ValidationAPIError(
                    f"Interview {interview_id} does not belong to application {application_id}",
                    field="interviewId",
                )

            target = INTERVIEW_STATUS_MAP[key]
            if target == ApplicationStatus.SHORTLISTED and application.status == ApplicationStatus.INTERVIEW_SCHEDULED:
                target = ApplicationStatus.INTERVIEW_REQUESTED

            reason = f"Interview {key.lower()}"
            previous = application.transition_to(target, INTERVIEW_SERVICE_ACTOR, reason, system=True)
            if previous is not None:
                self.publisher.record_status_change(db, application, previous, INTERVIEW_SERVICE_ACTOR, reason)
                logger.info(
                    "Interview status applied",
                    application_id=application_id,
                    interview_id=interview_id,
                    interview_status=key,
                    to_status=application.status.value,
                )
            return application

        return run_in_transaction(self.session_factory, work, self.max_attempts)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_application(self, application_id: int) -> Application:
        with unit_of_work(self.session_factory) as db:
            application = db.query(Application).filter(Application.id == application_id).first()
            if not application:
                raise NotFoundError("Application", application_id)
            return application

    def get_status_history(self, application_id: int) -> List[StatusHistoryEntry]:
        """History entries oldest first."""
        with unit_of_work(self.session_factory) as db:
            exists = db.query(Application.id).filter(Application.id == application_id).first()
            if not exists:
                raise NotFoundError("Application", application_id)
            return (
                db.query(StatusHistoryEntry)
                .filter(StatusHistoryEntry.application_id == application_id)
                .order_by(StatusHistoryEntry.changed_at, StatusHistoryEntry.id)
                .all()
            )

    def get_evaluation(self, application_id: int) -> Evaluation:
        with unit_of_work(self.session_factory) as db:
            evaluation = db.query(Evaluation).filter(Evaluation.application_id == application_id).first()
            if not evaluation:
                raise NotFoundError("Evaluation", application_id)
            return evaluation

    def list_applications(
        self,
        page: int = 1,
        per_page: int = 20,
        job_posting_id: Optional[int] = None,
        status: Optional[ApplicationStatus] = None,
        candidate_id: Optional[str] = None,
        department: Optional[str] = None,
    ) -> Tuple[List[Application], int]:
        """Return one page of applications (newest first) and the total count."""
        with unit_of_work(self.session_factory) as db:
            query = db.query(Application)
            if job_posting_id is not None:
                query = query.filter(Application.job_posting_id == job_posting_id)
            if status is not None:
                query = query.filter(Application.status == status)
            if candidate_id is not None:
                query = query.filter(Application.candidate_id == candidate_id)
            if department is not None:
                query = query.filter(Application.job_department == department)

            total = query.count()
            items = (
                query.order_by(Application.submitted_at.desc(), Application.id.desc())
                .offset((page - 1) * per_page)
                .limit(per_page)
                .all()
            )
            return items, total

    @staticmethod
    def _load_for_update(db: Session, application_id: int) -> Application:
        application = (
            db.query(Application)
            .filter(Application.id == application_id)
            .with_for_update()
            .first()
        )
        if not application:
            raise NotFoundError("Application", application_id)
        return application
