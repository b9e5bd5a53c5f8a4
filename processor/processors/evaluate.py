"""Evaluate processor for AI screening of submitted applications."""

from typing import Callable, Optional

from sqlalchemy.orm import Session

from api.integrations import CandidateProfileClient, JobPostingClient
from api.models import Application
from api.services.evaluation_service import EvaluationService
from processor.integrations.scoring import ScoringClient
from processor.processors.base import BaseProcessor
from processor.queue_manager import QueueManager


class EvaluateProcessor(BaseProcessor):
    """Scores an application with Claude and applies the auto-decision."""

    job_type = "evaluate_application"

    def __init__(
        self,
        db: Session,
        queue: QueueManager,
        session_factory: Optional[Callable[[], Session]] = None,
        profiles: Optional[CandidateProfileClient] = None,
        postings: Optional[JobPostingClient] = None,
        scoring: Optional[ScoringClient] = None,
        evaluations: Optional[EvaluationService] = None,
    ):
        super().__init__(db, queue, session_factory)
        self.profiles = profiles or CandidateProfileClient()
        self.postings = postings or JobPostingClient()
        self.scoring = scoring or ScoringClient()
        self.evaluations = evaluations or EvaluationService(self.session_factory)

    async def process(
        self,
        application_id: Optional[int] = None,
        payload: Optional[dict] = None,
    ) -> None:
        """Process an evaluation job.

        Args:
            application_id: Application to evaluate
            payload: Optional {"force": true} to re-evaluate an already scored application
        """
        if not application_id:
            raise ValueError("application_id is required")

        force = bool((payload or {}).get("force"))

        application = self.db.get(Application, application_id)
        if not application:
            raise ValueError(f"Application {application_id} not found")

        if application.ai_processed and not force:
            self.logger.info("Application already evaluated, skipping", application_id=application_id)
            return

        if not application.resume_document_id:
            self.logger.warning("Application has no resume, skipping evaluation", application_id=application_id)
            return

        candidate_id = application.candidate_id
        job_posting_id = application.job_posting_id
        candidate_message = application.candidate_message

        self.logger.info("Starting application evaluation", application_id=application_id, force=force)

        started = self.evaluations.start_review(application_id)

        try:
            profile = await self.profiles.get_profile(candidate_id)
            posting = await self.postings.get_posting(job_posting_id)
            result = await self.scoring.score(
                candidate=profile.to_scoring_input(),
                posting=posting.to_scoring_input(),
                message=candidate_message,
            )
        except Exception as e:
            self.logger.error("Evaluation failed", application_id=application_id, error=str(e))
            # Only undo the review transition this job made
            if started:
                self.evaluations.revert_after_failure(application_id, str(e))
            raise

        updated = self.evaluations.reconcile(application_id, result)

        self.logger.info(
            "Evaluation complete",
            application_id=application_id,
            score=result.overall_score,
            status=updated.status.value,
            auto_decision=updated.auto_decision,
        )
