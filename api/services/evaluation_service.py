"""Evaluation reconciler.

Turns an AI scoring result into an Evaluation row and, when the score crosses
a department threshold, an automatic status decision on the application.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from api.config.database import SessionLocal, run_in_transaction
from api.config.settings import settings
from api.middleware.error_handler import NotFoundError
from api.models import AISettings, Application, Evaluation, Recommendation
from api.services.outbox import OutboxPublisher, outbox
from api.services.transitions import ApplicationStatus

logger = structlog.get_logger()

AI_ACTOR = "AI"
SYSTEM_ACTOR = "SYSTEM"

# Statuses from which the AI may still decide
REVIEWABLE_STATUSES = frozenset({ApplicationStatus.SUBMITTED, ApplicationStatus.UNDER_REVIEW})


@dataclass
class EvaluationResult:
    """Outcome of one AI scoring call."""

    overall_score: float
    category_scores: Dict[str, float] = field(default_factory=dict)
    recommendation: Recommendation = Recommendation.REVIEW
    justification: Optional[str] = None
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    model_used: Optional[str] = None
    raw_response: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any], model_used: Optional[str] = None) -> "EvaluationResult":
        """Build from the camelCase JSON the scoring model returns. Scores are clamped to 0-100."""
        categories = data.get("categoryScores") or {}
        return cls(
            overall_score=clamp_score(data.get("overallScore")),
            category_scores={str(k): clamp_score(v) for k, v in categories.items()},
            recommendation=Recommendation.parse(data.get("recommendation")),
            justification=data.get("justification"),
            strengths=[str(s) for s in data.get("strengths") or []],
            weaknesses=[str(w) for w in data.get("weaknesses") or []],
            model_used=data.get("modelUsed") or model_used,
        )


@dataclass(frozen=True)
class Thresholds:
    """Auto-decision cut-offs in effect for one department."""

    accept: float
    reject: float
    accept_enabled: bool = True
    reject_enabled: bool = True
    source: str = "default"


@dataclass
class Decision:
    """Target status for a score, and whether the AI made the call."""

    status: ApplicationStatus
    automatic: bool


def clamp_score(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(100.0, score))


def decide(score: float, thresholds: Thresholds) -> Decision:
    """First match wins. Both boundaries are inclusive."""
    if thresholds.accept_enabled and score >= thresholds.accept:
        return Decision(ApplicationStatus.SHORTLISTED, True)
    if thresholds.reject_enabled and score <= thresholds.reject:
        return Decision(ApplicationStatus.REJECTED, True)
    return Decision(ApplicationStatus.UNDER_REVIEW, False)


def resolve_thresholds(db: Session, department: Optional[str]) -> Thresholds:
    """Active department settings, else the global defaults."""
    if department:
        ai_settings = (
            db.query(AISettings)
            .filter(AISettings.department == department, AISettings.is_active.is_(True))
            .first()
        )
        if ai_settings:
            return Thresholds(
                accept=ai_settings.auto_accept_threshold,
                reject=ai_settings.auto_reject_threshold,
                accept_enabled=ai_settings.is_auto_accept_enabled,
                reject_enabled=ai_settings.is_auto_reject_enabled,
                source=department,
            )
    return Thresholds(
        accept=settings.AI_AUTO_THRESHOLD_ACCEPT,
        reject=settings.AI_AUTO_THRESHOLD_REJECT,
    )


class EvaluationService:
    """Applies AI evaluation results to applications."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        publisher: OutboxPublisher = outbox,
    ):
        self.session_factory = session_factory
        self.publisher = publisher
        self.max_attempts = settings.TRANSITION_MAX_ATTEMPTS

    def start_review(self, application_id: int) -> bool:
        """Optimistically move a SUBMITTED application to UNDER_REVIEW.

        Returns True if the status changed.
        """

        def work(db: Session) -> bool:
            application = self._load_for_update(db, application_id)
            if application.status != ApplicationStatus.SUBMITTED:
                return False
            reason = "Application is under AI review"
            previous = application.transition_to(ApplicationStatus.UNDER_REVIEW, SYSTEM_ACTOR, reason, system=True)
            self.publisher.record_status_change(db, application, previous, SYSTEM_ACTOR, reason)
            return True

        return run_in_transaction(self.session_factory, work, self.max_attempts)

    def reconcile(self, application_id: int, result: EvaluationResult) -> Application:
        """Store ``result`` and apply the resulting decision.

        The evaluation row is upserted by application id. If the application
        has already left review (a human decided first, or it was withdrawn),
        the evaluation is stored and nothing else changes.

        Raises:
            NotFoundError: If the application does not exist
        """

        def work(db: Session) -> Application:
            application = self._load_for_update(db, application_id)
            log = logger.bind(application_id=application_id, score=result.overall_score)

            evaluation = db.query(Evaluation).filter(Evaluation.application_id == application_id).first()
            if evaluation is None:
                evaluation = Evaluation(application_id=application_id)
                db.add(evaluation)
                log.debug("Creating evaluation")
            else:
                log.info("Overwriting existing evaluation", evaluation_id=evaluation.id)

            evaluation.overall_score = result.overall_score
            evaluation.category_scores = json.dumps(result.category_scores)
            evaluation.recommendation = result.recommendation
            evaluation.justification = result.justification
            evaluation.strengths = json.dumps(result.strengths)
            evaluation.weaknesses = json.dumps(result.weaknesses)
            evaluation.model_used = result.model_used
            evaluation.raw_response = result.raw_response

            thresholds = resolve_thresholds(db, application.job_department)
            decision = decide(result.overall_score, thresholds)

            application.ai_processed = True
            application.ai_score = result.overall_score

            if application.status not in REVIEWABLE_STATUSES:
                log.warning(
                    "Application already past review, storing evaluation without decision",
                    status=application.status.value,
                )
                evaluation.exceeded_auto_threshold = False
                application.auto_decision = False
                return application

            evaluation.exceeded_auto_threshold = decision.automatic
            application.auto_decision = decision.automatic

            if application.status == ApplicationStatus.SUBMITTED:
                reason = "Application is under AI review"
                previous = application.transition_to(
                    ApplicationStatus.UNDER_REVIEW, SYSTEM_ACTOR, reason, system=True
                )
                self.publisher.record_status_change(db, application, previous, SYSTEM_ACTOR, reason)

            mode = "Automatic" if decision.automatic else "Assisted"
            reason = f"{mode} AI decision - Score: {result.overall_score:g}/100"
            previous = application.transition_to(
                decision.status,
                AI_ACTOR,
                reason,
                system=True,
                automatic=decision.automatic,
            )
            if previous is not None:
                self.publisher.record_status_change(
                    db, application, previous, AI_ACTOR, reason, automatic=decision.automatic
                )

            log.info(
                "Evaluation reconciled",
                recommendation=result.recommendation.value,
                decision=decision.status.value,
                auto_decision=decision.automatic,
                thresholds=thresholds.source,
            )
            return application

        return run_in_transaction(self.session_factory, work, self.max_attempts)

    def revert_after_failure(self, application_id: int, error: str) -> bool:
        """Put an application stuck in UNDER_REVIEW back to SUBMITTED.

        Skipped (returns False) when the status has moved on since the
        optimistic review transition, e.g. a recruiter decided meanwhile.
        """

        def work(db: Session) -> bool:
            application = self._load_for_update(db, application_id)
            reason = f"AI evaluation failed: {error}"
            if not application.revert_review(SYSTEM_ACTOR, reason):
                logger.warning(
                    "Skipping revert, application no longer under review",
                    application_id=application_id,
                    status=application.status.value,
                )
                return False
            self.publisher.record_status_change(
                db, application, ApplicationStatus.UNDER_REVIEW, SYSTEM_ACTOR, reason
            )
            logger.warning("Application reverted to SUBMITTED", application_id=application_id, error=error)
            return True

        return run_in_transaction(self.session_factory, work, self.max_attempts)

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
