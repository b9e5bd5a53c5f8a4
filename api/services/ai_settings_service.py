"""Per-department AI settings and threshold calibration."""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from api.config.database import SessionLocal, run_in_transaction, unit_of_work
from api.middleware.error_handler import NotFoundError, ValidationAPIError
from api.models import AISettings, Application
from api.models.applications import utcnow
from api.services.transitions import ADVANCED_STATUSES, ApplicationStatus

logger = structlog.get_logger()

# Calibration constants
DEFAULT_ACCEPTED_MEAN = 75.0
DEFAULT_REJECTED_MEAN = 40.0
ACCEPT_FLOOR = 75.0
REJECT_CEILING = 45.0
MARGIN = 5.0
OVERLAP_REJECT_FLOOR = 40.0
OVERLAP_GAP = 10.0

UPDATABLE_FIELDS = (
    "auto_accept_threshold",
    "auto_reject_threshold",
    "review_threshold",
    "is_active",
    "is_auto_accept_enabled",
    "is_auto_reject_enabled",
    "is_self_calibrating",
)


def validate_thresholds(
    accept: Optional[float],
    reject: Optional[float],
    review: Optional[float] = None,
) -> None:
    """Raise ValidationAPIError unless every threshold is in 0-100 and accept > reject."""
    for name, value in (
        ("autoAcceptThreshold", accept),
        ("autoRejectThreshold", reject),
        ("reviewThreshold", review),
    ):
        if value is not None and not 0 <= value <= 100:
            raise ValidationAPIError(f"{name} must be between 0 and 100", field=name)

    if accept is not None and reject is not None and accept <= reject:
        raise ValidationAPIError(
            "Auto accept threshold must be greater than auto reject threshold",
            field="autoAcceptThreshold",
        )


def compute_calibrated_thresholds(accepted_scores: List[float], rejected_scores: List[float]) -> Dict[str, float]:
    """New accept/reject/review thresholds from outcome scores.

    Missing categories fall back to DEFAULT_ACCEPTED_MEAN / DEFAULT_REJECTED_MEAN.
    """
    mean_accepted = sum(accepted_scores) / len(accepted_scores) if accepted_scores else DEFAULT_ACCEPTED_MEAN
    mean_rejected = sum(rejected_scores) / len(rejected_scores) if rejected_scores else DEFAULT_REJECTED_MEAN

    accept = max(ACCEPT_FLOOR, mean_accepted - MARGIN)
    reject = min(REJECT_CEILING, mean_rejected + MARGIN)
    if reject >= accept:
        reject = max(OVERLAP_REJECT_FLOOR, accept - OVERLAP_GAP)

    return {
        "auto_accept_threshold": accept,
        "auto_reject_threshold": reject,
        "review_threshold": (accept + reject) / 2,
    }


@dataclass
class CalibrationSummary:
    calibrated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"calibrated": self.calibrated, "skipped": self.skipped, "failed": self.failed}


class AISettingsService:
    """CRUD for AISettings plus the calibration engine.

    Every write validates the resulting threshold pair inside the same
    transaction that persists it.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def list_settings(self) -> List[AISettings]:
        with unit_of_work(self.session_factory) as db:
            return db.query(AISettings).order_by(AISettings.department).all()

    def get_settings(self, settings_id: int) -> AISettings:
        with unit_of_work(self.session_factory) as db:
            return self._get(db, settings_id)

    def get_by_department(self, department: str) -> AISettings:
        with unit_of_work(self.session_factory) as db:
            ai_settings = db.query(AISettings).filter(AISettings.department == department).first()
            if not ai_settings:
                raise NotFoundError("AI settings", department)
            return ai_settings

    def create_settings(
        self,
        department: str,
        auto_accept_threshold: float,
        auto_reject_threshold: float,
        review_threshold: Optional[float] = None,
        is_active: bool = True,
        is_auto_accept_enabled: bool = True,
        is_auto_reject_enabled: bool = True,
        is_self_calibrating: bool = False,
    ) -> AISettings:
        """Create settings for a department that has none.

        Raises:
            ValidationAPIError: Duplicate department or invalid thresholds
        """
        validate_thresholds(auto_accept_threshold, auto_reject_threshold, review_threshold)

        with unit_of_work(self.session_factory) as db:
            existing = db.query(AISettings).filter(AISettings.department == department).first()
            if existing:
                raise ValidationAPIError(f"AI settings already exist for department: {department}", field="department")

            if review_threshold is None:
                review_threshold = (auto_accept_threshold + auto_reject_threshold) / 2

            ai_settings = AISettings(
                department=department,
                auto_accept_threshold=auto_accept_threshold,
                auto_reject_threshold=auto_reject_threshold,
                review_threshold=review_threshold,
                is_active=is_active,
                is_auto_accept_enabled=is_auto_accept_enabled,
                is_auto_reject_enabled=is_auto_reject_enabled,
                is_self_calibrating=is_self_calibrating,
                last_calibration_date=utcnow(),
            )
            db.add(ai_settings)
            db.flush()
            logger.info(
                "AI settings created",
                department=department,
                accept=auto_accept_threshold,
                reject=auto_reject_threshold,
            )
            return ai_settings

    def update_settings(self, settings_id: int, **changes) -> AISettings:
        """Apply a partial update.

        The merged accept/reject pair is validated, not just the supplied
        fields, so a single-field update cannot invert the band.
        """
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationAPIError(f"Unknown settings fields: {', '.join(sorted(unknown))}")
        changes = {name: value for name, value in changes.items() if value is not None}

        def work(db: Session) -> AISettings:
            ai_settings = self._get(db, settings_id, lock=True)
            accept = changes.get("auto_accept_threshold", ai_settings.auto_accept_threshold)
            reject = changes.get("auto_reject_threshold", ai_settings.auto_reject_threshold)
            review = changes.get("review_threshold", ai_settings.review_threshold)
            validate_thresholds(accept, reject, review)

            for name, value in changes.items():
                setattr(ai_settings, name, value)
            logger.info("AI settings updated", department=ai_settings.department, fields=sorted(changes))
            return ai_settings

        return run_in_transaction(self.session_factory, work)

    def set_active(self, settings_id: int, active: bool) -> AISettings:
        def work(db: Session) -> AISettings:
            ai_settings = self._get(db, settings_id, lock=True)
            ai_settings.is_active = active
            logger.info("AI settings activation changed", department=ai_settings.department, active=active)
            return ai_settings

        return run_in_transaction(self.session_factory, work)

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    def calibrate(self, settings_id: int) -> AISettings:
        """Recalibrate one department now.

        Raises:
            NotFoundError: If the settings do not exist
            ValidationAPIError: If the department has no evaluated applications
        """

        def work(db: Session) -> AISettings:
            ai_settings = self._get(db, settings_id, lock=True)
            if not self._apply_calibration(db, ai_settings):
                raise ValidationAPIError(
                    f"Cannot calibrate: no evaluated applications for department {ai_settings.department}",
                    field="department",
                )
            return ai_settings

        return run_in_transaction(self.session_factory, work)

    def calibrate_all(self) -> CalibrationSummary:
        """Recalibrate every active self-calibrating department.

        Each department runs in its own transaction; a failure is recorded in
        the summary and the batch continues.
        """
        with unit_of_work(self.session_factory) as db:
            targets = [
                (row.id, row.department)
                for row in db.query(AISettings)
                .filter(AISettings.is_active.is_(True), AISettings.is_self_calibrating.is_(True))
                .order_by(AISettings.department)
                .all()
            ]

        summary = CalibrationSummary()
        logger.info("Calibration batch started", departments=len(targets))

        for settings_id, department in targets:

            def work(db: Session, settings_id: int = settings_id) -> bool:
                ai_settings = self._get(db, settings_id, lock=True)
                return self._apply_calibration(db, ai_settings)

            try:
                applied = run_in_transaction(self.session_factory, work)
            except Exception as e:
                logger.error("Calibration failed for department", department=department, error=str(e), exc_info=True)
                summary.failed[department] = str(e)
                continue

            if applied:
                summary.calibrated.append(department)
            else:
                logger.info("No evaluated applications, skipping calibration", department=department)
                summary.skipped.append(department)

        logger.info(
            "Calibration batch finished",
            calibrated=len(summary.calibrated),
            skipped=len(summary.skipped),
            failed=len(summary.failed),
        )
        return summary

    def _apply_calibration(self, db: Session, ai_settings: AISettings) -> bool:
        rows = (
            db.query(Application.status, Application.ai_score)
            .filter(
                Application.job_department == ai_settings.department,
                Application.ai_processed.is_(True),
            )
            .all()
        )
        if not rows:
            return False

        accepted = [score or 0.0 for status, score in rows if status in ADVANCED_STATUSES]
        rejected = [score or 0.0 for status, score in rows if status == ApplicationStatus.REJECTED]

        new_values = compute_calibrated_thresholds(accepted, rejected)
        validate_thresholds(
            new_values["auto_accept_threshold"],
            new_values["auto_reject_threshold"],
            new_values["review_threshold"],
        )

        for name, value in new_values.items():
            setattr(ai_settings, name, value)
        ai_settings.last_calibration_date = utcnow()

        logger.info(
            "AI settings calibrated",
            department=ai_settings.department,
            evaluations=len(rows),
            accepted=len(accepted),
            rejected=len(rejected),
            accept=new_values["auto_accept_threshold"],
            reject=new_values["auto_reject_threshold"],
        )
        return True

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def department_stats(self, department: str) -> dict:
        """Automation statistics for one department."""
        with unit_of_work(self.session_factory) as db:
            ai_settings = db.query(AISettings).filter(AISettings.department == department).first()
            stats = {"department": department, "settings_exist": ai_settings is not None}
            if ai_settings is None:
                return stats

            stats.update(
                is_active=ai_settings.is_active,
                auto_accept_threshold=ai_settings.auto_accept_threshold,
                auto_reject_threshold=ai_settings.auto_reject_threshold,
                last_calibration_date=ai_settings.last_calibration_date,
            )

            rows = (
                db.query(Application.status, Application.ai_score, Application.auto_decision)
                .filter(Application.job_department == department, Application.ai_processed.is_(True))
                .all()
            )
            if not rows:
                return stats

            total = len(rows)
            automatic = [row for row in rows if row.auto_decision]
            scores = [row.ai_score for row in rows if row.ai_score is not None]
            stats.update(
                total_evaluations=total,
                auto_decision_count=len(automatic),
                auto_decision_rate=len(automatic) / total * 100,
                auto_accept_count=sum(1 for row in automatic if row.status in ADVANCED_STATUSES),
                auto_reject_count=sum(1 for row in automatic if row.status == ApplicationStatus.REJECTED),
                average_score=sum(scores) / len(scores) if scores else None,
            )
            return stats

    @staticmethod
    def _get(db: Session, settings_id: int, lock: bool = False) -> AISettings:
        query = db.query(AISettings).filter(AISettings.id == settings_id)
        if lock:
            query = query.with_for_update()
        ai_settings = query.first()
        if not ai_settings:
            raise NotFoundError("AI settings", settings_id)
        return ai_settings
