"""Scheduler for periodic threshold calibration."""

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog
from sqlalchemy.orm import Session

from api.models import AISettings
from api.models.applications import utcnow
from api.services.ai_settings_service import AISettingsService
from processor.config import settings
from processor.database import SessionLocal

logger = structlog.get_logger()


class Scheduler:
    """Periodically checks whether department thresholds are due for calibration."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        ai_settings: Optional[AISettingsService] = None,
    ):
        """Initialize scheduler.

        Args:
            session_factory: Factory for database sessions
            ai_settings: Service that performs the calibration
        """
        self.session_factory = session_factory
        self.ai_settings = ai_settings or AISettingsService(session_factory)
        self.running = False
        self.interval = settings.SCHEDULER_INTERVAL
        self.calibration_interval = timedelta(hours=settings.CALIBRATION_INTERVAL_HOURS)
        self.last_run: Optional[datetime] = None
        self.last_calibration: Optional[datetime] = None
        self.last_summary: Optional[dict] = None

    async def run(self) -> None:
        """Main scheduler loop."""
        self.running = True
        self.last_calibration = self._last_recorded_calibration()
        logger.info(
            "Scheduler started",
            interval=self.interval,
            calibration_interval_hours=settings.CALIBRATION_INTERVAL_HOURS,
            last_calibration=self.last_calibration.isoformat() if self.last_calibration else None,
        )

        while self.running:
            try:
                await self.check_for_work()
                self.last_run = utcnow()
            except Exception as e:
                logger.error("Scheduler error", error=str(e), exc_info=True)

            await asyncio.sleep(self.interval)

        logger.info("Scheduler stopped")

    async def stop(self) -> None:
        """Stop the scheduler."""
        self.running = False

    async def check_for_work(self) -> None:
        """Run calibration if the interval has elapsed."""
        if self.calibration_due():
            await asyncio.to_thread(self.run_calibration)

    def calibration_due(self, now: Optional[datetime] = None) -> bool:
        if self.last_calibration is None:
            return True
        return (now or utcnow()) - self.last_calibration >= self.calibration_interval

    def run_calibration(self) -> dict:
        """Calibrate every active, self-calibrating department.

        Returns:
            Summary with calibrated, skipped and failed departments
        """
        logger.info("Running scheduled calibration")
        summary = self.ai_settings.calibrate_all().to_dict()
        self.last_calibration = utcnow()
        self.last_summary = summary

        logger.info(
            "Scheduled calibration complete",
            calibrated=len(summary["calibrated"]),
            skipped=len(summary["skipped"]),
            failed=len(summary["failed"]),
        )
        return summary

    def _last_recorded_calibration(self) -> Optional[datetime]:
        """Oldest calibration among departments the batch covers.

        None (run now) when any such department was never calibrated. Rows
        outside the batch, and newer manual calibrations, do not push the
        next run back for everyone else.
        """
        db = self.session_factory()
        try:
            dates = [
                row.last_calibration_date
                for row in db.query(AISettings.last_calibration_date)
                .filter(AISettings.is_active.is_(True), AISettings.is_self_calibrating.is_(True))
                .all()
            ]
        except Exception as e:
            logger.warning("Could not read last calibration date", error=str(e))
            return None
        finally:
            db.close()

        if not dates or any(d is None for d in dates):
            return None
        return min(dates)

    def get_status(self) -> dict:
        return {
            "running": self.running,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_calibration": self.last_calibration.isoformat() if self.last_calibration else None,
            "last_summary": self.last_summary,
        }
