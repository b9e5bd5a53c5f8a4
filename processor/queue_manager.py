"""Queue manager for reliable job execution."""

import json
from datetime import timedelta
from typing import Optional, List

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from api.models import Job
from api.models.applications import utcnow
from processor.config import settings

logger = structlog.get_logger()


class QueueManager:
    """Manages the job queue with row locking.

    Claims use ``FOR UPDATE SKIP LOCKED`` where the database supports it, so
    several workers can poll the same table without double-claiming.
    """

    def __init__(self, db: Session):
        self.db = db
        self.max_attempts = settings.QUEUE_MAX_ATTEMPTS
        self.retry_base_delay = settings.QUEUE_RETRY_BASE_DELAY

    def enqueue(
        self,
        job_type: str,
        application_id: Optional[int] = None,
        priority: int = 0,
        scheduled_for=None,
        payload: Optional[dict] = None,
    ) -> int:
        """Add a job to the queue.

        Args:
            job_type: Type of job (evaluate_application)
            application_id: Associated application ID
            priority: Higher = processed first (default 0)
            scheduled_for: When to process (default now)
            payload: Additional job data as JSON

        Returns:
            Job ID
        """
        job = Job(
            job_type=job_type,
            application_id=application_id,
            priority=priority,
            status="pending",
            payload=json.dumps(payload) if payload else None,
            attempts=0,
            max_attempts=self.max_attempts,
            scheduled_for=scheduled_for or utcnow(),
            created_at=utcnow(),
        )
        self.db.add(job)
        self.db.commit()
        logger.info(
            "Job enqueued",
            job_id=job.id,
            job_type=job_type,
            application_id=application_id,
        )
        return job.id

    def claim_next(self) -> Optional[dict]:
        """Claim the next pending job that is due.

        Returns:
            Job data dict or None if no jobs available
        """
        job = (
            self.db.query(Job)
            .filter(Job.status == "pending", Job.scheduled_for <= utcnow())
            .order_by(Job.priority.desc(), Job.created_at.asc(), Job.id.asc())
            .with_for_update(skip_locked=True)
            .first()
        )
        if not job:
            self.db.rollback()
            return None

        job.status = "running"
        job.started_at = utcnow()
        job.attempts = (job.attempts or 0) + 1

        claimed = {
            "id": job.id,
            "job_type": job.job_type,
            "application_id": job.application_id,
            "priority": job.priority,
            "payload": json.loads(job.payload) if job.payload else None,
            "attempts": job.attempts,
            "max_attempts": job.max_attempts,
            "created_at": job.created_at,
            "scheduled_for": job.scheduled_for,
        }
        self.db.commit()

        logger.info(
            "Job claimed",
            job_id=claimed["id"],
            job_type=claimed["job_type"],
            attempt=claimed["attempts"],
        )
        return claimed

    def complete(self, job_id: int) -> None:
        """Mark a job as completed."""
        job = self.db.get(Job, job_id)
        if not job:
            logger.error("Job not found for completion", job_id=job_id)
            return
        job.status = "completed"
        job.completed_at = utcnow()
        self.db.commit()

        logger.info("Job completed", job_id=job_id)

    def fail(self, job_id: int, error: str, retryable: bool = True) -> None:
        """Mark a job as failed, schedule retry or move to dead letter.

        Uses exponential backoff: base_delay * 2^(attempts-1). Non-retryable
        failures go straight to dead letter.
        """
        job = self.db.get(Job, job_id)
        if not job:
            logger.error("Job not found for failure", job_id=job_id)
            return

        attempts = job.attempts or 0
        max_attempts = job.max_attempts or 3  # Default to 3 retries

        job.last_error = error
        if not retryable or attempts >= max_attempts:
            # Move to dead letter
            job.status = "dead"
            job.completed_at = utcnow()
            logger.warning("Job moved to dead letter", job_id=job_id, error=error)
        else:
            # Schedule retry with exponential backoff
            delay_seconds = self.retry_base_delay * (2 ** (max(attempts, 1) - 1))
            next_attempt = utcnow() + timedelta(seconds=delay_seconds)
            job.status = "pending"
            job.scheduled_for = next_attempt
            job.started_at = None
            logger.info(
                "Job scheduled for retry",
                job_id=job_id,
                attempt=attempts,
                next_attempt=next_attempt.isoformat(),
            )

        self.db.commit()

    def get_status(self) -> dict:
        """Get queue status counts."""
        status = {"pending": 0, "running": 0, "completed": 0, "dead": 0}
        rows = self.db.query(Job.status, func.count(Job.id)).group_by(Job.status).all()
        for job_status, count in rows:
            status[job_status] = count
        return status

    def get_pending_count(self) -> int:
        """Get count of pending jobs."""
        return self.db.query(Job).filter(Job.status == "pending").count()

    def get_running_jobs(self) -> List[dict]:
        """Get currently running jobs."""
        jobs = self.db.query(Job).filter(Job.status == "running").order_by(Job.started_at).all()
        return [
            {
                "id": job.id,
                "job_type": job.job_type,
                "application_id": job.application_id,
                "attempts": job.attempts,
                "started_at": job.started_at,
            }
            for job in jobs
        ]

    def retry_dead_job(self, job_id: int) -> bool:
        """Retry a dead letter job."""
        job = self.db.query(Job).filter(Job.id == job_id, Job.status == "dead").first()
        if not job:
            return False

        job.status = "pending"
        job.attempts = 0
        job.last_error = None
        job.scheduled_for = utcnow()
        job.started_at = None
        job.completed_at = None
        self.db.commit()

        logger.info("Dead job retried", job_id=job_id)
        return True

    def clear_completed(self, older_than_hours: int = 24) -> int:
        """Clear completed jobs older than specified hours."""
        cutoff = utcnow() - timedelta(hours=older_than_hours)
        count = (
            self.db.query(Job)
            .filter(Job.status == "completed", Job.completed_at < cutoff)
            .delete(synchronize_session=False)
        )
        self.db.commit()

        if count > 0:
            logger.info("Cleared completed jobs", count=count, older_than_hours=older_than_hours)
        return count

    def recover_stuck_jobs(self, stuck_threshold_minutes: int = 30) -> int:
        """Reset jobs stuck in 'running' status back to 'pending'.

        Jobs can get stuck if a worker crashes mid-processing.

        Args:
            stuck_threshold_minutes: Minutes after which a running job is considered stuck

        Returns:
            Number of jobs recovered
        """
        cutoff = utcnow() - timedelta(minutes=stuck_threshold_minutes)
        count = (
            self.db.query(Job)
            .filter(Job.status == "running", Job.started_at < cutoff)
            .update(
                {
                    Job.status: "pending",
                    Job.started_at: None,
                    Job.last_error: "Recovered from stuck state (worker likely crashed)",
                },
                synchronize_session=False,
            )
        )
        self.db.commit()

        if count > 0:
            logger.warning("Recovered stuck jobs", count=count, threshold_minutes=stuck_threshold_minutes)
        return count
