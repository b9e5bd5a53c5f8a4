"""Worker that runs queued application jobs."""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Type

import structlog
from sqlalchemy.orm import Session

from api.middleware.error_handler import InvalidTransitionError, NotFoundError, ValidationAPIError
from processor.config import settings
from processor.database import SessionLocal
from processor.processors.base import BaseProcessor
from processor.queue_manager import QueueManager

logger = structlog.get_logger()

# Business-rule failures; retrying cannot change the outcome
PERMANENT_ERRORS = (ValueError, NotFoundError, ValidationAPIError, InvalidTransitionError)


@dataclass
class ClaimedJob:
    """A job as handed to a processor."""

    id: int
    job_type: str
    application_id: Optional[int] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    attempts: int = 1

    @classmethod
    def from_claim(cls, claimed: dict) -> "ClaimedJob":
        payload = claimed.get("payload")
        return cls(
            id=claimed["id"],
            job_type=claimed["job_type"],
            application_id=claimed.get("application_id"),
            payload=payload if isinstance(payload, dict) else {},
            attempts=claimed.get("attempts") or 1,
        )

    @property
    def force(self) -> bool:
        return bool(self.payload.get("force"))


class Worker:
    """Claims jobs and runs them on registered processors, at most
    QUEUE_MAX_CONCURRENCY at a time, each with its own session.

    Transient failures (collaborator outages, scoring timeouts) are retried by
    the queue with backoff. Business-rule failures are dead-lettered at once.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        processors: Optional[Dict[str, Type[BaseProcessor]]] = None,
    ):
        self.session_factory = session_factory
        self.processors: Dict[str, Type[BaseProcessor]] = dict(processors or {})
        self.running = False
        self.active_jobs: Dict[int, asyncio.Task] = {}
        self.max_concurrency = settings.QUEUE_MAX_CONCURRENCY
        self.poll_interval = settings.QUEUE_POLL_INTERVAL
        self.maintenance_interval = settings.QUEUE_MAINTENANCE_INTERVAL
        self._last_maintenance: Optional[float] = None

    def register_processor(self, processor_class: Type[BaseProcessor]) -> None:
        self.processors[processor_class.job_type] = processor_class

    async def process_job(self, claimed: dict) -> None:
        """Run one claimed job and record the outcome on the queue."""
        job = ClaimedJob.from_claim(claimed)
        log = logger.bind(job_id=job.id, job_type=job.job_type, application_id=job.application_id)

        db = self.session_factory()
        try:
            queue = QueueManager(db)
            processor_class = self.processors.get(job.job_type)
            if processor_class is None:
                log.error("No processor registered for job")
                queue.fail(job.id, f"No processor registered for job type: {job.job_type}")
                return

            log.info("Processing job", attempt=job.attempts, force=job.force)
            try:
                processor = processor_class(db, queue, self.session_factory)
                await processor.process(application_id=job.application_id, payload=job.payload)
            except PERMANENT_ERRORS as e:
                log.warning("Job failed permanently", error=str(e))
                queue.fail(job.id, str(e), retryable=False)
            except Exception as e:
                log.error("Job failed", error=str(e), exc_info=True)
                queue.fail(job.id, str(e))
            else:
                queue.complete(job.id)
        finally:
            db.close()

    def _start(self, claimed: dict) -> None:
        job_id = claimed["id"]
        task = asyncio.create_task(self.process_job(claimed), name=f"job-{job_id}")
        self.active_jobs[job_id] = task
        task.add_done_callback(lambda _: self.active_jobs.pop(job_id, None))

    def _claim(self) -> Optional[dict]:
        db = self.session_factory()
        try:
            return QueueManager(db).claim_next()
        finally:
            db.close()

    async def run(self) -> None:
        """Main worker loop."""
        self.running = True
        logger.info(
            "Worker started",
            max_concurrency=self.max_concurrency,
            job_types=sorted(self.processors),
        )

        while self.running:
            if self._maintenance_due():
                await asyncio.to_thread(self.run_maintenance)

            if len(self.active_jobs) >= self.max_concurrency:
                await asyncio.wait(list(self.active_jobs.values()), return_when=asyncio.FIRST_COMPLETED)
                continue

            claimed = await asyncio.to_thread(self._claim)
            if claimed is None:
                await asyncio.sleep(self.poll_interval)
                continue
            self._start(claimed)

        logger.info("Worker stopped")

    def _maintenance_due(self) -> bool:
        now = time.monotonic()
        if self._last_maintenance is not None and now - self._last_maintenance < self.maintenance_interval:
            return False
        self._last_maintenance = now
        return True

    def run_maintenance(self) -> Dict[str, int]:
        """Requeue jobs stuck in running and purge old completed ones."""
        db = self.session_factory()
        try:
            queue = QueueManager(db)
            recovered = queue.recover_stuck_jobs(stuck_threshold_minutes=settings.QUEUE_STUCK_THRESHOLD_MINUTES)
            cleared = queue.clear_completed(older_than_hours=settings.QUEUE_COMPLETED_RETENTION_HOURS)
        except Exception as e:
            logger.error("Queue maintenance failed", error=str(e))
            return {"recovered": 0, "cleared": 0}
        finally:
            db.close()

        if recovered or cleared:
            logger.info("Queue maintenance", recovered=recovered, cleared=cleared)
        return {"recovered": recovered, "cleared": cleared}

    async def stop(self) -> None:
        """Stop claiming and wait for in-flight jobs."""
        self.running = False
        if self.active_jobs:
            logger.info("Waiting for active jobs to complete", count=len(self.active_jobs))
            await asyncio.gather(*list(self.active_jobs.values()), return_exceptions=True)
        logger.info("Worker shutdown complete")

    def get_status(self) -> dict:
        db = self.session_factory()
        try:
            queue_status = QueueManager(db).get_status()
        finally:
            db.close()

        return {
            "running": self.running,
            "active_jobs": len(self.active_jobs),
            "max_concurrency": self.max_concurrency,
            "job_types": sorted(self.processors),
            "queue_status": queue_status,
        }
