"""Base processor class for all job processors."""

from abc import ABC, abstractmethod
from typing import Callable, Optional

import structlog
from sqlalchemy.orm import Session

from processor.database import SessionLocal
from processor.queue_manager import QueueManager


class BaseProcessor(ABC):
    """Abstract base class for job processors."""

    # Override in subclasses
    job_type: str = "base"

    def __init__(
        self,
        db: Session,
        queue: QueueManager,
        session_factory: Optional[Callable[[], Session]] = None,
    ):
        """Initialize processor with database session and queue manager.

        Args:
            db: SQLAlchemy session owned by the worker for this job
            queue: Queue manager for enqueueing follow-up jobs
            session_factory: Factory for the short transactions domain services open
        """
        self.db = db
        self.queue = queue
        self.session_factory = session_factory or SessionLocal
        self.logger = structlog.get_logger().bind(processor=self.job_type)

    @abstractmethod
    async def process(
        self,
        application_id: Optional[int] = None,
        payload: Optional[dict] = None,
    ) -> None:
        """Process a job.

        Args:
            application_id: ID of the application to process
            payload: Additional job data

        Raises:
            Exception: If processing fails (will be caught by worker for retry)
        """
        pass
