"""Job posting lookup with a small TTL cache."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from api.config.settings import settings
from api.integrations.base import LookupClient
from api.services.cache import TTLCache

logger = structlog.get_logger()

PUBLISHED = "PUBLISHED"


@dataclass
class JobPosting:
    id: int
    title: str
    department: Optional[str]
    status: str
    description: Optional[str] = None
    requirements: Optional[List[str]] = None

    @property
    def is_published(self) -> bool:
        return (self.status or "").upper() == PUBLISHED

    @classmethod
    def from_payload(cls, posting_id: int, data: Dict[str, Any]) -> "JobPosting":
        requirements = data.get("requirements") or data.get("requiredSkills")
        return cls(
            id=int(data.get("id") or posting_id),
            title=data.get("title") or "",
            department=data.get("department"),
            status=str(data.get("status") or ""),
            description=data.get("description"),
            requirements=list(requirements) if requirements else None,
        )

    def to_scoring_input(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "department": self.department,
            "description": self.description,
            "requirements": self.requirements or [],
        }


class JobPostingClient(LookupClient):
    """Reads job postings from the job posting service.

    Postings are cached by id for LOOKUP_CACHE_TTL_SECONDS. Call
    ``invalidate`` when a posting is known to have changed.
    """

    service_name = "job-posting-service"

    def __init__(self, base_url: Optional[str] = None, cache: Optional[TTLCache] = None, **kwargs):
        super().__init__(base_url or settings.JOB_POSTING_SERVICE_URL, **kwargs)
        self.cache = cache if cache is not None else TTLCache(settings.LOOKUP_CACHE_TTL_SECONDS)

    async def get_posting(self, posting_id: int) -> JobPosting:
        """Fetch a posting, from cache when fresh.

        Raises:
            NotFoundError: If the posting does not exist
            DownstreamUnavailableError: If the service cannot be reached
        """
        cached = self.cache.get(posting_id)
        if cached is not None:
            return cached

        data = await self._get_json(f"/job-postings/{posting_id}", "Job posting", posting_id)
        posting = JobPosting.from_payload(posting_id, data)
        self.cache.set(posting_id, posting)
        return posting

    def invalidate(self, posting_id: Optional[int] = None) -> None:
        self.cache.invalidate(posting_id)
        logger.debug("Job posting cache invalidated", posting_id=posting_id)
