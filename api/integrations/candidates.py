"""Candidate profile lookup."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from api.config.settings import settings
from api.integrations.base import LookupClient


@dataclass
class CandidateProfile:
    """The parts of a candidate profile the application service needs."""

    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    experiences: List[Dict[str, Any]] = field(default_factory=list)
    education: List[Dict[str, Any]] = field(default_factory=list)
    skills: List[str] = field(default_factory=list)
    summary: Optional[str] = None
    years_of_experience: Optional[int] = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def missing_fields(self) -> List[str]:
        """Names of required profile sections that are empty."""
        missing = []
        for name in ("first_name", "last_name", "email", "phone"):
            value = getattr(self, name)
            if not value or not str(value).strip():
                missing.append(name)
        if not self.experiences:
            missing.append("experiences")
        if not self.education:
            missing.append("education")
        if not self.skills:
            missing.append("skills")
        return missing

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()

    @classmethod
    def from_payload(cls, candidate_id: str, data: Dict[str, Any]) -> "CandidateProfile":
        personal = data.get("personalInfo") or {}
        return cls(
            id=str(data.get("id") or candidate_id),
            first_name=personal.get("firstName") or data.get("firstName"),
            last_name=personal.get("lastName") or data.get("lastName"),
            email=personal.get("email") or data.get("email"),
            phone=personal.get("phone") or data.get("phone"),
            experiences=list(data.get("experiences") or []),
            education=list(data.get("educationHistory") or data.get("education") or []),
            skills=[str(s) for s in data.get("skills") or []],
            summary=data.get("profileSummary"),
            years_of_experience=data.get("yearsOfExperience"),
        )

    def to_scoring_input(self) -> Dict[str, Any]:
        return {
            "name": self.full_name,
            "summary": self.summary,
            "yearsOfExperience": self.years_of_experience,
            "skills": self.skills,
            "experiences": self.experiences,
            "education": self.education,
        }


class CandidateProfileClient(LookupClient):
    """Reads candidate profiles from the candidate service."""

    service_name = "candidate-service"

    def __init__(self, base_url: Optional[str] = None, **kwargs):
        super().__init__(base_url or settings.CANDIDATE_SERVICE_URL, **kwargs)

    async def get_profile(self, candidate_id: str) -> CandidateProfile:
        """Fetch a profile.

        Raises:
            NotFoundError: If the candidate does not exist
            DownstreamUnavailableError: If the service cannot be reached
        """
        data = await self._get_json(f"/candidates/{candidate_id}", "Candidate profile", candidate_id)
        return CandidateProfile.from_payload(candidate_id, data)
