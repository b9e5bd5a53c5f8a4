"""Shared fixtures: in-memory database, fake collaborators and factories."""

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")
os.environ.setdefault("HEARTBEAT_FILE", "/tmp/hireflow_test_heartbeat")

from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.config.database import Base
from api import models  # noqa: F401
from api.integrations import CandidateProfile, Document, JobPosting
from api.middleware.error_handler import DownstreamUnavailableError, NotFoundError
from api.models import Application
from api.models.applications import utcnow
from api.services.application_service import ApplicationService
from api.services.evaluation_service import EvaluationResult, EvaluationService
from api.services.transitions import ApplicationStatus


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# ----------------------------------------------------------------------
# Fake collaborators
# ----------------------------------------------------------------------


def complete_profile(candidate_id: str = "cand-1") -> CandidateProfile:
    return CandidateProfile(
        id=candidate_id,
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
        phone="+44 20 0000 0000",
        experiences=[{"employer": "Analytical Engines Ltd", "title": "Engineer"}],
        education=[{"institution": "University of London", "degree": "BSc"}],
        skills=["python", "sql"],
        summary="Engineer with a taste for numbers",
        years_of_experience=6,
    )


class FakeProfiles:
    def __init__(self):
        self.profiles: Dict[str, CandidateProfile] = {}
        self.error: Optional[Exception] = None
        self.calls: List[str] = []

    def add(self, profile: CandidateProfile) -> CandidateProfile:
        self.profiles[profile.id] = profile
        return profile

    async def get_profile(self, candidate_id: str) -> CandidateProfile:
        self.calls.append(candidate_id)
        if self.error:
            raise self.error
        if candidate_id not in self.profiles:
            raise NotFoundError("Candidate profile", candidate_id)
        return self.profiles[candidate_id]


class FakePostings:
    def __init__(self):
        self.postings: Dict[int, JobPosting] = {}
        self.error: Optional[Exception] = None

    def add(self, posting_id: int = 1, department: str = "Engineering", status: str = "PUBLISHED") -> JobPosting:
        posting = JobPosting(
            id=posting_id,
            title=f"Backend Engineer {posting_id}",
            department=department,
            status=status,
            description="Build services",
            requirements=["python"],
        )
        self.postings[posting_id] = posting
        return posting

    async def get_posting(self, posting_id: int) -> JobPosting:
        if self.error:
            raise self.error
        if posting_id not in self.postings:
            raise NotFoundError("Job posting", posting_id)
        return self.postings[posting_id]


class FakeDocuments:
    def __init__(self):
        self.documents: Dict[int, Document] = {}

    def add(self, document_id: int, document_type: Optional[str] = "RESUME") -> Document:
        document = Document(id=document_id, document_type=document_type)
        self.documents[document_id] = document
        return document

    async def get_document(self, document_id: int) -> Document:
        if document_id not in self.documents:
            raise NotFoundError("Document", document_id)
        return self.documents[document_id]


class FakeScoring:
    def __init__(self, score: float = 70.0):
        self.score_value = score
        self.error: Optional[Exception] = None
        self.calls = 0

    async def score(self, candidate, posting, message=None) -> EvaluationResult:
        self.calls += 1
        if self.error:
            raise self.error
        return EvaluationResult.from_payload(
            {
                "overallScore": self.score_value,
                "categoryScores": {"skills": self.score_value},
                "recommendation": "REVIEW",
                "justification": "Fake scoring",
                "strengths": ["tests"],
                "weaknesses": [],
            },
            model_used="fake-model",
        )


class FakeBroker:
    def __init__(self):
        self.published: List[dict] = []
        self.fail_for: set = set()
        self.closed = False

    def publish(self, routing_key: str, payload: dict, headers: Optional[dict] = None) -> None:
        if routing_key in self.fail_for or payload.get("applicationId") in self.fail_for:
            raise ConnectionError(f"broker refused {routing_key}")
        self.published.append({"routing_key": routing_key, "payload": payload, "headers": headers or {}})

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def profiles():
    fake = FakeProfiles()
    fake.add(complete_profile())
    return fake


@pytest.fixture
def postings():
    fake = FakePostings()
    fake.add(1)
    return fake


@pytest.fixture
def documents():
    fake = FakeDocuments()
    fake.add(10, "RESUME")
    fake.add(11, "COVER_LETTER")
    return fake


@pytest.fixture
def scoring():
    return FakeScoring()


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def application_service(session_factory, profiles, postings, documents):
    return ApplicationService(session_factory, profiles=profiles, postings=postings, documents=documents)


@pytest.fixture
def evaluation_service(session_factory):
    return EvaluationService(session_factory)


@pytest.fixture
def make_application(session_factory):
    """Insert an application directly in a given status."""
    counter = {"n": 0}

    def _make(
        status: ApplicationStatus = ApplicationStatus.SUBMITTED,
        department: Optional[str] = "Engineering",
        ai_score: Optional[float] = None,
        ai_processed: bool = False,
        auto_decision: bool = False,
        candidate_id: Optional[str] = None,
        resume_document_id: Optional[int] = 10,
    ) -> Application:
        counter["n"] += 1
        n = counter["n"]
        session = session_factory()
        try:
            now = utcnow()
            application = Application(
                reference=f"APP-TEST-{n:04d}",
                candidate_id=candidate_id or f"cand-{n}",
                job_posting_id=1000 + n,
                resume_document_id=resume_document_id,
                candidate_name="Test Candidate",
                job_title="Backend Engineer",
                job_department=department,
                status=status,
                ai_processed=ai_processed,
                ai_score=ai_score,
                auto_decision=auto_decision,
                is_shortlisted=status == ApplicationStatus.SHORTLISTED,
                submitted_at=now,
                last_status_changed_at=now,
                last_status_changed_by="seed",
            )
            application.record_history(None, status, "seed", "Seeded", changed_at=now)
            session.add(application)
            session.commit()
            return application
        finally:
            session.close()

    return _make


def unavailable(service: str = "candidate-service") -> DownstreamUnavailableError:
    return DownstreamUnavailableError(service, "connection refused")
