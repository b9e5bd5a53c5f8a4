"""Clients for collaborator services (profiles, postings, documents)."""

from api.integrations.candidates import CandidateProfile, CandidateProfileClient
from api.integrations.documents import Document, DocumentClient
from api.integrations.job_postings import JobPosting, JobPostingClient

__all__ = [
    "CandidateProfile",
    "CandidateProfileClient",
    "Document",
    "DocumentClient",
    "JobPosting",
    "JobPostingClient",
]
