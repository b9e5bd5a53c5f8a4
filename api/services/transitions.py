"""Application status state machine.

The edge table below is the single source of truth for which status changes
are legal. Lookups are pure; nothing here touches the database.
"""

from enum import Enum
from typing import Dict, FrozenSet

from api.middleware.error_handler import InvalidTransitionError


class ApplicationStatus(str, Enum):
    """Lifecycle states of a job application."""

    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    SHORTLISTED = "SHORTLISTED"
    INTERVIEW_REQUESTED = "INTERVIEW_REQUESTED"
    INTERVIEW_SCHEDULED = "INTERVIEW_SCHEDULED"
    INTERVIEW_COMPLETED = "INTERVIEW_COMPLETED"
    OFFER_EXTENDED = "OFFER_EXTENDED"
    HIRED = "HIRED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


S = ApplicationStatus

ALLOWED_TRANSITIONS: Dict[ApplicationStatus, FrozenSet[ApplicationStatus]] = {
    S.SUBMITTED: frozenset({S.UNDER_REVIEW, S.REJECTED, S.WITHDRAWN}),
    S.UNDER_REVIEW: frozenset({S.SHORTLISTED, S.REJECTED, S.WITHDRAWN}),
    S.SHORTLISTED: frozenset({S.INTERVIEW_REQUESTED, S.REJECTED, S.WITHDRAWN}),
    S.INTERVIEW_REQUESTED: frozenset({S.INTERVIEW_SCHEDULED, S.SHORTLISTED, S.REJECTED, S.WITHDRAWN}),
    S.INTERVIEW_SCHEDULED: frozenset({S.INTERVIEW_COMPLETED, S.INTERVIEW_REQUESTED, S.REJECTED, S.WITHDRAWN}),
    S.INTERVIEW_COMPLETED: frozenset({S.OFFER_EXTENDED, S.REJECTED, S.WITHDRAWN}),
    S.OFFER_EXTENDED: frozenset({S.HIRED, S.REJECTED, S.WITHDRAWN}),
    S.HIRED: frozenset(),
    S.REJECTED: frozenset(),
    S.WITHDRAWN: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)

# Statuses that count as an accepted outcome for calibration
ADVANCED_STATUSES = frozenset({
    S.SHORTLISTED,
    S.INTERVIEW_REQUESTED,
    S.INTERVIEW_SCHEDULED,
    S.INTERVIEW_COMPLETED,
    S.OFFER_EXTENDED,
    S.HIRED,
})

# First entry into one of these sets processed_at
PROCESSED_STATUSES = frozenset({S.SHORTLISTED, S.REJECTED})


def is_transition_allowed(current: ApplicationStatus, requested: ApplicationStatus) -> bool:
    """Return True if moving from ``current`` to ``requested`` is legal.

    A self-transition is always allowed and means "no change".
    """
    if current == requested:
        return True
    return requested in ALLOWED_TRANSITIONS.get(current, frozenset())


def validate_transition(current: ApplicationStatus, requested: ApplicationStatus) -> None:
    """Raise InvalidTransitionError unless the edge exists."""
    if not is_transition_allowed(current, requested):
        raise InvalidTransitionError(current, requested)


def is_terminal(status: ApplicationStatus) -> bool:
    return status in TERMINAL_STATUSES
