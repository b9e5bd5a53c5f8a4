"""Business services for the Hireflow API.

Only the dependency-free state machine is re-exported here; import the
services themselves from their modules.
"""

from api.services.transitions import (
    ALLOWED_TRANSITIONS,
    ApplicationStatus,
    is_transition_allowed,
    validate_transition,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ApplicationStatus",
    "is_transition_allowed",
    "validate_transition",
]
