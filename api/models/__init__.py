"""SQLAlchemy ORM models for Hireflow.

All models are imported here to ensure they're registered with Base.metadata
before any database operations.
"""

# Import base first
from api.config.database import Base

# Core models
from .applications import Application
from .status_history import StatusHistoryEntry
from .evaluations import Evaluation, Recommendation

# Configuration models
from .ai_settings import AISettings

# Messaging
from .outbox_events import OutboxEvent

# Queue model
from .jobs import Job

__all__ = [
    "Base",
    # Core
    "Application",
    "StatusHistoryEntry",
    "Evaluation",
    "Recommendation",
    # Configuration
    "AISettings",
    # Messaging
    "OutboxEvent",
    # Queue
    "Job",
]
