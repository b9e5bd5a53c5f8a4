"""AISettings model for per-department automation thresholds."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float

from api.config.database import Base
from api.models.applications import utcnow


class AISettings(Base):
    """
    Automatic decision thresholds for one department.

    auto_accept_threshold must stay strictly above auto_reject_threshold;
    AISettingsService validates that on every write.
    """

    __tablename__ = "ai_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    department = Column(String(255), nullable=False, unique=True)

    # Thresholds on the 0-100 score scale
    auto_accept_threshold = Column(Float, nullable=False)
    auto_reject_threshold = Column(Float, nullable=False)
    review_threshold = Column(Float, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    is_auto_accept_enabled = Column(Boolean, nullable=False, default=True)
    is_auto_reject_enabled = Column(Boolean, nullable=False, default=True)
    is_self_calibrating = Column(Boolean, nullable=False, default=False)

    last_calibration_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, onupdate=utcnow)

    def __repr__(self) -> str:
        return (
            f"<AISettings(department={self.department}, accept={self.auto_accept_threshold}, "
            f"reject={self.auto_reject_threshold})>"
        )
