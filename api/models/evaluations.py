"""Evaluation model for AI scoring results."""

from enum import Enum

import structlog
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, Text, ForeignKey
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship

from api.config.database import Base
from api.models.applications import utcnow

logger = structlog.get_logger()


class Recommendation(str, Enum):
    """Recommendation returned by the scoring model."""

    ACCEPT = "ACCEPT"
    REJECT = "REJECT"
    REVIEW = "REVIEW"
    FURTHER_INFO = "FURTHER_INFO"

    @classmethod
    def parse(cls, value) -> "Recommendation":
        """Lenient parse; anything unrecognized becomes REVIEW."""
        if isinstance(value, cls):
            return value
        if value is not None and str(value).strip():
            normalized = str(value).strip().upper().replace("-", "_").replace(" ", "_")
            try:
                return cls(normalized)
            except ValueError:
                logger.warning("Unknown recommendation, defaulting to REVIEW", value=value)
        return cls.REVIEW


class Evaluation(Base):
    """
    AI evaluation of an application.

    One row per application. A re-evaluation overwrites the row in place.
    """

    __tablename__ = "evaluations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(
        Integer,
        ForeignKey("applications.id"),
        nullable=False,
        unique=True,
    )

    overall_score = Column(Float, nullable=False)
    category_scores = Column(Text, default="{}")  # JSON: {"technical": 80.0, ...}
    recommendation = Column(
        SAEnum(Recommendation, native_enum=False, length=20),
        nullable=False,
        default=Recommendation.REVIEW,
    )
    justification = Column(Text, nullable=True)
    strengths = Column(Text, default="[]")  # JSON list
    weaknesses = Column(Text, default="[]")  # JSON list

    model_used = Column(String(100), nullable=True)

    # Whether the score crossed an auto threshold when the decision was made
    exceeded_auto_threshold = Column(Boolean, nullable=False, default=False)

    raw_response = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, onupdate=utcnow)

    # Relationships
    application = relationship("Application", back_populates="evaluation")

    def __repr__(self) -> str:
        return f"<Evaluation(id={self.id}, application_id={self.application_id}, score={self.overall_score})>"
