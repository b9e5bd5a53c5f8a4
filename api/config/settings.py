"""Application settings loaded from environment variables."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Hireflow Application Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"  # development, staging, production

    # Database
    DATABASE_URL: str = "sqlite:///./hireflow.db"

    # AI evaluation defaults (used when a department has no active AI settings)
    AI_EVALUATION_ENABLED: bool = True
    AI_AUTO_THRESHOLD_ACCEPT: float = 85.0
    AI_AUTO_THRESHOLD_REJECT: float = 40.0

    # Collaborating services
    CANDIDATE_SERVICE_URL: str = "http://candidate-service:8080/api"
    JOB_POSTING_SERVICE_URL: str = "http://job-posting-service:8080/api"
    DOCUMENT_SERVICE_URL: str = "http://document-service:8080/api"
    INTEGRATION_TIMEOUT_SECONDS: float = 10.0
    LOOKUP_CACHE_TTL_SECONDS: int = 300

    # Optimistic concurrency retries on the application write path
    TRANSITION_MAX_ATTEMPTS: int = 3

    # Queue defaults for jobs enqueued by the API
    QUEUE_MAX_ATTEMPTS: int = 3

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Frontend URL (for links in event payloads)
    FRONTEND_URL: Optional[str] = None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
