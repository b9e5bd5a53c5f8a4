"""Health endpoints for load balancers and operators."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from api.config.database import get_db
from api.config.settings import settings
from api.schemas.base import CamelModel
from api.services.outbox import outbox_status

logger = structlog.get_logger()
router = APIRouter()


class HealthResponse(CamelModel):
    status: str
    version: str
    timestamp: str
    database: str


class DetailedHealthResponse(HealthResponse):
    """Adds thresholds in force and the outbox backlog.

    ``status`` is "degraded" while any outbox event is dead-lettered.
    """

    ai_evaluation: Dict[str, Any]
    outbox: Optional[Dict[str, int]] = None


def _ping(db: Session) -> Optional[str]:
    """Returns None when the database answers, else the error text."""
    try:
        db.execute(text("SELECT 1")).fetchone()
    except SQLAlchemyError as e:
        logger.error("Database health check failed", error=str(e))
        return str(e)
    return None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("", response_model=HealthResponse)
async def health_check(db: Session = Depends(get_db)) -> HealthResponse:
    error = _ping(db)
    return HealthResponse(
        status="healthy" if error is None else "unhealthy",
        version=settings.APP_VERSION,
        timestamp=_now(),
        database="connected" if error is None else "disconnected",
    )


@router.get("/detailed", response_model=DetailedHealthResponse)
async def detailed_health_check(db: Session = Depends(get_db)) -> DetailedHealthResponse:
    error = _ping(db)
    outbox = outbox_status(db) if error is None else None

    if error is not None:
        status = "unhealthy"
    elif outbox["dead"]:
        status = "degraded"
    else:
        status = "healthy"

    return DetailedHealthResponse(
        status=status,
        version=settings.APP_VERSION,
        timestamp=_now(),
        database="connected" if error is None else "disconnected",
        ai_evaluation={
            "enabled": settings.AI_EVALUATION_ENABLED,
            "defaultAcceptThreshold": settings.AI_AUTO_THRESHOLD_ACCEPT,
            "defaultRejectThreshold": settings.AI_AUTO_THRESHOLD_REJECT,
        },
        outbox=outbox,
    )


@router.get("/ready")
async def readiness_check(db: Session = Depends(get_db)):
    """503 until the database is reachable."""
    error = _ping(db)
    if error is not None:
        return JSONResponse(status_code=503, content={"ready": False, "reason": "database unavailable"})
    return {"ready": True}


@router.get("/live")
async def liveness_check() -> dict:
    return {"alive": True}
