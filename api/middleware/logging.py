"""Request logging middleware using structlog."""

import logging
import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from api.config.settings import settings

logger = structlog.get_logger()

# Load balancer health checks, logged at debug only
QUIET_PATHS = {"/health", "/api/v1/health"}


def configure_logging(level: str = None) -> None:
    """Configure structlog for structured JSON logging."""
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with a request id bound into the structlog context.

    An incoming ``X-Request-ID`` (set by the gateway) is reused so log lines
    can be correlated across services; otherwise a short one is generated.
    The caller's ``X-User-Id`` is bound as ``actor``.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        actor = request.headers.get("X-User-Id")
        if actor:
            structlog.contextvars.bind_contextvars(actor=actor)

        quiet = request.url.path in QUIET_PATHS
        start_time = time.perf_counter()

        (logger.debug if quiet else logger.info)(
            "Request started",
            method=request.method,
            path=request.url.path,
            query=str(request.query_params),
            client=request.client.host if request.client else None,
        )

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        if response.status_code >= 400:
            log_method = logger.warning
        else:
            log_method = logger.debug if quiet else logger.info
        log_method(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        response.headers["X-Request-ID"] = request_id
        return response
