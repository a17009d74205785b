"""Request logging middleware with secret filtering.

This module provides structured logging for all API requests with:
- Unique request IDs for tracing
- Request duration tracking
- Owner context (when authenticated)
- Filtering of emails and bearer tokens from logged text
"""

import json
import logging
import time
import uuid
import re
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from basket.config import settings

logger = logging.getLogger(__name__)


SECRET_PATTERNS = [
    # Email addresses
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL]"),
    # Bearer tokens in headers or messages
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/=-]+"), "Bearer [TOKEN]"),
    # Bare JWTs
    (re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\b"), "[TOKEN]"),
]

# Extra fields copied from a record into the JSON line when present.
EXTRA_FIELDS = (
    "request_id",
    "owner_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "error_code",
    "error_type",
    "client_ip",
    "operation",
    "affected",
    "succeeded",
    "failed",
    "already_existing",
    "failed_scopes",
    "generation",
    "considered",
    "suggestions",
)


def filter_secrets(text: str) -> str:
    """Remove emails and tokens from text.

    Args:
        text: Input text that may contain secrets

    Returns:
        Text with secrets replaced by placeholders
    """
    if not text:
        return text

    filtered = text
    for pattern, replacement in SECRET_PATTERNS:
        filtered = pattern.sub(replacement, filtered)

    return filtered


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log all HTTP requests with secret filtering."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and log details.

        Args:
            request: Incoming HTTP request
            call_next: Next middleware or route handler

        Returns:
            HTTP response
        """
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.time()

        logger.info(
            "Request started",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": filter_secrets(str(request.url.path)),
                "client_ip": request.client.host if request.client else None,
            },
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = int((time.time() - start_time) * 1000)
            logger.error(
                "Request failed",
                extra={
                    "request_id": request_id,
                    "owner_id": _owner_id(request),
                    "method": request.method,
                    "path": filter_secrets(str(request.url.path)),
                    "duration_ms": duration_ms,
                    "error_type": type(exc).__name__,
                },
            )
            raise

        duration_ms = int((time.time() - start_time) * 1000)
        response.headers["X-Request-ID"] = request_id

        # The owner is only known once the auth dependency has run.
        logger.info(
            "Request completed",
            extra={
                "request_id": request_id,
                "owner_id": _owner_id(request),
                "method": request.method,
                "path": filter_secrets(str(request.url.path)),
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        return response


def _owner_id(request: Request) -> str | None:
    owner = getattr(request.state, "owner", None)
    return str(owner.owner_id) if owner is not None else None


class JSONLogFormatter(logging.Formatter):
    """Format log records as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": filter_secrets(record.getMessage()),
        }

        for name in EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_data[name] = filter_secrets(value) if isinstance(value, str) else value

        if record.exc_info:
            log_data["exception"] = filter_secrets(self.formatException(record.exc_info))

        return json.dumps(log_data, default=str, ensure_ascii=False)


def configure_logging(level: str | None = None) -> None:
    """Install the JSON formatter on the root logger."""
    handler = logging.StreamHandler()
    handler.setFormatter(JSONLogFormatter())

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel((level or settings.log_level).upper())
