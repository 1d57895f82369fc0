# Structured JSON logging. Every record is stamped with the ambient tenant,
# and the middleware below writes one "request.completed" line per request.

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from time import monotonic
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from casebook.core.config import settings
from casebook.tenancy.context import get_context


# Attributes every LogRecord carries; anything else arrived through `extra`.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

# Request fields emitted even when empty so log queries can rely on them.
_REQUEST_FIELDS = frozenset(
    {
        "request_id",
        "tenant_id",
        "user_id",
        "route",
        "method",
        "status_code",
        "duration_ms",
        "error_code",
    }
)


class TenantContextFilter(logging.Filter):
    """Copies tenant_id/user_id from the ambient context unless already set."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = get_context()
        for field in ("tenant_id", "user_id"):
            if not hasattr(record, field):
                setattr(record, field, getattr(context, field, None) if context else None)
        return True


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and (value is not None or key in _REQUEST_FIELDS)
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), default=str)


def get_structured_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonLogFormatter())
        handler.addFilter(TenantContextFilter())
        logger.addHandler(handler)
        logger.setLevel(settings.LOG_LEVEL.upper())
        logger.propagate = False
    return logger


logger = get_structured_logger("api_logger")


def _request_fields(request: Request, status_code: int, started: float) -> dict[str, Any]:
    state = request.state
    return {
        "request_id": getattr(state, "request_id", None),
        "tenant_id": getattr(state, "tenant_id", None),
        "user_id": getattr(state, "user_id", None),
        "route": getattr(request.scope.get("route"), "path", None) or request.url.path,
        "path": request.url.path,
        "method": request.method,
        "status_code": status_code,
        "duration_ms": round((monotonic() - started) * 1000.0, 2),
    }


class APILoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = monotonic()
        try:
            response = await call_next(request)
        except Exception:
            fields = _request_fields(request, 500, started)
            logger.exception("request.failed", extra={**fields, "error_code": "unhandled_exception"})
            raise
        fields = _request_fields(request, response.status_code, started)
        fields["error_code"] = response.headers.get("X-Error-Code")
        logger.info("request.completed", extra=fields)
        return response
