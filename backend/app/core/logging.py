# Structured JSON logging for the commission service.
# Every request gets a request_id that is echoed back in X-Request-Id and
# stamped onto any log line emitted while the request is handled, so a
# "commission.calculated" or "settlement.transition" entry can be traced
# back to the admin call or webhook delivery that caused it.

from __future__ import annotations

import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from time import monotonic
from typing import Any
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings


REQUEST_ID_HEADER = "X-Request-Id"

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {"message", "asctime"}

# Kept in the output even when None so request lines always have the same keys.
_ALWAYS_FIELDS = frozenset({"request_id", "route", "method", "status_code", "duration_ms", "error_code"})


def current_request_id() -> str | None:
    return _request_id.get()


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = _request_id.get()
        return True


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            if value is None and key not in _ALWAYS_FIELDS:
                continue
            payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        # Decimals and dates show up in commission extras.
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, default=str)


def get_structured_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())
    handler.addFilter(RequestIdFilter())
    logger.addHandler(handler)
    logger.setLevel(str(settings.LOG_LEVEL or "INFO").upper())
    logger.propagate = False
    return logger


logger = get_structured_logger("api_logger")
# Parent of every app.* module logger.
app_logger = get_structured_logger("app")


def _resolve_route(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def _request_extra(request: Request, *, status_code: int, started: float, error_code: str | None) -> dict[str, Any]:
    return {
        "request_id": getattr(request.state, "request_id", None),
        "route": _resolve_route(request),
        "path": request.url.path,
        "method": request.method,
        "status_code": status_code,
        "duration_ms": round((monotonic() - started) * 1000.0, 2),
        "error_code": error_code,
    }


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns the request_id (client supplied or generated) and echoes it back."""

    async def dispatch(self, request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id
        token = _request_id.set(request_id)
        try:
            response = await call_next(request)
        finally:
            _request_id.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class APILoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = monotonic()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request.failed",
                extra=_request_extra(request, status_code=500, started=started, error_code="unhandled_exception"),
            )
            raise
        logger.info(
            "request.completed",
            extra=_request_extra(
                request,
                status_code=response.status_code,
                started=started,
                error_code=response.headers.get("X-Error-Code"),
            ),
        )
        return response
