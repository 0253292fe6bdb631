from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Request, Response
from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.security import decode_token


# Set per request so dispatcher logs emitted deep in a handler carry the id.
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_EXTRA_KEYS = (
    "request_id",
    "user_id",
    "path",
    "method",
    "status_code",
    "latency_ms",
    "event",
    "rule_id",
    "template_id",
    "channel",
    "transfer_id",
    "vehicle_id",
    "recipients",
    "fields",
)


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            request_id = request_id_ctx.get()
            if request_id:
                record.request_id = request_id
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EXTRA_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestContextFilter())
    logging.basicConfig(
        level=level,
        handlers=[handler],
        force=True,
    )


def _resolve_user_id(request: Request) -> Optional[int]:
    auth_header = request.headers.get("authorization") or ""
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    if not token:
        return None
    try:
        raw_user_id = decode_token(token).get("sub")
        return int(raw_user_id) if raw_user_id is not None else None
    except (JWTError, ValueError, TypeError):
        return None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, logger_name: str = "request") -> None:
        super().__init__(app)
        self.logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_ctx.set(request_id)
        start = time.perf_counter()
        base_extra = {
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
        }
        try:
            response = await call_next(request)
        except Exception:
            self.logger.exception(
                "unhandled_exception",
                extra={
                    **base_extra,
                    "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                    "user_id": _resolve_user_id(request),
                },
            )
            raise
        finally:
            request_id_ctx.reset(token)

        self.logger.info(
            "request",
            extra={
                **base_extra,
                "status_code": response.status_code,
                "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                "user_id": _resolve_user_id(request),
            },
        )
        response.headers["X-Request-Id"] = request_id
        return response
