from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import InvalidTransitionError, RuleValidationError, TemplateValidationError
from app.core.logging import RequestLoggingMiddleware, configure_logging
from app.core.observability import PrometheusMiddleware, metrics_endpoint
from app.core.settings import settings
from app.db.session import get_db
from app.modules.router_registry import include_all_routers

configure_logging(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.project_name, version=settings.project_version)

# Always allow localhost during development.
allow_origin_regex = None
if not settings.is_production:
    allow_origin_regex = r"^http://(localhost|127\.0\.0\.1)(:\d+)?$"
else:
    if any(origin.strip() == "*" for origin in settings.allow_origins):
        raise RuntimeError("ALLOW_ORIGINS cannot include '*' in production")
    if settings.jwt_secret.startswith("change_me"):
        raise RuntimeError("JWT_SECRET must be set in production")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-Id", "Accept"],
)

# Observability middleware
app.add_middleware(PrometheusMiddleware)
app.add_middleware(RequestLoggingMiddleware)

app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["observability"], include_in_schema=False)

include_all_routers(app)


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(RuleValidationError)
@app.exception_handler(TemplateValidationError)
async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.get("/healthz", tags=["health"])
def healthcheck(db: Session = Depends(get_db)) -> dict[str, str | bool]:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Healthcheck failed: %s", exc, exc_info=True)
        raise HTTPException(status_code=503, detail="Service unavailable") from exc
    return {
        "status": "ok",
        "database": "ok",
        "notifications_enabled": settings.notifications_enabled,
        "email_provider": settings.email_provider,
        "sms_provider": settings.sms_provider,
    }
