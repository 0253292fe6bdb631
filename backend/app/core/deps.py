from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from app.core import rbac
from app.core.security import decode_token
from app.db.session import get_db
from app.models.user import User
from app.services.email import EmailSender
from app.services.email_config import get_email_config
from app.services.sms import SMSSender

# Identities are issued by the OAuth provider; this service only verifies them.
bearer_scheme = HTTPBearer(auto_error=False)
logger = logging.getLogger("security")


def _log_auth_event(event: str, *, request: Request, extra: Optional[dict] = None) -> None:
    payload = {
        "event": event,
        "request_id": request.headers.get("x-request-id"),
        "path": request.url.path,
        "method": request.method,
        "client": request.client.host if request.client else None,
    }
    if extra:
        payload.update(extra)
    logger.info(json.dumps(payload, default=str))


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or not credentials.credentials:
        _log_auth_event("token_missing", request=request)
        raise credentials_exception

    try:
        payload = decode_token(credentials.credentials)
        raw_user_id = payload.get("sub")
        if raw_user_id is None:
            _log_auth_event("token_missing_sub", request=request)
            raise credentials_exception
        user_id = int(raw_user_id)
    except (JWTError, ValueError, TypeError):
        _log_auth_event("token_invalid", request=request)
        raise credentials_exception

    user = db.get(User, user_id)
    if not user or not user.active:
        _log_auth_event("user_inactive_or_missing", request=request, extra={"user_id": user_id})
        raise credentials_exception
    return user


def require_capability(capability: str):
    def _dependency(current_user: User = Depends(get_current_user)) -> User:
        rbac.require_capability(current_user, capability)
        return current_user

    return _dependency


def get_email_sender(db: Session = Depends(get_db)) -> EmailSender:
    return EmailSender(get_email_config(db))


def get_sms_sender() -> SMSSender:
    return SMSSender()
