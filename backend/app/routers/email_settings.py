from __future__ import annotations

import logging
from html import escape

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.deps import get_email_sender, require_capability
from app.core.errors import SendError
from app.db.base import utcnow
from app.db.session import get_db
from app.models.enums import NotificationActivityStatus, NotificationChannel
from app.models.notification_activity import NotificationActivity
from app.models.user import User
from app.schemas.email_config import (
    EmailConfigRead,
    EmailConfigTestRequest,
    EmailConfigTestResponse,
    EmailConfigUpdate,
)
from app.services.email import EmailSender
from app.services.email_config import default_email_config, get_email_config, update_email_config
from app.services.notification_activity import advance_activity_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/notification-settings", tags=["notification-settings"])


@router.get("", response_model=EmailConfigRead)
def get_email_settings(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("manage_notifications")),
) -> EmailConfigRead:
    config = get_email_config(db) or default_email_config()
    return EmailConfigRead.model_validate(config)


@router.put("", response_model=EmailConfigRead)
def update_email_settings(
    settings_in: EmailConfigUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("manage_notifications")),
) -> EmailConfigRead:
    changes = settings_in.model_dump(exclude_unset=True)
    if changes.get("test_mode_enabled") is None:
        changes.pop("test_mode_enabled", None)
    current = get_email_config(db) or default_email_config()
    test_mode = changes.get("test_mode_enabled", current.test_mode_enabled)
    test_address = changes["test_email_address"] if "test_email_address" in changes else current.test_email_address
    if test_mode and not test_address:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A test email address is required when test mode is enabled",
        )
    config = update_email_config(db, changes, actor=current_user)
    return EmailConfigRead.model_validate(config)


def _settings_summary(config) -> list[tuple[str, str]]:
    return [
        ("From Name", config.from_name or "Not set"),
        ("From Email", config.from_email or "Not set"),
        ("Reply-To", config.reply_to_email or "Not set"),
        ("BCC", config.bcc_email or "Not set"),
        ("Test Mode", "Enabled" if config.test_mode_enabled else "Disabled"),
    ]


@router.post("/test", response_model=EmailConfigTestResponse)
def send_settings_test_email(
    request: EmailConfigTestRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("manage_notifications")),
    email_sender: EmailSender = Depends(get_email_sender),
) -> EmailConfigTestResponse:
    """Send a message describing the saved settings through the configured sender."""
    config = get_email_config(db)
    if config is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email settings not configured")

    summary = _settings_summary(config)
    sent_on = utcnow().strftime("%Y-%m-%d %H:%M UTC")
    subject = f"Test Email from {config.from_name or 'Vehicle Transfers'}"
    items = "".join(f"<li><strong>{escape(label)}:</strong> {escape(value)}</li>" for label, value in summary)
    html = (
        "<h2>Test Email</h2>"
        "<p>This is a test email from the vehicle transfer notification system.</p>"
        f"<h3>Current Email Settings:</h3><ul>{items}</ul>"
        f"<p>Sent by {escape(current_user.email)} on {sent_on}</p>"
    )
    lines = "\n".join(f"- {label}: {value}" for label, value in summary)
    text = (
        "This is a test email from the vehicle transfer notification system.\n\n"
        f"Current Email Settings:\n{lines}\n\nSent by {current_user.email} on {sent_on}"
    )

    activity = NotificationActivity(
        channel=NotificationChannel.EMAIL,
        status=NotificationActivityStatus.PENDING,
        recipient=request.test_email,
        recipients=[request.test_email],
        subject=subject,
        user_id=current_user.id,
        metadata_json={
            "test": True,
            "settings_snapshot": {
                "from_name": config.from_name,
                "from_email": config.from_email,
                "reply_to_email": config.reply_to_email,
                "test_mode_enabled": config.test_mode_enabled,
            },
        },
    )
    error = None
    try:
        result = email_sender(to_address=request.test_email, subject=subject, html=html, text=text)
        advance_activity_status(
            activity,
            NotificationActivityStatus.SENT,
            provider=result.provider,
            provider_message_id=result.message_id,
        )
    except SendError as exc:
        error = str(exc)
        advance_activity_status(activity, NotificationActivityStatus.FAILED, error_message=error)
        logger.warning("Settings test email failed: %s", error, extra={"user_id": current_user.id})
    db.add(activity)
    db.commit()
    return EmailConfigTestResponse(success=error is None, sent_to=request.test_email, subject=subject, error=error)
