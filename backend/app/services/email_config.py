from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.models.email_config import EMAIL_CONFIG_ID, EmailConfig
from app.models.user import User

logger = logging.getLogger("notifications")

EMAIL_CONFIG_FIELDS = (
    "from_name",
    "from_email",
    "reply_to_email",
    "bcc_email",
    "footer_html",
    "footer_text",
    "test_mode_enabled",
    "test_email_address",
)


def get_email_config(db: Session) -> Optional[EmailConfig]:
    return db.get(EmailConfig, EMAIL_CONFIG_ID)


def default_email_config() -> EmailConfig:
    """Unsaved row describing the behaviour when no settings exist yet."""
    return EmailConfig(id=EMAIL_CONFIG_ID, test_mode_enabled=False)


def update_email_config(db: Session, changes: dict[str, Any], *, actor: User) -> EmailConfig:
    config = get_email_config(db)
    if config is None:
        config = EmailConfig(id=EMAIL_CONFIG_ID, test_mode_enabled=False)
        db.add(config)
    for name in EMAIL_CONFIG_FIELDS:
        if name in changes:
            setattr(config, name, changes[name])
    config.updated_by_id = actor.id
    db.commit()
    db.refresh(config)
    logger.info(
        "Email settings updated",
        extra={"user_id": actor.id, "fields": sorted(name for name in changes if name in EMAIL_CONFIG_FIELDS)},
    )
    return config
