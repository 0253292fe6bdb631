from __future__ import annotations

from typing import Optional

from sqlalchemy import Enum, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import ActiveMixin, Base, IDMixin, JSONDocument, TimestampMixin
from app.models.enums import NotificationCategory


class NotificationTemplate(IDMixin, TimestampMixin, ActiveMixin, Base):
    __tablename__ = "notification_templates"

    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[NotificationCategory] = mapped_column(
        Enum(NotificationCategory, name="notification_category"),
        default=NotificationCategory.GENERAL,
        nullable=False,
        index=True,
    )
    # {"email": {"enabled", "subject", "body_html", "body_text"}, "sms": {"enabled", "message"}}
    channels: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)

    def channel_content(self, channel: str) -> Optional[dict]:
        """Return the content block for a channel when it is enabled."""
        content = (self.channels or {}).get(str(channel))
        if not content or not content.get("enabled"):
            return None
        return content
