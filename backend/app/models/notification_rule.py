from __future__ import annotations

from typing import Optional

from sqlalchemy import Enum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import ActiveMixin, Base, IDMixin, JSONDocument, TimestampMixin
from app.models.enums import ConditionLogic, NotificationEvent


class NotificationRule(IDMixin, TimestampMixin, ActiveMixin, Base):
    __tablename__ = "notification_rules"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    event: Mapped[NotificationEvent] = mapped_column(
        Enum(NotificationEvent, name="notification_event"),
        nullable=False,
        index=True,
    )
    conditions: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)
    condition_logic: Mapped[ConditionLogic] = mapped_column(
        Enum(ConditionLogic, name="condition_logic"),
        default=ConditionLogic.AND,
        nullable=False,
    )
    recipients: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)
    channels: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False, index=True)

    def template_ids(self) -> set[int]:
        ids: set[int] = set()
        for key in ("email", "sms"):
            template_id = (self.channels or {}).get(key, {}).get("template_id")
            if template_id:
                ids.add(int(template_id))
        return ids
