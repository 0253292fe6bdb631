from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, IDMixin, JSONDocument, TimestampMixin
from app.models.enums import NotificationActivityStatus, NotificationChannel, NotificationEvent


class NotificationActivity(IDMixin, TimestampMixin, Base):
    """One attempted send on one channel to one recipient."""

    __tablename__ = "notification_activity"

    rule_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("notification_rules.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    template_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("notification_templates.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    event: Mapped[Optional[NotificationEvent]] = mapped_column(
        Enum(NotificationEvent, name="notification_event"),
        nullable=True,
        index=True,
    )
    channel: Mapped[NotificationChannel] = mapped_column(
        Enum(NotificationChannel, name="notification_channel"),
        nullable=False,
        index=True,
    )
    status: Mapped[NotificationActivityStatus] = mapped_column(
        Enum(NotificationActivityStatus, name="notification_activity_status"),
        default=NotificationActivityStatus.PENDING,
        nullable=False,
        index=True,
    )
    recipient: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    recipients: Mapped[Optional[list]] = mapped_column(JSONDocument, nullable=True)
    subject: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    provider: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    provider_message_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    vehicle_id: Mapped[Optional[int]] = mapped_column(ForeignKey("vehicles.id", ondelete="SET NULL"), nullable=True, index=True)
    transfer_id: Mapped[Optional[int]] = mapped_column(ForeignKey("transfers.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    location_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("dealership_locations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    metadata_json: Mapped[Optional[dict]] = mapped_column(JSONDocument, nullable=True)

    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    opened_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    clicked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    template: Mapped[Optional["NotificationTemplate"]] = relationship()
    rule: Mapped[Optional["NotificationRule"]] = relationship()

    @property
    def template_name(self) -> Optional[str]:
        return getattr(self.template, "name", None)
