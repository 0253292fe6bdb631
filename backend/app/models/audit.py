from __future__ import annotations

from typing import Optional

from sqlalchemy import Enum, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, IDMixin, JSONDocument, TimestampMixin
from app.models.enums import VehicleActivityAction


class ActivityLog(IDMixin, TimestampMixin, Base):
    """Vehicle activity feed entry (claims, transfer steps, comments)."""

    __tablename__ = "activity_logs"

    vehicle_id: Mapped[int] = mapped_column(ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    transfer_id: Mapped[Optional[int]] = mapped_column(ForeignKey("transfers.id", ondelete="SET NULL"), nullable=True, index=True)
    action: Mapped[VehicleActivityAction] = mapped_column(
        Enum(VehicleActivityAction, name="vehicle_activity_action"),
        nullable=False,
        index=True,
    )
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payload_json: Mapped[Optional[dict]] = mapped_column(JSONDocument, nullable=True)

    user: Mapped[Optional["User"]] = relationship()
