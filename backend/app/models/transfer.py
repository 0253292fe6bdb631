from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, IDMixin, TimestampMixin
from app.models.enums import TransferPriority, TransferStatus


class Transfer(IDMixin, TimestampMixin, Base):
    __tablename__ = "transfers"

    vehicle_id: Mapped[int] = mapped_column(ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    from_location_id: Mapped[Optional[int]] = mapped_column(ForeignKey("dealership_locations.id"), nullable=True, index=True)
    to_location_id: Mapped[int] = mapped_column(ForeignKey("dealership_locations.id"), nullable=False, index=True)
    requested_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    approved_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    status: Mapped[TransferStatus] = mapped_column(
        Enum(TransferStatus, name="transfer_status"),
        default=TransferStatus.REQUESTED,
        nullable=False,
        index=True,
    )
    priority: Mapped[TransferPriority] = mapped_column(
        Enum(TransferPriority, name="transfer_priority"),
        default=TransferPriority.NORMAL,
        nullable=False,
    )
    customer_waiting: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    transfer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expected_pickup_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_pickup_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    vehicle: Mapped["Vehicle"] = relationship(back_populates="transfers")
    from_location: Mapped[Optional["DealershipLocation"]] = relationship(foreign_keys=[from_location_id])
    to_location: Mapped["DealershipLocation"] = relationship(foreign_keys=[to_location_id])
    requested_by: Mapped["User"] = relationship(foreign_keys=[requested_by_id])
    approved_by: Mapped[Optional["User"]] = relationship(foreign_keys=[approved_by_id])
