from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, IDMixin, JSONDocument, TimestampMixin
from app.models.enums import VehicleStatus


class Vehicle(IDMixin, TimestampMixin, Base):
    __tablename__ = "vehicles"

    vin: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    make: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    stock_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    mileage: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    status: Mapped[VehicleStatus] = mapped_column(
        Enum(VehicleStatus, name="vehicle_status"),
        default=VehicleStatus.AVAILABLE,
        nullable=False,
        index=True,
    )
    location_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("dealership_locations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    image_urls: Mapped[Optional[list]] = mapped_column(JSONDocument, nullable=True)
    # Plain column rather than a FK to avoid a vehicles <-> transfers cycle.
    current_transfer_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    location: Mapped[Optional["DealershipLocation"]] = relationship(back_populates="vehicles")
    transfers: Mapped[List["Transfer"]] = relationship(back_populates="vehicle")

    @property
    def title(self) -> str:
        return " ".join(str(part) for part in (self.year, self.make, self.model) if part)
