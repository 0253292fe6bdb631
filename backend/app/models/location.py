from __future__ import annotations

from typing import List, Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import ActiveMixin, Base, IDMixin, TimestampMixin


class DealershipLocation(IDMixin, TimestampMixin, ActiveMixin, Base):
    __tablename__ = "dealership_locations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(50), unique=True, nullable=True, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    users: Mapped[List["User"]] = relationship(back_populates="location")
    vehicles: Mapped[List["Vehicle"]] = relationship(back_populates="location")
