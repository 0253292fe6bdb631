from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import ActiveMixin, Base, IDMixin, TimestampMixin
from app.models.enums import UserRole


class User(IDMixin, TimestampMixin, ActiveMixin, Base):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole, name="user_role"), default=UserRole.SALES, nullable=False, index=True)
    location_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("dealership_locations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    sms_opt_in: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, server_default="false")
    sms_opt_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    location: Mapped[Optional["DealershipLocation"]] = relationship(back_populates="users")

    @property
    def display_name(self) -> str:
        return self.name or self.email
