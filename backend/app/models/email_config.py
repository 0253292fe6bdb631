from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, IDMixin, TimestampMixin

EMAIL_CONFIG_ID = 1


class EmailConfig(IDMixin, TimestampMixin, Base):
    """Single row of admin-editable settings applied to every outbound email."""

    __tablename__ = "email_config"

    from_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    from_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    reply_to_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    bcc_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    footer_html: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    footer_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    test_mode_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    test_email_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    updated_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
