"""Declarative base and shared column helpers for the transfer and notification tables."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Engine, MetaData, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Rules, templates and activity rows live in both SQLite (dev, tests) and
# Postgres, so constraint names must not depend on the dialect.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Rule conditions, recipient configs and template channel blocks; JSONB on Postgres.
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


def utcnow() -> datetime:
    """Timezone-aware now; every status timestamp and rendered date starts here."""
    return datetime.now(timezone.utc)


class IDMixin:
    id: Mapped[int] = mapped_column(primary_key=True, index=True)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )


class ActiveMixin:
    """Soft on/off switch for stores, users, templates and rules."""

    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)


def create_schema(bind: Engine) -> None:
    """Create every table registered by the models package."""
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=bind)
