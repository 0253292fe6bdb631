from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import RecipientLookupError
from app.models.enums import NotificationEvent
from app.models.user import User
from app.notifications.paths import get_path
from app.schemas.notification_rule import RecipientConfig
from app.services.sms import clean_phone_number, is_valid_phone_number

logger = logging.getLogger("notifications")

ALL_ROLES = "all"


class UserDirectory(Protocol):
    def users_at_location(self, location_id: int, roles: Optional[Sequence[str]]) -> list[Any]:
        ...

    def users_by_ids(self, ids: Sequence[int]) -> list[Any]:
        ...


class SqlUserDirectory:
    """Active users looked up through the ORM session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def users_at_location(self, location_id: int, roles: Optional[Sequence[str]]) -> list[User]:
        stmt = select(User).where(User.location_id == location_id, User.active.is_(True))
        if roles is not None:
            stmt = stmt.where(User.role.in_(list(roles)))
        try:
            return list(self.db.scalars(stmt.order_by(User.id)).all())
        except SQLAlchemyError as exc:
            raise RecipientLookupError(f"location:{location_id}", str(exc)) from exc

    def users_by_ids(self, ids: Sequence[int]) -> list[User]:
        if not ids:
            return []
        stmt = select(User).where(User.id.in_(list(ids)), User.active.is_(True)).order_by(User.id)
        try:
            return list(self.db.scalars(stmt).all())
        except SQLAlchemyError as exc:
            raise RecipientLookupError("specific_users", str(exc)) from exc


@dataclass
class RecipientDetail:
    email: str
    source: str
    type: str
    name: Optional[str] = None
    user_id: Optional[int] = None

    def as_dict(self) -> dict:
        return {
            "email": self.email,
            "name": self.name,
            "user_id": self.user_id,
            "type": self.type,
            "source": self.source,
        }


@dataclass
class ResolvedRecipients:
    emails: list[str] = field(default_factory=list)
    phones: list[str] = field(default_factory=list)
    details: list[RecipientDetail] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.emails or self.phones)

    def add_email(self, email: Optional[str], *, source: str, type: str, name: Optional[str] = None, user_id: Optional[int] = None) -> None:
        if not email:
            return
        email = email.strip()
        key = email.lower()
        if not key or any(existing.lower() == key for existing in self.emails):
            return
        self.emails.append(email)
        self.details.append(RecipientDetail(email=email, source=source, type=type, name=name, user_id=user_id))

    def add_phone(self, phone: Optional[str]) -> None:
        if not phone:
            return
        cleaned = clean_phone_number(phone)
        if not is_valid_phone_number(cleaned):
            logger.warning("Skipping invalid phone number %r", phone)
            return
        if cleaned not in self.phones:
            self.phones.append(cleaned)


def _location_id(context: Any, *paths: str) -> Optional[int]:
    for path in paths:
        value = get_path(context, path)
        if value not in (None, ""):
            try:
                return int(value)
            except (TypeError, ValueError):
                return None
    return None


def _location_label(context: Any, name_path: str, location_id: int) -> str:
    return str(get_path(context, name_path) or location_id)


def _roles_filter(roles: Iterable[str]) -> Optional[list[str]]:
    roles = [str(role) for role in roles]
    if ALL_ROLES in roles:
        return None
    return roles


def _add_users(result: ResolvedRecipients, users: Iterable[Any], *, source: str, type: str) -> None:
    for user in users:
        result.add_email(
            getattr(user, "email", None),
            source=source,
            type=type,
            name=getattr(user, "name", None),
            user_id=getattr(user, "id", None),
        )
        if getattr(user, "sms_opt_in", False):
            result.add_phone(getattr(user, "phone", None))


def resolve_recipients(
    config: RecipientConfig | Mapping[str, Any],
    context: Any,
    directory: UserDirectory,
    *,
    event: Optional[str] = None,
) -> ResolvedRecipients:
    """Union every configured recipient source for one rule.

    Emails are deduplicated case-insensitively and the first source to name an
    address keeps its detail entry. No matches is an empty result, not an
    error; a failing directory query raises ``RecipientLookupError``.
    """
    if not isinstance(config, RecipientConfig):
        config = RecipientConfig.model_validate(config or {})
    event = event or get_path(context, "event")
    result = ResolvedRecipients()

    if config.use_conditions:
        result.add_email(
            get_path(context, "user.email"),
            source="Matched rule conditions",
            type="condition",
            name=get_path(context, "user.name"),
            user_id=get_path(context, "user.id"),
        )

    location_sources = (
        (
            config.current_location,
            ("vehicle.location_id", "vehicle.location.id"),
            "vehicle.location.name",
            "Current vehicle location",
        ),
        (
            config.requesting_location,
            ("transfer.from_location_id", "transfer.from_location.id"),
            "transfer.from_location.name",
            "Requesting location",
        ),
        (
            config.destination_location,
            ("transfer.to_location_id", "transfer.to_location.id"),
            "transfer.to_location.name",
            "Destination location",
        ),
    )
    for roles, id_paths, name_path, label in location_sources:
        if not roles:
            continue
        location_id = _location_id(context, *id_paths)
        if location_id is None:
            continue
        users = directory.users_at_location(location_id, _roles_filter(roles))
        source = f"{label} ({_location_label(context, name_path, location_id)})"
        _add_users(result, users, source=source, type="location")

    if config.specific_users:
        users = directory.users_by_ids(config.specific_users)
        _add_users(result, users, source="Specific users", type="specific")

    for email in config.additional_emails:
        result.add_email(email, source="Additional emails", type="additional")
    for phone in config.additional_phones:
        result.add_phone(phone)

    if event == NotificationEvent.TRANSFER_APPROVED:
        result.add_email(
            get_path(context, "transfer.requested_by.email"),
            source="Transfer requester",
            type="requester",
            name=get_path(context, "transfer.requested_by.name"),
            user_id=get_path(context, "transfer.requested_by.id"),
        )

    return result
