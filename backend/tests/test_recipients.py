"""Tests for recipient resolution."""
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import Session

from app.core.errors import RecipientLookupError
from app.models.enums import UserRole
from app.notifications.recipients import SqlUserDirectory, resolve_recipients


def _person(id, email, role="manager", location_id=1, phone=None, sms_opt_in=False, name=None):
    return SimpleNamespace(
        id=id,
        email=email,
        name=name or email.split("@")[0],
        role=role,
        location_id=location_id,
        phone=phone,
        sms_opt_in=sms_opt_in,
    )


class FakeDirectory:
    def __init__(self, users=(), fail=False):
        self.users = list(users)
        self.fail = fail
        self.location_calls = []

    def users_at_location(self, location_id, roles):
        self.location_calls.append((location_id, roles))
        if self.fail:
            raise RecipientLookupError(f"location:{location_id}", "connection reset")
        return [
            user
            for user in self.users
            if user.location_id == location_id and (roles is None or user.role in roles)
        ]

    def users_by_ids(self, ids):
        return [user for user in self.users if user.id in ids]


CONTEXT = {
    "event": "transfer_requested",
    "vehicle": {"location_id": 1, "location": {"name": "North"}},
    "transfer": {
        "from_location_id": 1,
        "to_location_id": 2,
        "to_location": {"name": "South"},
        "requested_by": {"name": "Req", "email": "req@example.com"},
    },
    "user": {"id": 9, "email": "actor@example.com", "name": "Actor"},
}


def test_destination_location_users():
    directory = FakeDirectory([_person(1, "a@x.com", location_id=2), _person(2, "b@x.com", location_id=2)])
    result = resolve_recipients({"destination_location": ["manager"]}, CONTEXT, directory)
    assert result.emails == ["a@x.com", "b@x.com"]
    assert directory.location_calls == [(2, ["manager"])]
    assert result.details[0].source == "Destination location (South)"


def test_deduplicates_case_insensitively_first_detail_wins():
    directory = FakeDirectory([_person(1, "a@x.com", location_id=1)])
    config = {"current_location": ["manager"], "additional_emails": ["A@X.com", "other@x.com"]}
    result = resolve_recipients(config, CONTEXT, directory)
    assert result.emails == ["a@x.com", "other@x.com"]
    assert [detail.type for detail in result.details] == ["location", "additional"]


def test_no_matches_is_empty_not_error():
    result = resolve_recipients({"destination_location": ["sales"]}, CONTEXT, FakeDirectory())
    assert result.emails == []
    assert result.details == []
    assert not result


def test_lookup_failure_raises():
    with pytest.raises(RecipientLookupError):
        resolve_recipients({"requesting_location": ["manager"]}, CONTEXT, FakeDirectory(fail=True))


def test_all_role_matches_every_role():
    directory = FakeDirectory(
        [_person(1, "m@x.com", role="manager", location_id=2), _person(2, "s@x.com", role="sales", location_id=2)]
    )
    result = resolve_recipients({"destination_location": ["all"]}, CONTEXT, directory)
    assert directory.location_calls == [(2, None)]
    assert sorted(result.emails) == ["m@x.com", "s@x.com"]


def test_source_skipped_when_context_has_no_location():
    directory = FakeDirectory([_person(1, "a@x.com", location_id=2)])
    result = resolve_recipients({"destination_location": ["manager"]}, {"transfer": None}, directory)
    assert result.emails == []
    assert directory.location_calls == []


def test_phones_only_from_opted_in_users_plus_additional():
    directory = FakeDirectory(
        [
            _person(1, "a@x.com", location_id=2, phone="(201) 555-0123", sms_opt_in=True),
            _person(2, "b@x.com", location_id=2, phone="555-999-0000", sms_opt_in=False),
        ]
    )
    config = {"destination_location": ["manager"], "additional_phones": ["+1 201 555 0123", "+44 121 234 5678", "n/a"]}
    result = resolve_recipients(config, CONTEXT, directory)
    assert result.phones == ["+12015550123", "+441212345678"]


def test_use_conditions_adds_context_user():
    result = resolve_recipients({"use_conditions": True}, CONTEXT, FakeDirectory())
    assert result.emails == ["actor@example.com"]
    assert result.details[0].user_id == 9


def test_specific_users():
    directory = FakeDirectory([_person(5, "five@x.com"), _person(6, "six@x.com")])
    result = resolve_recipients({"specific_users": [6]}, CONTEXT, directory)
    assert result.emails == ["six@x.com"]


def test_transfer_approved_always_includes_requester():
    context = {**CONTEXT, "event": "transfer_approved"}
    result = resolve_recipients({}, context, FakeDirectory())
    assert result.emails == ["req@example.com"]
    assert result.details[0].type == "requester"


def test_sql_directory_filters_inactive_and_roles(db: Session, stores, make_user):
    south = stores["south"]
    manager = make_user(UserRole.MANAGER, south, email="mgr@example.com")
    make_user(UserRole.SALES, south, email="sales@example.com")
    inactive = make_user(UserRole.MANAGER, south, email="gone@example.com")
    inactive.active = False
    db.commit()

    directory = SqlUserDirectory(db)
    assert [u.email for u in directory.users_at_location(south.id, ["manager"])] == ["mgr@example.com"]
    assert len(directory.users_at_location(south.id, None)) == 2
    assert [u.id for u in directory.users_by_ids([manager.id, inactive.id])] == [manager.id]
