from __future__ import annotations

from sqlalchemy import select

from app.models.audit import ActivityLog
from app.models.enums import (
    NotificationActivityStatus,
    NotificationCategory,
    NotificationEvent,
    TransferPriority,
    TransferStatus,
    UserRole,
    VehicleActivityAction,
    VehicleStatus,
)
from app.models.notification_activity import NotificationActivity
from app.models.notification_rule import NotificationRule
from app.models.notification_template import NotificationTemplate
from app.models.transfer import Transfer
from app.notifications import dispatcher as dispatcher_module
from conftest import FakeEmailSender, auth_headers


def _request(client, user, vehicle, to_location, **extra):
    payload = {"vehicle_id": vehicle.id, "to_location_id": to_location.id, **extra}
    return client.post("/api/transfers", json=payload, headers=auth_headers(user))


def _open_transfer(db, vehicle, stores, requester, status=TransferStatus.REQUESTED):
    transfer = Transfer(
        vehicle_id=vehicle.id,
        from_location_id=stores["north"].id,
        to_location_id=stores["south"].id,
        requested_by_id=requester.id,
        status=status,
        priority=TransferPriority.NORMAL,
    )
    db.add(transfer)
    db.commit()
    return transfer


def test_request_transfer_claims_vehicle(client, db, stores, make_user, vehicle):
    sales = make_user(UserRole.SALES, stores["south"])

    resp = _request(client, sales, vehicle, stores["south"], priority="urgent", customer_waiting=True)

    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "requested"
    assert body["priority"] == "urgent"
    assert body["from_location_id"] == stores["north"].id
    assert body["requested_by_id"] == sales.id
    db.refresh(vehicle)
    assert vehicle.status == VehicleStatus.CLAIMED
    actions = db.scalars(select(ActivityLog.action).where(ActivityLog.vehicle_id == vehicle.id)).all()
    assert actions == [VehicleActivityAction.CLAIMED]


def test_request_transfer_validations(client, stores, make_user, vehicle):
    sales = make_user(UserRole.SALES, stores["south"])

    assert _request(client, sales, vehicle, stores["north"]).status_code == 400
    missing = client.post(
        "/api/transfers",
        json={"vehicle_id": vehicle.id, "to_location_id": 9999},
        headers=auth_headers(sales),
    )
    assert missing.status_code == 404

    assert _request(client, sales, vehicle, stores["south"]).status_code == 201
    assert _request(client, sales, vehicle, stores["south"]).status_code == 409


def test_request_requires_token_and_capability(client, stores, make_user, vehicle):
    driver = make_user(UserRole.TRANSPORT, stores["north"])

    assert client.post("/api/transfers", json={"vehicle_id": vehicle.id, "to_location_id": stores["south"].id}).status_code == 401
    assert _request(client, driver, vehicle, stores["south"]).status_code == 403


def test_request_fires_matching_rule(client, db, stores, make_user, vehicle, monkeypatch):
    sent = FakeEmailSender()
    monkeypatch.setattr(dispatcher_module, "EmailSender", lambda config=None: sent)
    manager = make_user(UserRole.MANAGER, stores["north"], email="north.manager@example.com")
    sales = make_user(UserRole.SALES, stores["south"], name="Sam Seller")
    template = NotificationTemplate(
        name="Request",
        category=NotificationCategory.TRANSFER,
        channels={"email": {"enabled": True, "subject": "{{vehicle.title}} requested by {{transfer.requested_by.name}}", "body_html": "<p>{{vehicle.price_display}}</p>"}},
    )
    db.add(template)
    db.commit()
    db.add(
        NotificationRule(
            name="Tell the selling store",
            event=NotificationEvent.TRANSFER_REQUESTED,
            conditions=[{"field": "transfer.customer_waiting", "operator": "equals", "value": "true"}],
            recipients={"requesting_location": ["manager"]},
            channels={"email": {"enabled": True, "template_id": template.id}, "sms": {"enabled": False}, "priority": "email_only"},
        )
    )
    db.commit()

    resp = _request(client, sales, vehicle, stores["south"], customer_waiting=True)

    assert resp.status_code == 201
    assert sent.sent == [
        {
            "to": manager.email,
            "subject": "2023 Honda Accord requested by Sam Seller",
            "html": "<p>$27,500</p>",
            "text": None,
        }
    ]
    activity = db.scalars(select(NotificationActivity)).one()
    assert activity.status == NotificationActivityStatus.SENT
    assert activity.transfer_id == resp.json()["id"]
    assert activity.vehicle_id == vehicle.id
    assert activity.location_id == stores["south"].id


def test_send_failure_does_not_fail_request(client, db, stores, make_user, vehicle):
    # The default sender runs with EMAIL_PROVIDER=disabled and raises for every send.
    make_user(UserRole.MANAGER, stores["north"])
    sales = make_user(UserRole.SALES, stores["south"])
    template = NotificationTemplate(name="Plain", channels={"email": {"enabled": True, "subject": "Hi", "body_html": "x"}})
    db.add(template)
    db.commit()
    db.add(
        NotificationRule(
            name="Always",
            event=NotificationEvent.TRANSFER_REQUESTED,
            recipients={"requesting_location": ["all"]},
            channels={"email": {"enabled": True, "template_id": template.id}, "priority": "email_only"},
        )
    )
    db.commit()

    resp = _request(client, sales, vehicle, stores["south"])

    assert resp.status_code == 201
    activity = db.scalars(select(NotificationActivity)).one()
    assert activity.status == NotificationActivityStatus.FAILED
    assert "disabled" in activity.error_message


def test_approve_rejects_competing_requests(client, db, stores, make_user, vehicle):
    manager = make_user(UserRole.MANAGER, stores["north"])
    first = _open_transfer(db, vehicle, stores, make_user(UserRole.SALES, stores["south"]))
    second = _open_transfer(db, vehicle, stores, make_user(UserRole.SALES, stores["south"]))

    resp = client.post(f"/api/transfers/{first.id}/approve", headers=auth_headers(manager))

    assert resp.status_code == 200
    assert resp.json()["status"] == "approved"
    assert resp.json()["approved_by_id"] == manager.id
    db.refresh(second)
    assert second.status == TransferStatus.REJECTED
    assert second.rejection_reason == "Another transfer request was approved"
    db.refresh(vehicle)
    assert vehicle.current_transfer_id == first.id

    again = client.post(f"/api/transfers/{first.id}/approve", headers=auth_headers(manager))
    assert again.status_code == 409


def test_approval_is_limited_to_origin_managers(client, db, stores, make_user, vehicle):
    sales = make_user(UserRole.SALES, stores["south"])
    other_manager = make_user(UserRole.MANAGER, stores["south"])
    transfer = _open_transfer(db, vehicle, stores, sales)

    assert client.post(f"/api/transfers/{transfer.id}/approve", headers=auth_headers(sales)).status_code == 403
    assert client.post(f"/api/transfers/{transfer.id}/approve", headers=auth_headers(other_manager)).status_code == 403
    assert client.post("/api/transfers/9999/approve", headers=auth_headers(other_manager)).status_code == 404


def test_reject_requires_reason(client, db, stores, make_user, vehicle):
    manager = make_user(UserRole.MANAGER, stores["north"])
    transfer = _open_transfer(db, vehicle, stores, make_user(UserRole.SALES, stores["south"]))
    vehicle.status = VehicleStatus.CLAIMED
    db.commit()

    blank = client.post(f"/api/transfers/{transfer.id}/reject", json={"reason": "   "}, headers=auth_headers(manager))
    assert blank.status_code == 400
    assert client.post(f"/api/transfers/{transfer.id}/reject", json={}, headers=auth_headers(manager)).status_code == 422

    resp = client.post(
        f"/api/transfers/{transfer.id}/reject",
        json={"reason": "Sold on the lot"},
        headers=auth_headers(manager),
    )
    assert resp.status_code == 200
    assert resp.json()["rejection_reason"] == "Sold on the lot"
    db.refresh(vehicle)
    assert vehicle.status == VehicleStatus.AVAILABLE


def test_rejection_sends_no_notifications(client, db, stores, make_user, vehicle, monkeypatch):
    calls = []
    monkeypatch.setattr("app.services.transfers.dispatch_event", lambda *args, **kwargs: calls.append(args))
    manager = make_user(UserRole.MANAGER, stores["north"])
    transfer = _open_transfer(db, vehicle, stores, make_user(UserRole.SALES, stores["south"]))

    client.post(f"/api/transfers/{transfer.id}/reject", json={"reason": "No"}, headers=auth_headers(manager))

    assert calls == []


def test_full_lifecycle_moves_vehicle(client, db, stores, make_user, vehicle, monkeypatch):
    events = []
    monkeypatch.setattr("app.services.transfers.dispatch_event", lambda db, event, context, refs: events.append(event))
    sales = make_user(UserRole.SALES, stores["south"])
    manager = make_user(UserRole.MANAGER, stores["north"])
    driver = make_user(UserRole.TRANSPORT)

    transfer_id = _request(client, sales, vehicle, stores["south"]).json()["id"]
    client.post(f"/api/transfers/{transfer_id}/approve", headers=auth_headers(manager))

    moving = client.patch(f"/api/transfers/{transfer_id}/status", json={"status": "in-transit"}, headers=auth_headers(driver))
    assert moving.status_code == 200
    assert moving.json()["actual_pickup_date"] is not None
    db.refresh(vehicle)
    assert vehicle.status == VehicleStatus.IN_TRANSFER

    done = client.patch(f"/api/transfers/{transfer_id}/status", json={"status": "delivered"}, headers=auth_headers(driver))
    assert done.status_code == 200
    assert done.json()["delivered_date"] is not None
    db.refresh(vehicle)
    assert vehicle.location_id == stores["south"].id
    assert vehicle.status == VehicleStatus.AVAILABLE
    assert vehicle.current_transfer_id is None

    assert events == [
        NotificationEvent.TRANSFER_REQUESTED,
        NotificationEvent.TRANSFER_APPROVED,
        NotificationEvent.TRANSFER_IN_TRANSIT,
        NotificationEvent.TRANSFER_DELIVERED,
    ]

    cancel = client.post(f"/api/transfers/{transfer_id}/cancel", json={}, headers=auth_headers(sales))
    assert cancel.status_code == 409


def test_status_endpoint_only_moves_forward(client, db, stores, make_user, vehicle):
    admin = make_user(UserRole.ADMIN)
    transfer = _open_transfer(db, vehicle, stores, make_user(UserRole.SALES, stores["south"]))

    approve = client.patch(f"/api/transfers/{transfer.id}/status", json={"status": "approved"}, headers=auth_headers(admin))
    assert approve.status_code == 400
    early = client.patch(f"/api/transfers/{transfer.id}/status", json={"status": "in-transit"}, headers=auth_headers(admin))
    assert early.status_code == 409
    bogus = client.patch(f"/api/transfers/{transfer.id}/status", json={"status": "lost"}, headers=auth_headers(admin))
    assert bogus.status_code == 422


def test_delivery_confirmation_limited_to_destination_manager(client, db, stores, make_user, vehicle):
    transfer = _open_transfer(db, vehicle, stores, make_user(UserRole.SALES, stores["south"]), status=TransferStatus.APPROVED)
    origin_manager = make_user(UserRole.MANAGER, stores["north"])
    destination_manager = make_user(UserRole.MANAGER, stores["south"])

    denied = client.patch(f"/api/transfers/{transfer.id}/status", json={"status": "delivered"}, headers=auth_headers(origin_manager))
    assert denied.status_code == 403
    allowed = client.patch(
        f"/api/transfers/{transfer.id}/status",
        json={"status": "delivered"},
        headers=auth_headers(destination_manager),
    )
    assert allowed.status_code == 200


def test_cancel_by_requester_releases_vehicle(client, db, stores, make_user, vehicle):
    sales = make_user(UserRole.SALES, stores["south"])
    stranger = make_user(UserRole.SALES, stores["south"])
    transfer_id = _request(client, sales, vehicle, stores["south"]).json()["id"]

    assert client.post(f"/api/transfers/{transfer_id}/cancel", json={}, headers=auth_headers(stranger)).status_code == 403

    resp = client.post(
        f"/api/transfers/{transfer_id}/cancel",
        json={"reason": "  Customer changed mind "},
        headers=auth_headers(sales),
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["cancellation_reason"] == "Customer changed mind"
    db.refresh(vehicle)
    assert vehicle.status == VehicleStatus.AVAILABLE


def test_transfer_visibility(client, db, stores, make_user, vehicle):
    requester = make_user(UserRole.SALES, stores["south"])
    outsider = make_user(UserRole.SALES)
    manager = make_user(UserRole.MANAGER, stores["north"])
    transfer = _open_transfer(db, vehicle, stores, requester)

    assert client.get(f"/api/transfers/{transfer.id}", headers=auth_headers(requester)).status_code == 200
    assert client.get(f"/api/transfers/{transfer.id}", headers=auth_headers(manager)).status_code == 200
    assert client.get(f"/api/transfers/{transfer.id}", headers=auth_headers(outsider)).status_code == 403


def test_comment_records_activity_and_fires_event(client, db, stores, make_user, vehicle, monkeypatch):
    captured = {}

    def fake_dispatch(db, event, context, refs):
        captured.update(event=event, context=context, refs=refs)

    monkeypatch.setattr("app.services.transfers.dispatch_event", fake_dispatch)
    author = make_user(UserRole.SALES, stores["north"], name="Casey")

    resp = client.post(
        f"/api/vehicles/{vehicle.id}/comments",
        json={"comment": "Small scratch on the rear bumper"},
        headers=auth_headers(author),
    )

    assert resp.status_code == 201
    assert resp.json()["action"] == "commented"
    assert captured["event"] == NotificationEvent.COMMENT_ADDED
    assert captured["context"]["comment"]["text"] == "Small scratch on the rear bumper"
    assert captured["context"]["comment"]["author"]["name"] == "Casey"
    assert captured["refs"]["location_id"] == stores["north"].id

    feed = client.get(f"/api/vehicles/{vehicle.id}/activity", headers=auth_headers(author))
    assert feed.status_code == 200
    assert [row["details"] for row in feed.json()] == ["Small scratch on the rear bumper"]

    blank = client.post(f"/api/vehicles/{vehicle.id}/comments", json={"comment": "   "}, headers=auth_headers(author))
    assert blank.status_code == 400


def test_list_transfers_filters_and_scopes(client, db, stores, make_user, vehicle):
    requester = make_user(UserRole.SALES, stores["south"])
    outsider = make_user(UserRole.SALES)
    manager = make_user(UserRole.MANAGER, stores["north"])
    first = _open_transfer(db, vehicle, stores, requester)
    delivered = _open_transfer(db, vehicle, stores, requester, status=TransferStatus.DELIVERED)
    inbound = Transfer(
        vehicle_id=vehicle.id,
        from_location_id=stores["south"].id,
        to_location_id=stores["north"].id,
        requested_by_id=manager.id,
        status=TransferStatus.REQUESTED,
        priority=TransferPriority.URGENT,
    )
    db.add(inbound)
    db.commit()

    def ids(user, **params):
        resp = client.get("/api/transfers", params=params, headers=auth_headers(user))
        assert resp.status_code == 200
        return [item["id"] for item in resp.json()["items"]]

    assert ids(manager) == [inbound.id, delivered.id, first.id]
    assert ids(manager, status="requested") == [inbound.id, first.id]
    assert ids(manager, priority="urgent") == [inbound.id]
    assert ids(manager, direction="incoming", status="requested") == [first.id]
    assert ids(manager, direction="outgoing", location_id=stores["north"].id) == [inbound.id]
    assert ids(outsider) == []

    page = client.get("/api/transfers", params={"limit": 2, "page": 2}, headers=auth_headers(manager)).json()
    assert [item["id"] for item in page["items"]] == [first.id]
    assert page["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}

    no_store = client.get("/api/transfers", params={"direction": "incoming"}, headers=auth_headers(outsider))
    assert no_store.status_code == 400
    assert client.get("/api/transfers", params={"status": "lost"}, headers=auth_headers(manager)).status_code == 422


def test_transfer_stats(client, db, stores, make_user, vehicle):
    requester = make_user(UserRole.SALES, stores["south"])
    outsider = make_user(UserRole.SALES)
    admin = make_user(UserRole.ADMIN, stores["north"])
    _open_transfer(db, vehicle, stores, requester)
    _open_transfer(db, vehicle, stores, requester, status=TransferStatus.IN_TRANSIT)
    _open_transfer(db, vehicle, stores, requester, status=TransferStatus.DELIVERED)
    _open_transfer(db, vehicle, stores, requester, status=TransferStatus.REJECTED)

    stats = client.get("/api/transfers/stats", headers=auth_headers(admin)).json()
    assert stats["total"] == 4
    assert stats["status_counts"]["requested"] == 1
    assert stats["status_counts"]["in-transit"] == 1
    assert stats["status_counts"]["cancelled"] == 0
    assert stats["breakdown"] == {"active": 2, "completed": 1, "cancelled": 1}

    scoped = client.get("/api/transfers/stats", params={"locations": str(stores["north"].id)}, headers=auth_headers(admin))
    assert scoped.json()["total"] == 4
    elsewhere = client.get("/api/transfers/stats", params={"locations": "999"}, headers=auth_headers(admin))
    assert elsewhere.json()["total"] == 0

    assert client.get("/api/transfers/stats", headers=auth_headers(outsider)).json()["total"] == 0
    assert client.get("/api/transfers/stats", params={"locations": "x"}, headers=auth_headers(admin)).status_code == 422
