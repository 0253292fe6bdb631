"""Build the nested context that rules match against and templates render from."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.core.settings import settings
from app.db.base import utcnow
from app.models.transfer import Transfer
from app.models.user import User
from app.models.vehicle import Vehicle


def _format_date(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return f"{value:%b} {value.day}, {value.year}"


def _system(now: datetime) -> dict[str, str]:
    hour = now.hour % 12 or 12
    return {
        "date": f"{now:%B} {now.day}, {now.year}",
        "time": f"{hour}:{now:%M} {'AM' if now.hour < 12 else 'PM'}",
    }


def _links(transfer_id: Any) -> dict[str, str]:
    base_url = settings.app_base_url.rstrip("/")
    links = {"dashboard": f"{base_url}/dashboard"}
    if transfer_id is None:
        links.update(view_transfer="#", approve_transfer="#", view_short="#", approve_short="#")
        return links
    links.update(
        view_transfer=f"{base_url}/transfers/{transfer_id}",
        approve_transfer=f"{base_url}/transfers/{transfer_id}?action=approve",
        view_short=f"{base_url}/t/{transfer_id}",
        approve_short=f"{base_url}/a/{transfer_id}",
    )
    return links


def _location(location) -> Optional[dict[str, Any]]:
    if location is None:
        return None
    return {"id": location.id, "name": location.name, "code": location.code, "email": location.email}


def user_context(user: Optional[User]) -> Optional[dict[str, Any]]:
    if user is None:
        return None
    return {
        "id": user.id,
        "name": user.display_name,
        "email": user.email,
        "phone": user.phone,
        "role": str(user.role),
        "location_id": user.location_id,
        "location": _location(user.location),
    }


def _money(value: Optional[Decimal]) -> str:
    if value is None:
        return "N/A"
    return f"${value:,.0f}"


def vehicle_context(vehicle: Vehicle) -> dict[str, Any]:
    images = list(vehicle.image_urls or [])
    data: dict[str, Any] = {
        "id": vehicle.id,
        "year": vehicle.year,
        "make": vehicle.make,
        "model": vehicle.model,
        "title": vehicle.title,
        "vin": vehicle.vin,
        "stock_number": vehicle.stock_number,
        "price": vehicle.price,
        "price_display": _money(vehicle.price),
        "mileage": vehicle.mileage,
        "mileage_display": f"{vehicle.mileage:,}" if vehicle.mileage is not None else "N/A",
        "color": vehicle.color,
        "status": str(vehicle.status),
        "location_id": vehicle.location_id,
        "location": _location(vehicle.location),
    }
    for index in range(3):
        data[f"image_link{index + 1}"] = images[index] if index < len(images) else None
    return data


def transfer_context(transfer: Transfer) -> dict[str, Any]:
    return {
        "id": transfer.id,
        "status": str(transfer.status),
        "priority": str(transfer.priority),
        "customer_waiting": transfer.customer_waiting,
        "from_location_id": transfer.from_location_id,
        "to_location_id": transfer.to_location_id,
        "from_location": _location(transfer.from_location) or {"name": "Unknown"},
        "to_location": _location(transfer.to_location) or {"name": "Unknown"},
        "requested_by": user_context(transfer.requested_by) or {"name": "Unknown", "email": ""},
        "approved_by": user_context(transfer.approved_by),
        "created_at": _format_date(transfer.created_at),
        "notes": transfer.transfer_notes or "",
        "reason": transfer.reason or "",
        "rejection_reason": transfer.rejection_reason or "",
        "cancellation_reason": transfer.cancellation_reason or "",
    }


def build_notification_context(
    event: str,
    *,
    vehicle: Optional[Vehicle] = None,
    transfer: Optional[Transfer] = None,
    user: Optional[User] = None,
    extra: Optional[dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    if vehicle is None and transfer is not None:
        vehicle = transfer.vehicle
    context: dict[str, Any] = {
        "event": str(event),
        "vehicle": vehicle_context(vehicle) if vehicle is not None else None,
        "transfer": transfer_context(transfer) if transfer is not None else None,
        "user": user_context(user),
        "system": _system(now or utcnow()),
        "link": _links(transfer.id if transfer is not None else None),
    }
    if extra:
        context.update(extra)
    return context


def load_context(
    db: Session,
    event: str,
    *,
    vehicle_id: Optional[int] = None,
    transfer_id: Optional[int] = None,
    user: Optional[User] = None,
) -> Optional[dict[str, Any]]:
    """Context from stored rows, or None when neither id matches a row."""
    transfer = db.get(Transfer, transfer_id) if transfer_id else None
    vehicle = db.get(Vehicle, vehicle_id) if vehicle_id else None
    if transfer is None and vehicle is None:
        return None
    return build_notification_context(event, vehicle=vehicle, transfer=transfer, user=user)


def sample_context(event: str = "transfer_requested", *, now: Optional[datetime] = None) -> dict[str, Any]:
    base_url = settings.app_base_url.rstrip("/")
    return {
        "event": event,
        "vehicle": {
            "id": 0,
            "year": 2024,
            "make": "Toyota",
            "model": "Camry",
            "title": "2024 Toyota Camry",
            "vin": "1HGCM82633A123456",
            "stock_number": "STK-12345",
            "price": 28999,
            "price_display": "$28,999",
            "mileage": 15234,
            "mileage_display": "15,234",
            "color": "Silver Metallic",
            "status": "available",
            "location_id": 1,
            "location": {"id": 1, "name": "Store 1"},
            "image_link1": "https://via.placeholder.com/800x600/3b82f6/ffffff?text=2024+Toyota+Camry",
            "image_link2": "https://via.placeholder.com/800x600/2563eb/ffffff?text=Interior+View",
            "image_link3": "https://via.placeholder.com/800x600/1d4ed8/ffffff?text=Engine+View",
        },
        "transfer": {
            "id": 0,
            "status": "approved",
            "priority": "high",
            "customer_waiting": True,
            "from_location_id": 1,
            "to_location_id": 3,
            "from_location": {"id": 1, "name": "Store 1"},
            "to_location": {"id": 3, "name": "Store 3"},
            "requested_by": {"name": "John Smith", "email": "john.smith@example.com"},
            "approved_by": {"name": "Jane Doe"},
            "created_at": _format_date(now or utcnow()),
            "notes": "Customer waiting - urgent delivery needed",
            "reason": "",
            "rejection_reason": "",
            "cancellation_reason": "",
        },
        "user": {
            "name": "Mike Johnson",
            "email": "mike.johnson@example.com",
            "role": "manager",
            "location_id": 2,
            "location": {"id": 2, "name": "Store 2"},
        },
        "system": _system(now or utcnow()),
        "link": {
            "view_transfer": f"{base_url}/transfers/sample-123",
            "approve_transfer": f"{base_url}/transfers/sample-123?action=approve",
            "dashboard": f"{base_url}/dashboard",
            "view_short": f"{base_url}/t/sample-123",
            "approve_short": f"{base_url}/a/sample-123",
        },
    }
