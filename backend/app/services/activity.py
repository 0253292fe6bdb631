from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from app.models.audit import ActivityLog
from app.models.enums import VehicleActivityAction


def log_vehicle_activity(
    db: Session,
    *,
    vehicle_id: int,
    action: VehicleActivityAction,
    user_id: Optional[int] = None,
    transfer_id: Optional[int] = None,
    details: Optional[str] = None,
    payload: Optional[dict] = None,
) -> ActivityLog:
    activity = ActivityLog(
        vehicle_id=vehicle_id,
        user_id=user_id,
        transfer_id=transfer_id,
        action=action,
        details=details,
        payload_json=payload,
    )
    db.add(activity)
    db.flush()
    return activity
