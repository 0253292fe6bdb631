from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.deps import get_current_user, require_capability
from app.db.session import get_db
from app.models.audit import ActivityLog
from app.models.user import User
from app.models.vehicle import Vehicle
from app.schemas.transfer import ActivityLogRead, CommentCreate
from app.services.transfers import add_vehicle_comment

router = APIRouter(prefix="/api/vehicles", tags=["vehicles"])


def _get_vehicle(db: Session, vehicle_id: int) -> Vehicle:
    vehicle = db.get(Vehicle, vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")
    return vehicle


@router.get("/{vehicle_id}/activity", response_model=List[ActivityLogRead])
def list_vehicle_activity(
    vehicle_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[ActivityLogRead]:
    _get_vehicle(db, vehicle_id)
    rows = db.scalars(
        select(ActivityLog)
        .where(ActivityLog.vehicle_id == vehicle_id)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
    ).all()
    return [ActivityLogRead.model_validate(row) for row in rows]


@router.post("/{vehicle_id}/comments", response_model=ActivityLogRead, status_code=status.HTTP_201_CREATED)
def create_comment(
    vehicle_id: int,
    payload: CommentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("comment")),
) -> ActivityLogRead:
    vehicle = _get_vehicle(db, vehicle_id)
    entry = add_vehicle_comment(db, vehicle=vehicle, author=current_user, text=payload.comment)
    return ActivityLogRead.model_validate(entry)
