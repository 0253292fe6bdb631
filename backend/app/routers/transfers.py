from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.core import rbac
from app.core.deps import get_current_user, require_capability
from app.core.errors import InvalidTransitionError
from app.db.session import get_db
from app.models.enums import TransferPriority, TransferStatus
from app.models.transfer import Transfer
from app.models.user import User
from app.models.vehicle import Vehicle
from app.schemas.base import Pagination
from app.schemas.transfer import (
    TransferCancel,
    TransferCreate,
    TransferPage,
    TransferRead,
    TransferReject,
    TransferStats,
    TransferStatusUpdate,
)
from app.services import transfers as transfer_service
from app.services.notification_activity import page_count

router = APIRouter(prefix="/api/transfers", tags=["transfers"])


def _get_transfer(db: Session, transfer_id: int) -> Transfer:
    transfer = db.get(Transfer, transfer_id)
    if not transfer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transfer not found")
    return transfer


def _conflict(exc: InvalidTransitionError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.post("", response_model=TransferRead, status_code=status.HTTP_201_CREATED)
def request_transfer(
    transfer_in: TransferCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("request_transfer")),
) -> TransferRead:
    vehicle = db.get(Vehicle, transfer_in.vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")
    transfer = transfer_service.request_transfer(
        db,
        vehicle=vehicle,
        to_location_id=transfer_in.to_location_id,
        requester=current_user,
        priority=transfer_in.priority,
        customer_waiting=transfer_in.customer_waiting,
        transfer_notes=transfer_in.transfer_notes,
        reason=transfer_in.reason,
        expected_pickup_date=transfer_in.expected_pickup_date,
    )
    return TransferRead.model_validate(transfer)


@router.get("", response_model=TransferPage)
def list_transfers(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    status_filter: Optional[TransferStatus] = Query(None, alias="status"),
    priority: Optional[TransferPriority] = Query(None),
    location_id: Optional[int] = Query(None),
    direction: Optional[Literal["incoming", "outgoing"]] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TransferPage:
    if direction and location_id is None:
        location_id = current_user.location_id
        if location_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="location_id is required for direction")
    items, total = transfer_service.list_transfers(
        db,
        viewer=current_user,
        page=page,
        limit=limit,
        status=status_filter,
        location_id=location_id,
        direction=direction,
        priority=priority,
    )
    return TransferPage(
        items=[TransferRead.model_validate(item) for item in items],
        pagination=Pagination(page=page, limit=limit, total=total, pages=page_count(total, limit)),
    )


@router.get("/stats", response_model=TransferStats)
def get_transfer_stats(
    locations: Optional[str] = Query(None, description="Comma-separated location ids"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TransferStats:
    try:
        location_ids = [int(part) for part in (locations or "").split(",") if part.strip()]
    except ValueError:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="locations must be integer ids")
    return TransferStats(**transfer_service.transfer_stats(db, viewer=current_user, location_ids=location_ids))


@router.get("/{transfer_id}", response_model=TransferRead)
def get_transfer(
    transfer_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TransferRead:
    transfer = _get_transfer(db, transfer_id)
    if not rbac.user_has_capability(current_user, "view_all_transfers"):
        related = {transfer.from_location_id, transfer.to_location_id}
        if transfer.requested_by_id != current_user.id and current_user.location_id not in related:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to view this transfer")
    return TransferRead.model_validate(transfer)


@router.post("/{transfer_id}/approve", response_model=TransferRead)
def approve_transfer(
    transfer_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("approve_transfer")),
) -> TransferRead:
    transfer = _get_transfer(db, transfer_id)
    try:
        transfer = transfer_service.approve_transfer(db, transfer=transfer, approver=current_user)
    except InvalidTransitionError as exc:
        raise _conflict(exc)
    return TransferRead.model_validate(transfer)


@router.post("/{transfer_id}/reject", response_model=TransferRead)
def reject_transfer(
    transfer_id: int,
    payload: TransferReject,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("approve_transfer")),
) -> TransferRead:
    transfer = _get_transfer(db, transfer_id)
    try:
        transfer = transfer_service.reject_transfer(db, transfer=transfer, actor=current_user, reason=payload.reason)
    except InvalidTransitionError as exc:
        raise _conflict(exc)
    return TransferRead.model_validate(transfer)


@router.post("/{transfer_id}/cancel", response_model=TransferRead)
def cancel_transfer(
    transfer_id: int,
    payload: TransferCancel,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TransferRead:
    transfer = _get_transfer(db, transfer_id)
    try:
        transfer = transfer_service.cancel_transfer(db, transfer=transfer, actor=current_user, reason=payload.reason)
    except InvalidTransitionError as exc:
        raise _conflict(exc)
    return TransferRead.model_validate(transfer)


@router.patch("/{transfer_id}/status", response_model=TransferRead)
def update_transfer_status(
    transfer_id: int,
    payload: TransferStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("update_transfer_status")),
) -> TransferRead:
    transfer = _get_transfer(db, transfer_id)
    try:
        transfer = transfer_service.update_transfer_status(
            db,
            transfer=transfer,
            actor=current_user,
            target=payload.status,
        )
    except InvalidTransitionError as exc:
        raise _conflict(exc)
    return TransferRead.model_validate(transfer)
