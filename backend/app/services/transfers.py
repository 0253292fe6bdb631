from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.core import rbac
from app.core.errors import InvalidTransitionError
from app.db.base import utcnow
from app.models.enums import (
    NotificationEvent,
    TransferPriority,
    TransferStatus,
    UserRole,
    VehicleActivityAction,
    VehicleStatus,
)
from app.models.location import DealershipLocation
from app.models.transfer import Transfer
from app.models.user import User
from app.models.vehicle import Vehicle
from app.notifications.context import build_notification_context
from app.notifications.dispatcher import dispatch_event
from app.services.activity import log_vehicle_activity

logger = logging.getLogger("transfers")

TRANSFER_TRANSITIONS: dict[TransferStatus, set[TransferStatus]] = {
    TransferStatus.REQUESTED: {TransferStatus.APPROVED, TransferStatus.REJECTED, TransferStatus.CANCELLED},
    TransferStatus.APPROVED: {TransferStatus.IN_TRANSIT, TransferStatus.DELIVERED, TransferStatus.CANCELLED},
    TransferStatus.IN_TRANSIT: {TransferStatus.DELIVERED, TransferStatus.CANCELLED},
    TransferStatus.DELIVERED: set(),
    TransferStatus.REJECTED: set(),
    TransferStatus.CANCELLED: set(),
}

OPEN_STATUSES = (TransferStatus.REQUESTED, TransferStatus.APPROVED, TransferStatus.IN_TRANSIT)

# Only these targets may be set through the generic status update.
STATUS_UPDATE_TARGETS = {TransferStatus.IN_TRANSIT, TransferStatus.DELIVERED}


def _transition(transfer: Transfer, target: TransferStatus) -> None:
    current = TransferStatus(transfer.status)
    if target not in TRANSFER_TRANSITIONS[current]:
        raise InvalidTransitionError(current, target)
    transfer.status = target


def _notify(db: Session, event: NotificationEvent, *, transfer: Optional[Transfer], vehicle: Vehicle, actor: User, extra: Optional[dict] = None) -> None:
    context = build_notification_context(event, vehicle=vehicle, transfer=transfer, user=actor, extra=extra)
    refs = {
        "vehicle_id": vehicle.id,
        "transfer_id": transfer.id if transfer is not None else None,
        "user_id": actor.id,
        "location_id": transfer.to_location_id if transfer is not None else vehicle.location_id,
    }
    dispatch_event(db, event, context, refs)


def _has_other_open_transfer(db: Session, transfer: Transfer) -> bool:
    stmt = select(Transfer.id).where(
        Transfer.vehicle_id == transfer.vehicle_id,
        Transfer.id != transfer.id,
        Transfer.status.in_(OPEN_STATUSES),
    )
    return db.scalar(stmt.limit(1)) is not None


def request_transfer(
    db: Session,
    *,
    vehicle: Vehicle,
    to_location_id: int,
    requester: User,
    priority: TransferPriority = TransferPriority.NORMAL,
    customer_waiting: bool = False,
    transfer_notes: Optional[str] = None,
    reason: Optional[str] = None,
    expected_pickup_date: Optional[datetime] = None,
) -> Transfer:
    if vehicle.status != VehicleStatus.AVAILABLE:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Vehicle is not available for transfer")
    if db.get(DealershipLocation, to_location_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Destination location not found")
    if vehicle.location_id == to_location_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Vehicle is already at that location")

    transfer = Transfer(
        vehicle_id=vehicle.id,
        from_location_id=vehicle.location_id,
        to_location_id=to_location_id,
        requested_by_id=requester.id,
        status=TransferStatus.REQUESTED,
        priority=priority,
        customer_waiting=customer_waiting,
        transfer_notes=transfer_notes,
        reason=reason,
        expected_pickup_date=expected_pickup_date,
    )
    db.add(transfer)
    vehicle.status = VehicleStatus.CLAIMED
    db.flush()
    log_vehicle_activity(
        db,
        vehicle_id=vehicle.id,
        action=VehicleActivityAction.CLAIMED,
        user_id=requester.id,
        transfer_id=transfer.id,
        details=f"Transfer requested by {requester.display_name}",
        payload={"to_location_id": to_location_id, "priority": str(priority)},
    )
    db.commit()
    db.refresh(transfer)
    logger.info("Transfer requested", extra={"transfer_id": transfer.id, "vehicle_id": vehicle.id})

    _notify(db, NotificationEvent.TRANSFER_REQUESTED, transfer=transfer, vehicle=vehicle, actor=requester)
    return transfer


def approve_transfer(db: Session, *, transfer: Transfer, approver: User) -> Transfer:
    if not rbac.can_approve_for_location(approver, transfer.from_location_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to approve transfers for this location")
    _transition(transfer, TransferStatus.APPROVED)
    transfer.approved_by_id = approver.id
    transfer.approved_at = utcnow()

    vehicle = transfer.vehicle
    vehicle.current_transfer_id = transfer.id

    competing = db.scalars(
        select(Transfer).where(
            Transfer.vehicle_id == transfer.vehicle_id,
            Transfer.id != transfer.id,
            Transfer.status == TransferStatus.REQUESTED,
        )
    ).all()
    for other in competing:
        other.status = TransferStatus.REJECTED
        other.rejection_reason = "Another transfer request was approved"
        log_vehicle_activity(
            db,
            vehicle_id=vehicle.id,
            action=VehicleActivityAction.TRANSFER_REJECTED,
            user_id=approver.id,
            transfer_id=other.id,
            details="Rejected automatically: another transfer request was approved",
        )

    log_vehicle_activity(
        db,
        vehicle_id=vehicle.id,
        action=VehicleActivityAction.TRANSFER_APPROVED,
        user_id=approver.id,
        transfer_id=transfer.id,
        details=f"Transfer approved by {approver.display_name}",
    )
    db.commit()
    db.refresh(transfer)
    logger.info("Transfer approved", extra={"transfer_id": transfer.id, "vehicle_id": vehicle.id})

    _notify(db, NotificationEvent.TRANSFER_APPROVED, transfer=transfer, vehicle=vehicle, actor=approver)
    return transfer


def reject_transfer(db: Session, *, transfer: Transfer, actor: User, reason: str) -> Transfer:
    reason = (reason or "").strip()
    if not reason:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Rejection reason is required")
    if not rbac.can_approve_for_location(actor, transfer.from_location_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to reject transfers for this location")
    _transition(transfer, TransferStatus.REJECTED)
    transfer.rejection_reason = reason

    vehicle = transfer.vehicle
    if not _has_other_open_transfer(db, transfer):
        vehicle.status = VehicleStatus.AVAILABLE
    log_vehicle_activity(
        db,
        vehicle_id=vehicle.id,
        action=VehicleActivityAction.TRANSFER_REJECTED,
        user_id=actor.id,
        transfer_id=transfer.id,
        details=f"Transfer rejected: {reason}",
    )
    db.commit()
    db.refresh(transfer)
    logger.info("Transfer rejected", extra={"transfer_id": transfer.id, "vehicle_id": vehicle.id})
    return transfer


def cancel_transfer(db: Session, *, transfer: Transfer, actor: User, reason: Optional[str] = None) -> Transfer:
    is_requester = transfer.requested_by_id == actor.id
    if not (is_requester or actor.role in (UserRole.ADMIN, UserRole.MANAGER)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the requester or a manager can cancel")
    _transition(transfer, TransferStatus.CANCELLED)
    transfer.cancellation_reason = (reason or "").strip() or None

    vehicle = transfer.vehicle
    if vehicle.current_transfer_id == transfer.id:
        vehicle.current_transfer_id = None
    if not _has_other_open_transfer(db, transfer):
        vehicle.status = VehicleStatus.AVAILABLE
    log_vehicle_activity(
        db,
        vehicle_id=vehicle.id,
        action=VehicleActivityAction.TRANSFER_CANCELLED,
        user_id=actor.id,
        transfer_id=transfer.id,
        details=f"Transfer cancelled by {actor.display_name}",
        payload={"reason": transfer.cancellation_reason},
    )
    db.commit()
    db.refresh(transfer)
    logger.info("Transfer cancelled", extra={"transfer_id": transfer.id, "vehicle_id": vehicle.id})

    _notify(db, NotificationEvent.TRANSFER_CANCELLED, transfer=transfer, vehicle=vehicle, actor=actor)
    return transfer


def update_transfer_status(db: Session, *, transfer: Transfer, actor: User, target: TransferStatus) -> Transfer:
    target = TransferStatus(target)
    if target not in STATUS_UPDATE_TARGETS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Status cannot be set to {target}")
    if target == TransferStatus.DELIVERED and not rbac.can_mark_delivered(actor, transfer.to_location_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to confirm delivery for this location")
    _transition(transfer, target)

    now = utcnow()
    vehicle = transfer.vehicle
    if target == TransferStatus.IN_TRANSIT:
        transfer.actual_pickup_date = now
        vehicle.status = VehicleStatus.IN_TRANSFER
        action = VehicleActivityAction.TRANSFER_STARTED
        event = NotificationEvent.TRANSFER_IN_TRANSIT
    else:
        transfer.delivered_date = now
        if transfer.actual_pickup_date is None:
            transfer.actual_pickup_date = now
        vehicle.location_id = transfer.to_location_id
        vehicle.status = VehicleStatus.AVAILABLE
        vehicle.current_transfer_id = None
        action = VehicleActivityAction.TRANSFER_COMPLETED
        event = NotificationEvent.TRANSFER_DELIVERED

    log_vehicle_activity(
        db,
        vehicle_id=vehicle.id,
        action=action,
        user_id=actor.id,
        transfer_id=transfer.id,
        details=f"Transfer marked {target} by {actor.display_name}",
    )
    db.commit()
    db.refresh(transfer)
    db.refresh(vehicle)
    logger.info("Transfer status updated to %s", target, extra={"transfer_id": transfer.id, "vehicle_id": vehicle.id})

    _notify(db, event, transfer=transfer, vehicle=vehicle, actor=actor)
    return transfer


def add_vehicle_comment(db: Session, *, vehicle: Vehicle, author: User, text: str):
    text = (text or "").strip()
    if not text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Comment cannot be empty")
    transfer = db.get(Transfer, vehicle.current_transfer_id) if vehicle.current_transfer_id else None
    entry = log_vehicle_activity(
        db,
        vehicle_id=vehicle.id,
        action=VehicleActivityAction.COMMENTED,
        user_id=author.id,
        transfer_id=transfer.id if transfer is not None else None,
        details=text,
    )
    db.commit()
    db.refresh(entry)

    _notify(
        db,
        NotificationEvent.COMMENT_ADDED,
        transfer=transfer,
        vehicle=vehicle,
        actor=author,
        extra={"comment": {"text": text, "author": {"name": author.display_name, "email": author.email}}},
    )
    return entry


def _visible_to(stmt, viewer: User):
    """Users without view_all_transfers see their own requests and their store's transfers."""
    if rbac.user_has_capability(viewer, "view_all_transfers"):
        return stmt
    clauses = [Transfer.requested_by_id == viewer.id]
    if viewer.location_id is not None:
        clauses += [Transfer.from_location_id == viewer.location_id, Transfer.to_location_id == viewer.location_id]
    return stmt.where(or_(*clauses))


def list_transfers(
    db: Session,
    *,
    viewer: User,
    page: int = 1,
    limit: int = 50,
    status: Optional[TransferStatus] = None,
    location_id: Optional[int] = None,
    direction: Optional[str] = None,
    priority: Optional[TransferPriority] = None,
) -> tuple[list[Transfer], int]:
    """Newest first.

    ``direction="incoming"`` means requests for vehicles held at ``location_id``
    (the store that approves them); ``"outgoing"`` means requests made for that
    store. Without a direction the location matches either side.
    """
    stmt = _visible_to(select(Transfer), viewer)
    if status:
        stmt = stmt.where(Transfer.status == status)
    if priority:
        stmt = stmt.where(Transfer.priority == priority)
    if location_id is not None:
        if direction == "incoming":
            stmt = stmt.where(Transfer.from_location_id == location_id)
        elif direction == "outgoing":
            stmt = stmt.where(Transfer.to_location_id == location_id)
        else:
            stmt = stmt.where(or_(Transfer.from_location_id == location_id, Transfer.to_location_id == location_id))

    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = db.scalars(
        stmt.order_by(Transfer.created_at.desc(), Transfer.id.desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    return list(rows), int(total)


def transfer_stats(db: Session, *, viewer: User, location_ids: Optional[list[int]] = None) -> dict:
    stmt = _visible_to(select(Transfer.status, func.count(Transfer.id)), viewer)
    if location_ids:
        stmt = stmt.where(or_(Transfer.from_location_id.in_(location_ids), Transfer.to_location_id.in_(location_ids)))
    counts = {str(value): 0 for value in TransferStatus}
    for row_status, count in db.execute(stmt.group_by(Transfer.status)).all():
        counts[str(row_status)] = int(count)
    return {
        "status_counts": counts,
        "total": sum(counts.values()),
        "breakdown": {
            "active": sum(counts[str(value)] for value in OPEN_STATUSES),
            "completed": counts[TransferStatus.DELIVERED],
            "cancelled": counts[TransferStatus.CANCELLED] + counts[TransferStatus.REJECTED],
        },
    }
