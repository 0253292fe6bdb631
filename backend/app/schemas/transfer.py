from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.models.enums import TransferPriority, TransferStatus, VehicleActivityAction
from app.schemas.base import ORMModel, Pagination


class TransferCreate(BaseModel):
    vehicle_id: int
    to_location_id: int
    priority: TransferPriority = TransferPriority.NORMAL
    customer_waiting: bool = False
    transfer_notes: Optional[str] = None
    reason: Optional[str] = None
    expected_pickup_date: Optional[datetime] = None


class TransferRead(ORMModel):
    id: int
    vehicle_id: int
    from_location_id: Optional[int] = None
    to_location_id: int
    requested_by_id: int
    approved_by_id: Optional[int] = None
    status: TransferStatus
    priority: TransferPriority
    customer_waiting: bool
    transfer_notes: Optional[str] = None
    reason: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    expected_pickup_date: Optional[datetime] = None
    actual_pickup_date: Optional[datetime] = None
    delivered_date: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class TransferPage(BaseModel):
    items: list[TransferRead]
    pagination: Pagination


class TransferStats(BaseModel):
    status_counts: dict[str, int]
    total: int
    breakdown: dict[str, int]


class TransferStatusUpdate(BaseModel):
    status: TransferStatus


class TransferReject(BaseModel):
    reason: str = Field(..., min_length=1)


class TransferCancel(BaseModel):
    reason: Optional[str] = None


class CommentCreate(BaseModel):
    comment: str = Field(..., min_length=1, max_length=5000)


class ActivityLogRead(ORMModel):
    id: int
    vehicle_id: int
    user_id: Optional[int] = None
    transfer_id: Optional[int] = None
    action: VehicleActivityAction
    details: Optional[str] = None
    created_at: datetime
