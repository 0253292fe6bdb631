from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel

from app.models.enums import NotificationActivityStatus, NotificationChannel, NotificationEvent
from app.schemas.base import ORMModel, Pagination


class NotificationActivityRead(ORMModel):
    id: int
    rule_id: Optional[int] = None
    template_id: Optional[int] = None
    template_name: Optional[str] = None
    event: Optional[NotificationEvent] = None
    channel: NotificationChannel
    status: NotificationActivityStatus
    recipient: Optional[str] = None
    recipients: Optional[list] = None
    subject: Optional[str] = None
    error_message: Optional[str] = None
    provider: Optional[str] = None
    provider_message_id: Optional[str] = None
    vehicle_id: Optional[int] = None
    transfer_id: Optional[int] = None
    user_id: Optional[int] = None
    location_id: Optional[int] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    opened_at: Optional[datetime] = None
    clicked_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    created_at: datetime


class NotificationActivityPage(BaseModel):
    items: list[NotificationActivityRead]
    pagination: Pagination


class DailyTrendPoint(BaseModel):
    day: date
    total: int
    sent: int
    failed: int


class NotificationAnalytics(BaseModel):
    days: int
    total: int
    by_status: dict[str, int]
    by_channel: dict[str, int]
    success_rate: float
    daily: list[DailyTrendPoint]
