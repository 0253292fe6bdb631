from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from app.core.errors import InvalidTransitionError
from app.db.base import utcnow
from app.models.enums import NotificationActivityStatus as Status
from app.models.notification_activity import NotificationActivity

ALLOWED_TRANSITIONS: dict[Status, set[Status]] = {
    Status.PENDING: {Status.SENT, Status.FAILED},
    Status.SENT: {Status.DELIVERED, Status.FAILED},
    Status.DELIVERED: {Status.OPENED},
    Status.OPENED: {Status.CLICKED},
    Status.CLICKED: set(),
    Status.FAILED: set(),
}

_TIMESTAMP_FIELDS = {
    Status.SENT: "sent_at",
    Status.DELIVERED: "delivered_at",
    Status.OPENED: "opened_at",
    Status.CLICKED: "clicked_at",
    Status.FAILED: "failed_at",
}


def advance_activity_status(
    activity: NotificationActivity,
    target: Status,
    *,
    error_message: Optional[str] = None,
    provider: Optional[str] = None,
    provider_message_id: Optional[str] = None,
    at: Optional[datetime] = None,
) -> NotificationActivity:
    current = Status(activity.status or Status.PENDING)
    target = Status(target)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current, target)

    activity.status = target
    setattr(activity, _TIMESTAMP_FIELDS[target], at or utcnow())
    if provider:
        activity.provider = provider
    if provider_message_id:
        activity.provider_message_id = provider_message_id
    if target == Status.FAILED:
        activity.error_message = (error_message or "Unknown error")[:2000]
    return activity


def list_activity(
    db: Session,
    *,
    page: int = 1,
    limit: int = 50,
    channel: Optional[str] = None,
    status: Optional[str] = None,
    template_id: Optional[int] = None,
    event: Optional[str] = None,
    location_id: Optional[int] = None,
) -> tuple[list[NotificationActivity], int]:
    stmt = select(NotificationActivity)
    if channel:
        stmt = stmt.where(NotificationActivity.channel == channel)
    if status:
        stmt = stmt.where(NotificationActivity.status == status)
    if template_id:
        stmt = stmt.where(NotificationActivity.template_id == template_id)
    if event:
        stmt = stmt.where(NotificationActivity.event == event)
    if location_id is not None:
        stmt = stmt.where(NotificationActivity.location_id == location_id)

    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = db.scalars(
        stmt.options(selectinload(NotificationActivity.template))
        .order_by(NotificationActivity.created_at.desc(), NotificationActivity.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return list(rows), int(total)


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def activity_analytics(db: Session, *, days: int = 30, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    since = now - timedelta(days=days)
    window = NotificationActivity.created_at >= since

    by_status = {
        str(status): count
        for status, count in db.execute(
            select(NotificationActivity.status, func.count()).where(window).group_by(NotificationActivity.status)
        ).all()
    }
    by_channel = {
        str(channel): count
        for channel, count in db.execute(
            select(NotificationActivity.channel, func.count()).where(window).group_by(NotificationActivity.channel)
        ).all()
    }
    total = sum(by_status.values())

    daily: dict[date, dict] = {}
    for created_at, status in db.execute(
        select(NotificationActivity.created_at, NotificationActivity.status).where(window)
    ).all():
        day = _as_date(created_at)
        bucket = daily.setdefault(day, {"day": day, "total": 0, "sent": 0, "failed": 0})
        bucket["total"] += 1
        if status == Status.FAILED:
            bucket["failed"] += 1
        elif status != Status.PENDING:
            bucket["sent"] += 1

    delivered = total - by_status.get(Status.FAILED, 0) - by_status.get(Status.PENDING, 0)
    return {
        "days": days,
        "total": total,
        "by_status": by_status,
        "by_channel": by_channel,
        "success_rate": round(delivered / total * 100, 1) if total else 0.0,
        "daily": [daily[day] for day in sorted(daily)],
    }
