from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.deps import require_capability
from app.db.session import get_db
from app.models.enums import NotificationActivityStatus, NotificationChannel, NotificationEvent, UserRole
from app.models.user import User
from app.schemas.notification_activity import (
    NotificationActivityPage,
    NotificationActivityRead,
    NotificationAnalytics,
    Pagination,
)
from app.services.notification_activity import activity_analytics, list_activity, page_count

router = APIRouter(prefix="/api/admin/notifications", tags=["notification-activity"])


@router.get("/activity", response_model=NotificationActivityPage)
def get_activity(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    channel: Optional[NotificationChannel] = Query(None),
    status: Optional[NotificationActivityStatus] = Query(None),
    template_id: Optional[int] = Query(None),
    event: Optional[NotificationEvent] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_notification_activity")),
) -> NotificationActivityPage:
    # Managers only see activity for their own location.
    location_id = current_user.location_id if current_user.role == UserRole.MANAGER else None
    items, total = list_activity(
        db,
        page=page,
        limit=limit,
        channel=channel,
        status=status,
        template_id=template_id,
        event=event,
        location_id=location_id,
    )
    return NotificationActivityPage(
        items=[NotificationActivityRead.model_validate(item) for item in items],
        pagination=Pagination(page=page, limit=limit, total=total, pages=page_count(total, limit)),
    )


@router.get("/analytics", response_model=NotificationAnalytics)
def get_analytics(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_notification_analytics")),
) -> NotificationAnalytics:
    return NotificationAnalytics(**activity_analytics(db, days=days))
