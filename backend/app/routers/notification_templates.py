from __future__ import annotations

import logging
import math
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.deps import get_email_sender, get_sms_sender, require_capability
from app.core.errors import SendError
from app.db.session import get_db
from app.models.enums import NotificationActivityStatus, NotificationCategory, NotificationChannel
from app.models.notification_activity import NotificationActivity
from app.models.notification_rule import NotificationRule
from app.models.notification_template import NotificationTemplate
from app.models.user import User
from app.notifications.context import load_context, sample_context
from app.notifications.renderer import TEMPLATE_VARIABLES, render_channel, template_variables
from app.schemas.notification_template import (
    ChannelTestResult,
    EmailPreview,
    NotificationTemplateCreate,
    NotificationTemplateRead,
    NotificationTemplateUpdate,
    SMSPreview,
    TemplatePreviewRequest,
    TemplatePreviewResponse,
    TemplateTestRequest,
    TemplateTestResponse,
)
from app.services.email import EmailSender
from app.services.notification_activity import advance_activity_status
from app.services.sms import SMSSender

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/notification-templates", tags=["notification-templates"])

SMS_SEGMENT_LENGTH = 160


def _get_template(db: Session, template_id: int) -> NotificationTemplate:
    template = db.get(NotificationTemplate, template_id)
    if not template:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    return template


def _ensure_unique_name(db: Session, name: str, exclude_id: Optional[int] = None) -> None:
    stmt = select(NotificationTemplate.id).where(NotificationTemplate.name == name)
    if exclude_id is not None:
        stmt = stmt.where(NotificationTemplate.id != exclude_id)
    if db.scalar(stmt) is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A template with this name already exists")


def _preview_context(db: Session, request: TemplatePreviewRequest, current_user: User) -> dict:
    event = "transfer_requested"
    if request.use_real_data and (request.vehicle_id or request.transfer_id):
        context = load_context(
            db,
            event,
            vehicle_id=request.vehicle_id,
            transfer_id=request.transfer_id,
            user=current_user,
        )
        if context is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Preview vehicle or transfer not found")
        return context
    return sample_context(event)


def rules_using_template(db: Session, template_id: int) -> list[NotificationRule]:
    rules = db.scalars(select(NotificationRule)).all()
    return [rule for rule in rules if template_id in rule.template_ids()]


@router.get("", response_model=List[NotificationTemplateRead])
def list_templates(
    category: Optional[NotificationCategory] = Query(None),
    active: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("manage_notifications")),
) -> List[NotificationTemplateRead]:
    stmt = select(NotificationTemplate).order_by(NotificationTemplate.name.asc())
    if category is not None:
        stmt = stmt.where(NotificationTemplate.category == category)
    if active is not None:
        stmt = stmt.where(NotificationTemplate.active.is_(active))
    return [NotificationTemplateRead.model_validate(t) for t in db.scalars(stmt).all()]


@router.post("", response_model=NotificationTemplateRead, status_code=status.HTTP_201_CREATED)
def create_template(
    template_in: NotificationTemplateCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("manage_notifications")),
) -> NotificationTemplateRead:
    _ensure_unique_name(db, template_in.name)
    template = NotificationTemplate(
        name=template_in.name,
        description=template_in.description,
        category=template_in.category,
        channels=template_in.channels.model_dump(exclude_none=True),
        active=template_in.active,
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    logger.info("Notification template created", extra={"template_id": template.id, "user_id": current_user.id})
    return NotificationTemplateRead.model_validate(template)


@router.get("/variables")
def list_template_variables(
    current_user: User = Depends(require_capability("manage_notifications")),
) -> dict[str, list[str]]:
    return TEMPLATE_VARIABLES


@router.get("/{template_id}", response_model=NotificationTemplateRead)
def get_template(
    template_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("manage_notifications")),
) -> NotificationTemplateRead:
    return NotificationTemplateRead.model_validate(_get_template(db, template_id))


@router.patch("/{template_id}", response_model=NotificationTemplateRead)
def update_template(
    template_id: int,
    template_update: NotificationTemplateUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("manage_notifications")),
) -> NotificationTemplateRead:
    template = _get_template(db, template_id)
    update_data = template_update.model_dump(exclude_unset=True)
    if update_data.get("name") and update_data["name"] != template.name:
        _ensure_unique_name(db, update_data["name"], exclude_id=template.id)
        template.name = update_data["name"]
    if "description" in update_data:
        template.description = update_data["description"]
    if update_data.get("category") is not None:
        template.category = update_data["category"]
    if template_update.channels is not None:
        template.channels = template_update.channels.model_dump(exclude_none=True)
    if update_data.get("active") is not None:
        template.active = update_data["active"]
    db.add(template)
    db.commit()
    db.refresh(template)
    return NotificationTemplateRead.model_validate(template)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_template(
    template_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("manage_notifications")),
) -> None:
    template = _get_template(db, template_id)
    in_use = rules_using_template(db, template.id)
    if in_use:
        names = ", ".join(rule.name for rule in in_use)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Template is used by notification rules: {names}",
        )
    db.delete(template)
    db.commit()
    logger.info("Notification template deleted", extra={"template_id": template_id, "user_id": current_user.id})


@router.post("/{template_id}/preview", response_model=TemplatePreviewResponse)
def preview_template(
    template_id: int,
    request: TemplatePreviewRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("manage_notifications")),
) -> TemplatePreviewResponse:
    template = _get_template(db, template_id)
    context = _preview_context(db, request, current_user)

    preview: dict = {}
    email = template.channel_content("email")
    if email:
        preview["email"] = EmailPreview(**render_channel(email, "email", context))
    sms = template.channel_content("sms")
    if sms:
        message = render_channel(sms, "sms", context)["message"]
        preview["sms"] = SMSPreview(
            message=message,
            character_count=len(message),
            segments=max(1, math.ceil(len(message) / SMS_SEGMENT_LENGTH)) if message else 0,
        )

    return TemplatePreviewResponse(
        template={"id": template.id, "name": template.name, "category": str(template.category)},
        preview={key: value.model_dump() for key, value in preview.items()},
        variables=template_variables(template.channels or {}),
        data=context,
    )


def _record_test_send(db: Session, template: NotificationTemplate, channel: str, address: str, result: ChannelTestResult, current_user: User) -> None:
    activity = NotificationActivity(
        template_id=template.id,
        channel=channel,
        status=NotificationActivityStatus.PENDING,
        recipient=address,
        recipients=[address],
        subject=result.subject,
        user_id=current_user.id,
        metadata_json={"test": True},
    )
    if result.success:
        advance_activity_status(activity, NotificationActivityStatus.SENT)
    else:
        advance_activity_status(activity, NotificationActivityStatus.FAILED, error_message=result.error)
    db.add(activity)


@router.post("/{template_id}/test", response_model=TemplateTestResponse)
def send_test_notification(
    template_id: int,
    request: TemplateTestRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("manage_notifications")),
    email_sender: EmailSender = Depends(get_email_sender),
    sms_sender: SMSSender = Depends(get_sms_sender),
) -> TemplateTestResponse:
    """Send the rendered template to the caller (or a given address) marked as a test."""
    template = _get_template(db, template_id)
    context = _preview_context(db, request, current_user)
    results: dict[str, ChannelTestResult] = {}

    email = template.channel_content("email")
    test_email = request.test_email or current_user.email
    if email and test_email:
        rendered = render_channel(email, "email", context)
        banner = (
            '<div style="background-color: #fbbf24; color: #000; padding: 10px; '
            f'text-align: center; font-weight: bold;">TEST EMAIL - This is a test of the {template.name} template</div>'
        )
        try:
            email_sender(
                to_address=test_email,
                subject=f"[TEST] {rendered['subject']}",
                html=banner + rendered["body_html"],
                text=f"[TEST EMAIL]\n\n{rendered['body_text']}",
            )
            results["email"] = ChannelTestResult(success=True, sent_to=test_email, subject=rendered["subject"])
        except SendError as exc:
            results["email"] = ChannelTestResult(success=False, sent_to=test_email, subject=rendered["subject"], error=str(exc))
        _record_test_send(db, template, NotificationChannel.EMAIL, test_email, results["email"], current_user)

    sms = template.channel_content("sms")
    test_phone = request.test_phone or current_user.phone
    if sms and test_phone:
        message = render_channel(sms, "sms", context)["message"]
        try:
            sms_sender(to_number=test_phone, body=f"[TEST] {message}")
            results["sms"] = ChannelTestResult(success=True, sent_to=test_phone)
        except SendError as exc:
            results["sms"] = ChannelTestResult(success=False, sent_to=test_phone, error=str(exc))
        _record_test_send(db, template, NotificationChannel.SMS, test_phone, results["sms"], current_user)

    db.commit()
    return TemplateTestResponse(
        template={"id": template.id, "name": template.name, "description": template.description},
        results=results,
    )
