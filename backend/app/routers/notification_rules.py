from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.deps import require_capability
from app.core.errors import RecipientLookupError, RuleValidationError
from app.db.session import get_db
from app.models.enums import NotificationEvent
from app.models.notification_rule import NotificationRule
from app.models.notification_template import NotificationTemplate
from app.models.user import User
from app.notifications.context import load_context, sample_context, user_context
from app.notifications.dispatcher import ordered_channels
from app.notifications.evaluator import available_fields, evaluate_condition, evaluate_rule
from app.notifications.paths import get_path, stringify
from app.notifications.recipients import SqlUserDirectory, resolve_recipients
from app.schemas.notification_rule import (
    ChannelConfig,
    NotificationRuleCreate,
    NotificationRuleRead,
    NotificationRuleUpdate,
    RuleTestRequest,
    RuleTestResult,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/notification-rules", tags=["notification-rules"])


def _get_rule(db: Session, rule_id: int) -> NotificationRule:
    rule = db.get(NotificationRule, rule_id)
    if not rule:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rule not found")
    return rule


def validate_channel_templates(db: Session, channels: ChannelConfig) -> None:
    """Each enabled channel must point at a template that has content for it."""
    for name in ("email", "sms"):
        selection = getattr(channels, name)
        if not selection.enabled:
            continue
        template = db.get(NotificationTemplate, selection.template_id)
        if template is None:
            raise RuleValidationError(f"{name} template {selection.template_id} does not exist")
        if template.channel_content(name) is None:
            raise RuleValidationError(f"Template '{template.name}' has no enabled {name} content")


def _validate_or_400(db: Session, channels: ChannelConfig) -> None:
    try:
        validate_channel_templates(db, channels)
    except RuleValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.get("", response_model=List[NotificationRuleRead])
def list_rules(
    event: Optional[NotificationEvent] = Query(None),
    active: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("manage_notifications")),
) -> List[NotificationRuleRead]:
    stmt = select(NotificationRule).order_by(NotificationRule.priority.desc(), NotificationRule.name.asc())
    if event is not None:
        stmt = stmt.where(NotificationRule.event == event)
    if active is not None:
        stmt = stmt.where(NotificationRule.active.is_(active))
    return [NotificationRuleRead.model_validate(rule) for rule in db.scalars(stmt).all()]


@router.get("/fields")
def list_condition_fields(
    event: NotificationEvent = Query(...),
    current_user: User = Depends(require_capability("manage_notifications")),
) -> list[dict]:
    return available_fields(event)


@router.post("", response_model=NotificationRuleRead, status_code=status.HTTP_201_CREATED)
def create_rule(
    rule_in: NotificationRuleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("manage_notifications")),
) -> NotificationRuleRead:
    _validate_or_400(db, rule_in.channels)
    rule = NotificationRule(
        name=rule_in.name,
        description=rule_in.description,
        event=rule_in.event,
        conditions=[condition.model_dump(mode="json") for condition in rule_in.conditions],
        condition_logic=rule_in.condition_logic,
        recipients=rule_in.recipients.model_dump(mode="json"),
        channels=rule_in.channels.model_dump(mode="json"),
        priority=rule_in.priority,
        active=rule_in.active,
    )
    db.add(rule)
    db.commit()
    db.refresh(rule)
    logger.info("Notification rule created", extra={"rule_id": rule.id, "user_id": current_user.id})
    return NotificationRuleRead.model_validate(rule)


@router.get("/{rule_id}", response_model=NotificationRuleRead)
def get_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("manage_notifications")),
) -> NotificationRuleRead:
    return NotificationRuleRead.model_validate(_get_rule(db, rule_id))


@router.patch("/{rule_id}", response_model=NotificationRuleRead)
def update_rule(
    rule_id: int,
    rule_update: NotificationRuleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("manage_notifications")),
) -> NotificationRuleRead:
    rule = _get_rule(db, rule_id)
    update_data = rule_update.model_dump(exclude_unset=True)
    if rule_update.channels is not None:
        _validate_or_400(db, rule_update.channels)
        rule.channels = rule_update.channels.model_dump(mode="json")
    if rule_update.recipients is not None:
        rule.recipients = rule_update.recipients.model_dump(mode="json")
    if rule_update.conditions is not None:
        rule.conditions = [condition.model_dump(mode="json") for condition in rule_update.conditions]
    for field in ("name", "description", "event", "condition_logic", "priority", "active"):
        if field in update_data and (update_data[field] is not None or field == "description"):
            setattr(rule, field, update_data[field])
    db.add(rule)
    db.commit()
    db.refresh(rule)
    return NotificationRuleRead.model_validate(rule)


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("manage_notifications")),
) -> None:
    rule = _get_rule(db, rule_id)
    db.delete(rule)
    db.commit()
    logger.info("Notification rule deleted", extra={"rule_id": rule_id, "user_id": current_user.id})


@router.post("/{rule_id}/test", response_model=RuleTestResult)
def test_rule(
    rule_id: int,
    request: RuleTestRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("manage_notifications")),
) -> RuleTestResult:
    """Dry run: evaluate and resolve against real or sample data without sending."""
    rule = _get_rule(db, rule_id)
    event = str(rule.event)
    if request.vehicle_id or request.transfer_id:
        context = load_context(
            db,
            event,
            vehicle_id=request.vehicle_id,
            transfer_id=request.transfer_id,
            user=current_user,
        )
        if context is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Test vehicle or transfer not found")
    else:
        context = sample_context(event)
        context["user"] = user_context(current_user)

    conditions_met = evaluate_rule(rule, context)
    condition_results = [
        {
            **condition,
            "actual": stringify(get_path(context, condition.get("field", ""))),
            "result": evaluate_condition(condition, context),
        }
        for condition in rule.conditions or []
    ]
    try:
        recipients = resolve_recipients(rule.recipients or {}, context, SqlUserDirectory(db), event=event)
    except RecipientLookupError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"Recipient lookup failed: {exc}")

    channels = ordered_channels(rule.channels or {})
    return RuleTestResult(
        rule={"id": rule.id, "name": rule.name, "event": event, "active": rule.active},
        conditions_met=conditions_met,
        conditions=condition_results,
        condition_logic=rule.condition_logic,
        recipients=recipients.emails,
        phones=recipients.phones,
        recipient_details=[detail.as_dict() for detail in recipients.details],
        channels={"enabled": channels, "config": rule.channels},
        would_send=bool(rule.active and conditions_met and recipients and channels),
        evaluated_context=context,
    )
