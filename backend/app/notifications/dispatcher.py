from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import RecipientLookupError, SendError
from app.core.observability import record_rule_skipped, record_send_attempt
from app.core.settings import settings
from app.models.enums import ChannelPriority, NotificationActivityStatus, NotificationChannel
from app.models.notification_activity import NotificationActivity
from app.models.notification_rule import NotificationRule
from app.models.notification_template import NotificationTemplate
from app.notifications.evaluator import evaluate_rule
from app.notifications.paths import get_path
from app.notifications.recipients import ResolvedRecipients, SqlUserDirectory, UserDirectory, resolve_recipients
from app.notifications.renderer import render_channel
from app.services.email import EmailSender
from app.services.email_config import get_email_config
from app.services.notification_activity import advance_activity_status
from app.services.sms import SMSSender

logger = logging.getLogger("notifications")

_CHANNEL_ORDER = {
    ChannelPriority.EMAIL_ONLY: ("email",),
    ChannelPriority.SMS_ONLY: ("sms",),
    ChannelPriority.EMAIL_FIRST: ("email", "sms"),
    ChannelPriority.SMS_FIRST: ("sms", "email"),
    ChannelPriority.BOTH: ("email", "sms"),
}

_REF_PATHS = {
    "vehicle_id": ("vehicle.id",),
    "transfer_id": ("transfer.id",),
    "user_id": ("user.id",),
    "location_id": ("transfer.to_location_id", "vehicle.location_id"),
}


def ordered_channels(channels: Mapping[str, Any]) -> list[str]:
    """Enabled channels in the order the rule's channel priority asks for."""
    try:
        priority = ChannelPriority(channels.get("priority") or ChannelPriority.BOTH)
    except ValueError:
        priority = ChannelPriority.BOTH
    return [name for name in _CHANNEL_ORDER[priority] if (channels.get(name) or {}).get("enabled")]


@dataclass
class DispatchResult:
    rule_id: int
    rule_name: str
    channel: str
    template_id: Optional[int]
    subject: Optional[str] = None
    sent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    activity_ids: list[int] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.sent) + len(self.failed)


class NotificationDispatcher:
    def __init__(
        self,
        db: Session,
        directory: Optional[UserDirectory] = None,
        email_sender: Optional[Callable[..., Any]] = None,
        sms_sender: Optional[Callable[..., Any]] = None,
        *,
        sms_max_length: Optional[int] = None,
    ) -> None:
        self.db = db
        self.directory = directory or SqlUserDirectory(db)
        self.email_sender = email_sender or EmailSender(get_email_config(db))
        self.sms_sender = sms_sender or SMSSender()
        self.sms_max_length = sms_max_length or settings.sms_max_length

    def active_rules(self, event: str) -> list[NotificationRule]:
        stmt = (
            select(NotificationRule)
            .where(NotificationRule.event == event, NotificationRule.active.is_(True))
            .order_by(NotificationRule.priority.desc(), NotificationRule.id)
        )
        return list(self.db.scalars(stmt).all())

    def dispatch(
        self,
        event: str,
        context: Mapping[str, Any],
        refs: Optional[Mapping[str, Any]] = None,
    ) -> list[DispatchResult]:
        event = str(event)
        refs = self._refs(context, refs)
        results: list[DispatchResult] = []

        for rule in self.active_rules(event):
            log_extra = {"event": event, "rule_id": rule.id}
            if not evaluate_rule(rule, context):
                logger.debug("Rule %s conditions not met", rule.name, extra=log_extra)
                continue
            # A failed lookup only unwinds its own savepoint; rows from other rules stay.
            try:
                with self.db.begin_nested():
                    recipients = resolve_recipients(rule.recipients or {}, context, self.directory, event=event)
            except RecipientLookupError as exc:
                logger.warning("Recipient lookup failed for rule %s: %s", rule.name, exc, extra=log_extra)
                record_rule_skipped(event, "lookup_failed")
                continue
            if not recipients:
                logger.info("Rule %s matched but resolved no recipients", rule.name, extra=log_extra)
                record_rule_skipped(event, "no_recipients")
                continue

            for channel in ordered_channels(rule.channels or {}):
                result = self._dispatch_channel(event, rule, channel, recipients, context, refs)
                if result is not None:
                    results.append(result)

        self.db.commit()
        return results

    def _refs(self, context: Mapping[str, Any], refs: Optional[Mapping[str, Any]]) -> dict[str, Any]:
        resolved = dict(refs or {})
        for key, paths in _REF_PATHS.items():
            if resolved.get(key) is not None:
                continue
            for path in paths:
                value = get_path(context, path)
                if isinstance(value, int) and not isinstance(value, bool):
                    resolved[key] = value
                    break
        return resolved

    def _dispatch_channel(
        self,
        event: str,
        rule: NotificationRule,
        channel: str,
        recipients: ResolvedRecipients,
        context: Mapping[str, Any],
        refs: Mapping[str, Any],
    ) -> Optional[DispatchResult]:
        addresses = recipients.emails if channel == NotificationChannel.EMAIL else recipients.phones
        log_extra = {"event": event, "rule_id": rule.id, "channel": channel}
        if not addresses:
            logger.info("Rule %s has no %s recipients", rule.name, channel, extra=log_extra)
            record_rule_skipped(event, f"no_{channel}_recipients")
            return None

        template_id = (rule.channels.get(channel) or {}).get("template_id")
        result = DispatchResult(rule_id=rule.id, rule_name=rule.name, channel=channel, template_id=template_id)

        template = self.db.get(NotificationTemplate, template_id) if template_id else None
        content = template.channel_content(channel) if template is not None and template.active else None
        rendered: Optional[dict[str, str]] = None
        template_error: Optional[str] = None
        if content is None:
            template_error = f"Template {template_id} is missing, inactive or has no {channel} content"
            logger.warning("%s", template_error, extra={**log_extra, "template_id": template_id})
        else:
            rendered = render_channel(content, channel, context, sms_max_length=self.sms_max_length)
            result.subject = rendered.get("subject")

        for address in addresses:
            activity = NotificationActivity(
                rule_id=rule.id,
                template_id=template.id if template is not None else None,
                event=event,
                channel=channel,
                status=NotificationActivityStatus.PENDING,
                recipient=address,
                recipients=list(addresses),
                subject=result.subject,
                vehicle_id=refs.get("vehicle_id"),
                transfer_id=refs.get("transfer_id"),
                user_id=refs.get("user_id"),
                location_id=refs.get("location_id"),
                metadata_json={"rule_name": rule.name, "rule_priority": rule.priority},
            )
            self.db.add(activity)
            self.db.flush()

            error = template_error
            send_result = None
            if rendered is not None:
                try:
                    send_result = self._send(channel, address, rendered)
                except SendError as exc:
                    error = str(exc)
                except Exception as exc:  # pragma: no cover
                    logger.exception("Unexpected %s send error", channel, extra=log_extra)
                    error = f"Unexpected error: {exc}"

            if error is None:
                advance_activity_status(
                    activity,
                    NotificationActivityStatus.SENT,
                    provider=getattr(send_result, "provider", None),
                    provider_message_id=getattr(send_result, "message_id", None),
                )
                result.sent.append(address)
            else:
                advance_activity_status(activity, NotificationActivityStatus.FAILED, error_message=error)
                result.failed.append(address)
                logger.warning("Notification to %s failed: %s", address, error, extra=log_extra)
            self.db.flush()
            result.activity_ids.append(activity.id)
            record_send_attempt(event, channel, str(activity.status))

        logger.info(
            "Rule %s dispatched %s: %d sent, %d failed",
            rule.name,
            channel,
            len(result.sent),
            len(result.failed),
            extra={**log_extra, "recipients": result.attempted},
        )
        return result

    def _send(self, channel: str, address: str, rendered: Mapping[str, str]):
        if channel == NotificationChannel.EMAIL:
            return self.email_sender(
                to_address=address,
                subject=rendered["subject"],
                html=rendered["body_html"],
                text=rendered["body_text"] or None,
            )
        return self.sms_sender(to_number=address, body=rendered["message"])


def dispatch_event(
    db: Session,
    event: str,
    context: Mapping[str, Any],
    refs: Optional[Mapping[str, Any]] = None,
) -> list[DispatchResult]:
    """Best-effort dispatch used by workflow code; never raises."""
    if not settings.notifications_enabled:
        logger.info("Notifications disabled; skipping %s", event, extra={"event": str(event)})
        return []
    try:
        return NotificationDispatcher(db).dispatch(event, context, refs)
    except Exception:
        logger.exception("Notification dispatch failed", extra={"event": str(event)})
        db.rollback()
        return []
