"""Merge-tag rendering for notification templates.

Tokens look like ``{{vehicle.make}}`` (whitespace inside the braces is allowed)
and are replaced with the stringified value found at that dotted path in the
context. Missing or null values render as an empty string. There is no
escaping and no conditional or loop syntax; templates are data only.
"""
from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from app.notifications.paths import get_path, stringify
from app.services.sms import truncate_sms

TOKEN_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")

EMAIL_FIELDS = ("subject", "body_html", "body_text")
SMS_FIELDS = ("message",)

TEMPLATE_VARIABLES: dict[str, list[str]] = {
    "vehicle": [
        "vehicle.year",
        "vehicle.make",
        "vehicle.model",
        "vehicle.vin",
        "vehicle.stock_number",
        "vehicle.title",
        "vehicle.price",
        "vehicle.price_display",
        "vehicle.mileage",
        "vehicle.mileage_display",
        "vehicle.color",
        "vehicle.location.name",
        "vehicle.image_link1",
        "vehicle.image_link2",
        "vehicle.image_link3",
    ],
    "transfer": [
        "transfer.from_location.name",
        "transfer.to_location.name",
        "transfer.requested_by.name",
        "transfer.requested_by.email",
        "transfer.approved_by.name",
        "transfer.status",
        "transfer.priority",
        "transfer.created_at",
        "transfer.notes",
        "transfer.reason",
        "transfer.cancellation_reason",
    ],
    "user": ["user.name", "user.email", "user.role", "user.location.name"],
    "system": ["system.date", "system.time"],
    "link": [
        "link.view_transfer",
        "link.approve_transfer",
        "link.dashboard",
        "link.view_short",
        "link.approve_short",
    ],
}


def render_template(template: Optional[str], context: Any) -> str:
    if not template:
        return ""
    return TOKEN_RE.sub(lambda match: stringify(get_path(context, match.group(1))), template)


def extract_variables(template: Optional[str]) -> list[str]:
    """Distinct token paths used by a template, in order of first use."""
    seen: list[str] = []
    for match in TOKEN_RE.finditer(template or ""):
        path = match.group(1)
        if path not in seen:
            seen.append(path)
    return seen


def render_channel(
    content: Mapping[str, Any],
    channel: str,
    context: Any,
    *,
    sms_max_length: Optional[int] = None,
) -> dict[str, str]:
    """Render every field of one channel's content block."""
    if channel == "email":
        return {name: render_template(content.get(name), context) for name in EMAIL_FIELDS}
    if channel == "sms":
        message = render_template(content.get("message"), context)
        if sms_max_length:
            message = truncate_sms(message, sms_max_length)
        return {"message": message}
    raise ValueError(f"Unknown channel: {channel}")


def template_variables(channels: Mapping[str, Any]) -> list[str]:
    variables: list[str] = []
    for channel, fields in (("email", EMAIL_FIELDS), ("sms", SMS_FIELDS)):
        content = channels.get(channel) or {}
        for name in fields:
            for path in extract_variables(content.get(name)):
                if path not in variables:
                    variables.append(path)
    return variables
