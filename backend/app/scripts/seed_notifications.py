from __future__ import annotations

import argparse
import logging

from sqlalchemy import select

from app.core.logging import configure_logging
from app.core.settings import settings
from app.db.base import create_schema
from app.db.session import build_engine, build_session_factory
from app.models.enums import NotificationCategory, NotificationEvent
from app.models.notification_rule import NotificationRule
from app.models.notification_template import NotificationTemplate

logger = logging.getLogger("seed")

DEFAULT_TEMPLATES = [
    {
        "name": "Transfer Requested",
        "description": "Sent to the selling location when another store requests a vehicle.",
        "category": NotificationCategory.TRANSFER,
        "channels": {
            "email": {
                "enabled": True,
                "subject": "Transfer request: {{vehicle.year}} {{vehicle.make}} {{vehicle.model}}",
                "body_html": (
                    "<p>{{transfer.requested_by.name}} at {{transfer.to_location.name}} requested "
                    "{{vehicle.year}} {{vehicle.make}} {{vehicle.model}} (stock {{vehicle.stock_number}}).</p>"
                    "<p>Priority: {{transfer.priority}}</p>"
                    "<p>{{transfer.notes}}</p>"
                    '<p><a href="{{link.approve_transfer}}">Review the request</a></p>'
                ),
                "body_text": (
                    "{{transfer.requested_by.name}} at {{transfer.to_location.name}} requested "
                    "{{vehicle.year}} {{vehicle.make}} {{vehicle.model}} (stock {{vehicle.stock_number}}).\n"
                    "Priority: {{transfer.priority}}\n"
                    "Review: {{link.approve_transfer}}"
                ),
            },
            "sms": {
                "enabled": True,
                "message": (
                    "Transfer request: {{vehicle.year}} {{vehicle.make}} {{vehicle.model}} to "
                    "{{transfer.to_location.name}}. Review: {{link.approve_short}}"
                ),
            },
        },
    },
    {
        "name": "Transfer Approved",
        "description": "Confirms an approved transfer to the requester and destination store.",
        "category": NotificationCategory.TRANSFER,
        "channels": {
            "email": {
                "enabled": True,
                "subject": "Transfer approved: {{vehicle.year}} {{vehicle.make}} {{vehicle.model}}",
                "body_html": (
                    "<p>{{transfer.approved_by.name}} approved the transfer of "
                    "{{vehicle.year}} {{vehicle.make}} {{vehicle.model}} from {{transfer.from_location.name}} "
                    "to {{transfer.to_location.name}}.</p>"
                    '<p><a href="{{link.view_transfer}}">View transfer</a></p>'
                ),
                "body_text": (
                    "{{transfer.approved_by.name}} approved the transfer of "
                    "{{vehicle.year}} {{vehicle.make}} {{vehicle.model}}.\nView: {{link.view_transfer}}"
                ),
            },
        },
    },
    {
        "name": "Transfer Status Update",
        "description": "Vehicle picked up, delivered or cancelled.",
        "category": NotificationCategory.TRANSFER,
        "channels": {
            "email": {
                "enabled": True,
                "subject": "Transfer {{transfer.status}}: {{vehicle.year}} {{vehicle.make}} {{vehicle.model}}",
                "body_html": (
                    "<p>The transfer of {{vehicle.year}} {{vehicle.make}} {{vehicle.model}} to "
                    "{{transfer.to_location.name}} is now <strong>{{transfer.status}}</strong>.</p>"
                    "<p>{{transfer.cancellation_reason}}</p>"
                    '<p><a href="{{link.view_transfer}}">View transfer</a></p>'
                ),
                "body_text": (
                    "The transfer of {{vehicle.year}} {{vehicle.make}} {{vehicle.model}} is now "
                    "{{transfer.status}}.\nView: {{link.view_transfer}}"
                ),
            },
        },
    },
]

# Templates are referenced by name and swapped for ids at insert time.
DEFAULT_RULES = [
    {
        "name": "Notify selling store of new requests",
        "event": NotificationEvent.TRANSFER_REQUESTED,
        "recipients": {"requesting_location": ["manager", "admin"]},
        "channels": {"email": "Transfer Requested", "sms": "Transfer Requested", "priority": "email_first"},
        "priority": 10,
    },
    {
        "name": "Notify requester of approval",
        "event": NotificationEvent.TRANSFER_APPROVED,
        "recipients": {"destination_location": ["manager"]},
        "channels": {"email": "Transfer Approved", "priority": "email_only"},
        "priority": 10,
    },
    {
        "name": "Notify destination of delivery",
        "event": NotificationEvent.TRANSFER_DELIVERED,
        "recipients": {"destination_location": ["all"]},
        "channels": {"email": "Transfer Status Update", "priority": "email_only"},
        "priority": 0,
    },
    {
        "name": "Notify both stores of cancellation",
        "event": NotificationEvent.TRANSFER_CANCELLED,
        "recipients": {"requesting_location": ["manager"], "destination_location": ["manager"]},
        "channels": {"email": "Transfer Status Update", "priority": "email_only"},
        "priority": 0,
    },
]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create default notification templates and rules.")
    parser.add_argument("--database-url", default=settings.database_url)
    parser.add_argument("--dry-run", action="store_true", help="Report what would be created without writing")
    parser.add_argument(
        "--allow-production",
        action="store_true",
        help="Allow running in production (not recommended).",
    )
    return parser.parse_args()


def _channel_config(entry: dict, template_ids: dict[str, int]) -> dict:
    config: dict = {"priority": entry.get("priority", "both")}
    for channel in ("email", "sms"):
        name = entry.get(channel)
        config[channel] = {"enabled": bool(name), "template_id": template_ids.get(name) if name else None}
    return config


def seed(db, *, dry_run: bool = False) -> dict[str, list[str]]:
    created: dict[str, list[str]] = {"templates": [], "rules": []}
    template_ids: dict[str, int] = {}

    for entry in DEFAULT_TEMPLATES:
        existing = db.scalar(select(NotificationTemplate).where(NotificationTemplate.name == entry["name"]))
        if existing:
            template_ids[entry["name"]] = existing.id
            continue
        created["templates"].append(entry["name"])
        if dry_run:
            continue
        template = NotificationTemplate(active=True, **entry)
        db.add(template)
        db.flush()
        template_ids[entry["name"]] = template.id

    for entry in DEFAULT_RULES:
        existing = db.scalar(select(NotificationRule).where(NotificationRule.name == entry["name"]))
        if existing:
            continue
        created["rules"].append(entry["name"])
        if dry_run:
            continue
        db.add(
            NotificationRule(
                name=entry["name"],
                event=entry["event"],
                conditions=[],
                recipients=entry["recipients"],
                channels=_channel_config(entry["channels"], template_ids),
                priority=entry["priority"],
                active=True,
            )
        )

    if dry_run:
        db.rollback()
    else:
        db.commit()
    return created


def main() -> None:
    args = parse_args()
    configure_logging(level=settings.log_level)
    if settings.is_production and not args.allow_production:
        raise RuntimeError("Refusing to run in production without --allow-production")

    engine = build_engine(args.database_url)
    if args.database_url.startswith("sqlite") and not args.dry_run:
        create_schema(engine)
    session_factory = build_session_factory(engine)

    with session_factory() as db:
        created = seed(db, dry_run=args.dry_run)

    verb = "would create" if args.dry_run else "created"
    logger.info("Seed %s %d templates and %d rules", verb, len(created["templates"]), len(created["rules"]))
    for kind, names in created.items():
        for name in names:
            print(f"{verb} {kind[:-1]}: {name}")


if __name__ == "__main__":
    main()
