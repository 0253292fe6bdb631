"""Notification admin router aggregation."""
from app.routers import email_settings, notification_activity, notification_rules, notification_templates

ROUTERS = [
    notification_templates.router,
    notification_rules.router,
    notification_activity.router,
    email_settings.router,
]
