"""Import all models so SQLAlchemy metadata is fully registered."""

from app.db.base import Base

from app.models.audit import ActivityLog
from app.models.email_config import EmailConfig
from app.models.enums import (
    ChannelPriority,
    ConditionLogic,
    ConditionOperator,
    NotificationActivityStatus,
    NotificationCategory,
    NotificationChannel,
    NotificationEvent,
    TransferPriority,
    TransferStatus,
    UserRole,
    VehicleActivityAction,
    VehicleStatus,
)
from app.models.location import DealershipLocation
from app.models.notification_activity import NotificationActivity
from app.models.notification_rule import NotificationRule
from app.models.notification_template import NotificationTemplate
from app.models.transfer import Transfer
from app.models.user import User
from app.models.vehicle import Vehicle

__all__ = [
    "Base",
    "ActivityLog",
    "ChannelPriority",
    "ConditionLogic",
    "ConditionOperator",
    "DealershipLocation",
    "EmailConfig",
    "NotificationActivity",
    "NotificationActivityStatus",
    "NotificationCategory",
    "NotificationChannel",
    "NotificationEvent",
    "NotificationRule",
    "NotificationTemplate",
    "Transfer",
    "TransferPriority",
    "TransferStatus",
    "User",
    "UserRole",
    "Vehicle",
    "VehicleActivityAction",
    "VehicleStatus",
]
