from __future__ import annotations

from enum import StrEnum


class UserRole(StrEnum):
    ADMIN = "admin"
    MANAGER = "manager"
    SALES = "sales"
    TRANSPORT = "transport"


class VehicleStatus(StrEnum):
    AVAILABLE = "available"
    CLAIMED = "claimed"
    IN_TRANSFER = "in-transfer"
    SOLD = "sold"


class TransferStatus(StrEnum):
    REQUESTED = "requested"
    APPROVED = "approved"
    IN_TRANSIT = "in-transit"
    DELIVERED = "delivered"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class TransferPriority(StrEnum):
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class VehicleActivityAction(StrEnum):
    CLAIMED = "claimed"
    TRANSFER_APPROVED = "transfer-approved"
    TRANSFER_REJECTED = "transfer-rejected"
    TRANSFER_CANCELLED = "transfer-cancelled"
    TRANSFER_STARTED = "transfer-started"
    TRANSFER_COMPLETED = "transfer-completed"
    COMMENTED = "commented"


class NotificationCategory(StrEnum):
    TRANSFER = "transfer"
    SYSTEM = "system"
    VEHICLE = "vehicle"
    GENERAL = "general"


class NotificationEvent(StrEnum):
    TRANSFER_REQUESTED = "transfer_requested"
    TRANSFER_APPROVED = "transfer_approved"
    TRANSFER_IN_TRANSIT = "transfer_in_transit"
    TRANSFER_DELIVERED = "transfer_delivered"
    TRANSFER_CANCELLED = "transfer_cancelled"
    COMMENT_ADDED = "comment_added"
    VEHICLE_UPDATED = "vehicle_updated"
    DAILY_SUMMARY = "daily_summary"


class NotificationChannel(StrEnum):
    EMAIL = "email"
    SMS = "sms"


class ConditionOperator(StrEnum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"


class ConditionLogic(StrEnum):
    AND = "AND"
    OR = "OR"


class ChannelPriority(StrEnum):
    EMAIL_ONLY = "email_only"
    SMS_ONLY = "sms_only"
    EMAIL_FIRST = "email_first"
    SMS_FIRST = "sms_first"
    BOTH = "both"


class NotificationActivityStatus(StrEnum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    OPENED = "opened"
    CLICKED = "clicked"
    FAILED = "failed"
