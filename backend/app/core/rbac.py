from __future__ import annotations

from typing import Dict, Optional

from fastapi import HTTPException, status

from app.models.enums import UserRole


ROLE_CAPABILITIES: dict[UserRole, Dict[str, bool]] = {
    UserRole.ADMIN: {
        "request_transfer": True,
        "approve_transfer": True,
        "update_transfer_status": True,
        "view_all_transfers": True,
        "manage_notifications": True,
        "view_notification_activity": True,
        "view_notification_analytics": True,
        "comment": True,
    },
    UserRole.MANAGER: {
        "request_transfer": True,
        "approve_transfer": True,
        "update_transfer_status": True,
        "view_all_transfers": True,
        "manage_notifications": False,
        "view_notification_activity": True,
        "view_notification_analytics": False,
        "comment": True,
    },
    UserRole.SALES: {
        "request_transfer": True,
        "approve_transfer": False,
        "update_transfer_status": False,
        "view_all_transfers": False,
        "manage_notifications": False,
        "view_notification_activity": False,
        "view_notification_analytics": False,
        "comment": True,
    },
    UserRole.TRANSPORT: {
        "request_transfer": False,
        "approve_transfer": False,
        "update_transfer_status": True,
        "view_all_transfers": True,
        "manage_notifications": False,
        "view_notification_activity": False,
        "view_notification_analytics": False,
        "comment": True,
    },
}


def get_capabilities_for_user(user) -> Dict[str, bool]:
    return dict(ROLE_CAPABILITIES.get(user.role, {}))


def user_has_capability(user, capability: str) -> bool:
    return bool(get_capabilities_for_user(user).get(capability, False))


def require_capability(user, capability: str, detail: Optional[str] = None) -> None:
    if not user_has_capability(user, capability):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail or f"Missing capability: {capability}",
        )


def can_mark_delivered(user, destination_location_id: Optional[int]) -> bool:
    """Managers may only confirm delivery into their own location."""
    if user.role in (UserRole.ADMIN, UserRole.TRANSPORT):
        return True
    if user.role == UserRole.MANAGER and user.location_id is not None:
        return user.location_id == destination_location_id
    return False


def can_approve_for_location(user, origin_location_id: Optional[int]) -> bool:
    if user.role == UserRole.ADMIN:
        return True
    if user.role == UserRole.MANAGER and user.location_id is not None:
        return user.location_id == origin_location_id
    return False
