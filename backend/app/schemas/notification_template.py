"""Pydantic schemas for notification templates."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from app.models.enums import NotificationCategory
from app.schemas.base import ORMModel


class EmailChannelContent(BaseModel):
    enabled: bool = True
    subject: str = ""
    body_html: str = ""
    body_text: str = ""

    @model_validator(mode="after")
    def require_subject_when_enabled(self) -> "EmailChannelContent":
        if self.enabled and not self.subject.strip():
            raise ValueError("Email subject is required when the email channel is enabled")
        return self


class SMSChannelContent(BaseModel):
    enabled: bool = True
    message: str = ""

    @model_validator(mode="after")
    def require_message_when_enabled(self) -> "SMSChannelContent":
        if self.enabled and not self.message.strip():
            raise ValueError("SMS message is required when the SMS channel is enabled")
        return self


class TemplateChannels(BaseModel):
    email: Optional[EmailChannelContent] = None
    sms: Optional[SMSChannelContent] = None

    @model_validator(mode="after")
    def require_one_channel(self) -> "TemplateChannels":
        if self.email is None and self.sms is None:
            raise ValueError("At least one channel (email or SMS) must be configured")
        return self


class NotificationTemplateBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    category: NotificationCategory = NotificationCategory.GENERAL
    channels: TemplateChannels
    active: bool = True


class NotificationTemplateCreate(NotificationTemplateBase):
    pass


class NotificationTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[NotificationCategory] = None
    channels: Optional[TemplateChannels] = None
    active: Optional[bool] = None


class NotificationTemplateRead(ORMModel):
    id: int
    name: str
    description: Optional[str] = None
    category: NotificationCategory
    channels: dict
    active: bool
    created_at: datetime
    updated_at: datetime


class TemplatePreviewRequest(BaseModel):
    use_real_data: bool = False
    vehicle_id: Optional[int] = None
    transfer_id: Optional[int] = None


class EmailPreview(BaseModel):
    subject: str
    body_html: str
    body_text: str


class SMSPreview(BaseModel):
    message: str
    character_count: int
    segments: int


class TemplatePreviewResponse(BaseModel):
    template: dict
    preview: dict[str, Any]
    variables: list[str]
    data: dict[str, Any]


class TemplateTestRequest(TemplatePreviewRequest):
    test_email: Optional[str] = None
    test_phone: Optional[str] = None


class ChannelTestResult(BaseModel):
    success: bool
    sent_to: Optional[str] = None
    subject: Optional[str] = None
    error: Optional[str] = None


class TemplateTestResponse(BaseModel):
    template: dict
    results: dict[str, ChannelTestResult]
