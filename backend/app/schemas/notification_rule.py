"""Pydantic schemas for notification rules and their JSON sub-documents."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.enums import ChannelPriority, ConditionLogic, ConditionOperator, NotificationEvent
from app.schemas.base import ORMModel


class RuleCondition(BaseModel):
    field: str = Field(..., min_length=1)
    operator: ConditionOperator
    value: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, value: Any) -> str:
        # Comparison values are always strings; numbers typed in the UI arrive as JSON numbers.
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)


class RecipientConfig(BaseModel):
    use_conditions: bool = False
    current_location: list[str] = Field(default_factory=list)
    requesting_location: list[str] = Field(default_factory=list)
    destination_location: list[str] = Field(default_factory=list)
    specific_users: list[int] = Field(default_factory=list)
    additional_emails: list[str] = Field(default_factory=list)
    additional_phones: list[str] = Field(default_factory=list)

    @field_validator("additional_emails", "additional_phones")
    @classmethod
    def strip_blank(cls, values: list[str]) -> list[str]:
        return [value.strip() for value in values if value and value.strip()]


class ChannelSelection(BaseModel):
    enabled: bool = False
    template_id: Optional[int] = None


class ChannelConfig(BaseModel):
    email: ChannelSelection = Field(default_factory=ChannelSelection)
    sms: ChannelSelection = Field(default_factory=ChannelSelection)
    priority: ChannelPriority = ChannelPriority.BOTH

    @model_validator(mode="after")
    def require_enabled_channel(self) -> "ChannelConfig":
        if not (self.email.enabled or self.sms.enabled):
            raise ValueError("At least one channel must be enabled")
        for name, selection in (("email", self.email), ("sms", self.sms)):
            if selection.enabled and not selection.template_id:
                raise ValueError(f"The {name} channel is enabled but has no template")
        return self


class NotificationRuleBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    event: NotificationEvent
    conditions: list[RuleCondition] = Field(default_factory=list)
    condition_logic: ConditionLogic = ConditionLogic.AND
    recipients: RecipientConfig
    channels: ChannelConfig
    priority: int = 0
    active: bool = True


class NotificationRuleCreate(NotificationRuleBase):
    pass


class NotificationRuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    event: Optional[NotificationEvent] = None
    conditions: Optional[list[RuleCondition]] = None
    condition_logic: Optional[ConditionLogic] = None
    recipients: Optional[RecipientConfig] = None
    channels: Optional[ChannelConfig] = None
    priority: Optional[int] = None
    active: Optional[bool] = None


class NotificationRuleRead(ORMModel):
    id: int
    name: str
    description: Optional[str] = None
    event: NotificationEvent
    conditions: list[dict]
    condition_logic: ConditionLogic
    recipients: dict
    channels: dict
    priority: int
    active: bool
    created_at: datetime
    updated_at: datetime


class RuleTestRequest(BaseModel):
    vehicle_id: Optional[int] = None
    transfer_id: Optional[int] = None


class RuleTestResult(BaseModel):
    rule: dict
    conditions_met: bool
    conditions: list[dict]
    condition_logic: ConditionLogic
    recipients: list[str]
    phones: list[str]
    recipient_details: list[dict]
    channels: dict
    would_send: bool
    evaluated_context: dict[str, Any]
