from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.schemas.base import ORMModel


class EmailConfigUpdate(BaseModel):
    from_name: Optional[str] = Field(None, max_length=255)
    from_email: Optional[EmailStr] = None
    reply_to_email: Optional[EmailStr] = None
    bcc_email: Optional[EmailStr] = None
    footer_html: Optional[str] = None
    footer_text: Optional[str] = None
    test_mode_enabled: Optional[bool] = None
    test_email_address: Optional[EmailStr] = None

    @field_validator(
        "from_name",
        "from_email",
        "reply_to_email",
        "bcc_email",
        "footer_html",
        "footer_text",
        "test_email_address",
        mode="before",
    )
    @classmethod
    def blank_as_none(cls, value):
        # The settings form submits "" for a cleared field.
        if isinstance(value, str) and not value.strip():
            return None
        return value


class EmailConfigRead(ORMModel):
    id: int
    from_name: Optional[str] = None
    from_email: Optional[str] = None
    reply_to_email: Optional[str] = None
    bcc_email: Optional[str] = None
    footer_html: Optional[str] = None
    footer_text: Optional[str] = None
    test_mode_enabled: bool = False
    test_email_address: Optional[str] = None
    updated_by_id: Optional[int] = None
    updated_at: Optional[datetime] = None


class EmailConfigTestRequest(BaseModel):
    test_email: EmailStr


class EmailConfigTestResponse(BaseModel):
    success: bool
    sent_to: str
    subject: str
    error: Optional[str] = None
