from __future__ import annotations

from typing import Optional

import httpx
import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat

from app.core.errors import SMSSendError
from app.core.settings import settings
from app.services.email import SendResult

DEFAULT_PHONE_REGION = "US"
TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


def _parse_phone(phone: Optional[str]) -> Optional[phonenumbers.PhoneNumber]:
    if not phone or not phone.strip():
        return None
    try:
        return phonenumbers.parse(phone.strip(), DEFAULT_PHONE_REGION)
    except NumberParseException:
        return None


def clean_phone_number(phone: Optional[str]) -> str:
    """Format a raw number as E.164, reading national numbers as US; "" when unparseable."""
    parsed = _parse_phone(phone)
    if parsed is None:
        return ""
    return phonenumbers.format_number(parsed, PhoneNumberFormat.E164)


def is_valid_phone_number(phone: Optional[str]) -> bool:
    parsed = _parse_phone(phone)
    return parsed is not None and phonenumbers.is_valid_number(parsed)


def truncate_sms(body: str, max_length: Optional[int] = None) -> str:
    limit = max_length or settings.sms_max_length
    if len(body) <= limit:
        return body
    return body[: limit - 3] + "..."


def send_sms(*, to_number: str, body: str) -> SendResult:
    provider = (settings.sms_provider or "disabled").lower()
    if provider in {"disabled", "none"}:
        raise SMSSendError("SMS_PROVIDER disabled")
    if provider != "twilio":
        raise SMSSendError(f"Unsupported SMS_PROVIDER: {settings.sms_provider}")
    if not (settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_phone_number):
        raise SMSSendError("SMS service not configured - Twilio credentials missing")

    cleaned = clean_phone_number(to_number)
    if not is_valid_phone_number(cleaned):
        raise SMSSendError(f"Invalid phone number format: {to_number}")

    url = TWILIO_MESSAGES_URL.format(sid=settings.twilio_account_sid)
    data = {"To": cleaned, "From": settings.twilio_phone_number, "Body": truncate_sms(body)}
    try:
        with httpx.Client(timeout=settings.notification_send_timeout_seconds) as client:
            resp = client.post(
                url,
                data=data,
                auth=(settings.twilio_account_sid, settings.twilio_auth_token),
            )
    except httpx.TimeoutException as exc:
        raise SMSSendError(f"Twilio timed out: {exc}") from exc
    except httpx.HTTPError as exc:
        raise SMSSendError(f"Twilio request failed: {exc}") from exc
    if resp.status_code >= 400:
        raise SMSSendError(f"Twilio error: {resp.status_code} {resp.text}")
    return SendResult(provider="twilio", message_id=resp.json().get("sid"))


class SMSSender:
    def __call__(self, *, to_number: str, body: str) -> SendResult:
        return send_sms(to_number=to_number, body=body)
