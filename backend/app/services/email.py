from __future__ import annotations

import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr, parseaddr
from typing import TYPE_CHECKING, Optional

import httpx

from app.core.errors import EmailSendError
from app.core.settings import settings

if TYPE_CHECKING:
    from app.models.email_config import EmailConfig

FOOTER_RULE = '<hr style="margin: 30px 0; border: none; border-top: 1px solid #ddd;">'


@dataclass
class SendResult:
    provider: str
    message_id: Optional[str] = None


@dataclass
class Envelope:
    from_address: str
    reply_to: Optional[str] = None
    bcc: list[str] = field(default_factory=list)


def send_email(
    *,
    to_address: str,
    subject: str,
    html: str,
    text: str | None = None,
    from_address: str | None = None,
    reply_to: str | None = None,
    bcc: list[str] | None = None,
) -> SendResult:
    provider = (settings.email_provider or "disabled").lower()
    if provider in {"disabled", "none"}:
        raise EmailSendError("EMAIL_PROVIDER disabled")
    if not (from_address or settings.email_from):
        raise EmailSendError("EMAIL_FROM not configured")
    if not to_address:
        raise EmailSendError("Recipient address is empty")

    envelope = Envelope(from_address=from_address or settings.email_from, reply_to=reply_to, bcc=list(bcc or []))
    if provider == "resend":
        return _send_resend(to_address=to_address, subject=subject, html=html, text=text, envelope=envelope)
    if provider == "postmark":
        return _send_postmark(to_address=to_address, subject=subject, html=html, text=text, envelope=envelope)
    if provider == "smtp":
        return _send_smtp(to_address=to_address, subject=subject, html=html, text=text, envelope=envelope)

    raise EmailSendError(f"Unsupported EMAIL_PROVIDER: {settings.email_provider}")


def _post_json(url: str, payload: dict, headers: dict, provider: str) -> dict:
    try:
        with httpx.Client(timeout=settings.notification_send_timeout_seconds) as client:
            resp = client.post(url, json=payload, headers=headers)
    except httpx.TimeoutException as exc:
        raise EmailSendError(f"{provider} timed out: {exc}") from exc
    except httpx.HTTPError as exc:
        raise EmailSendError(f"{provider} request failed: {exc}") from exc
    if resp.status_code >= 400:
        raise EmailSendError(f"{provider} error: {resp.status_code} {resp.text}")
    return resp.json()


def _send_resend(*, to_address: str, subject: str, html: str, text: str | None, envelope: Envelope) -> SendResult:
    if not settings.email_api_key:
        raise EmailSendError("EMAIL_API_KEY not configured for Resend")
    payload = {
        "from": envelope.from_address,
        "to": [to_address],
        "subject": subject,
        "html": html,
    }
    if text:
        payload["text"] = text
    if envelope.reply_to:
        payload["reply_to"] = envelope.reply_to
    if envelope.bcc:
        payload["bcc"] = envelope.bcc
    headers = {
        "Authorization": f"Bearer {settings.email_api_key}",
        "Content-Type": "application/json",
    }
    data = _post_json("https://api.resend.com/emails", payload, headers, "Resend")
    return SendResult(provider="resend", message_id=data.get("id"))


def _send_postmark(*, to_address: str, subject: str, html: str, text: str | None, envelope: Envelope) -> SendResult:
    if not settings.email_api_key:
        raise EmailSendError("EMAIL_API_KEY not configured for Postmark")
    payload = {
        "From": envelope.from_address,
        "To": to_address,
        "Subject": subject,
        "HtmlBody": html,
    }
    if text:
        payload["TextBody"] = text
    if envelope.reply_to:
        payload["ReplyTo"] = envelope.reply_to
    if envelope.bcc:
        payload["Bcc"] = ",".join(envelope.bcc)
    headers = {
        "X-Postmark-Server-Token": settings.email_api_key,
        "Content-Type": "application/json",
    }
    data = _post_json("https://api.postmarkapp.com/email", payload, headers, "Postmark")
    return SendResult(provider="postmark", message_id=data.get("MessageID"))


def _send_smtp(*, to_address: str, subject: str, html: str, text: str | None, envelope: Envelope) -> SendResult:
    if not settings.smtp_host:
        raise EmailSendError("SMTP_HOST not configured")
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = envelope.from_address
    message["To"] = to_address
    if envelope.reply_to:
        message["Reply-To"] = envelope.reply_to
    if envelope.bcc:
        message["Bcc"] = ", ".join(envelope.bcc)
    message.set_content(text or "This email requires an HTML-capable client.")
    if html:
        message.add_alternative(html, subtype="html")

    try:
        with smtplib.SMTP(
            settings.smtp_host,
            settings.smtp_port,
            timeout=settings.notification_send_timeout_seconds,
        ) as server:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_username and settings.smtp_password:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(message)
    except (smtplib.SMTPException, OSError) as exc:
        raise EmailSendError(f"SMTP error: {exc}") from exc
    return SendResult(provider="smtp")


def _configured_from(config: EmailConfig) -> Optional[str]:
    if not (config.from_name or config.from_email):
        return None
    default_name, default_address = parseaddr(settings.email_from or "")
    address = config.from_email or default_address
    if not address:
        return None
    return formataddr((config.from_name or default_name, address))


class EmailSender:
    """Callable the dispatcher and admin endpoints send through.

    With an ``EmailConfig`` row it applies the admin settings: from name,
    reply-to, BCC, footers, and the test-mode redirect of every message to a
    single address. Tests swap in fakes with the same call shape.
    """

    def __init__(self, config: Optional[EmailConfig] = None) -> None:
        self.config = config

    def __call__(self, *, to_address: str, subject: str, html: str, text: str | None = None) -> SendResult:
        config = self.config
        if config is None:
            return send_email(to_address=to_address, subject=subject, html=html, text=text)

        if config.test_mode_enabled and config.test_email_address:
            to_address = config.test_email_address
        if config.footer_html:
            html = f"{html}{FOOTER_RULE}{config.footer_html}"
        if config.footer_text:
            text = f"{text or ''}\n\n---\n{config.footer_text}"
        bcc = [config.bcc_email] if config.bcc_email and config.bcc_email.lower() != to_address.lower() else []
        return send_email(
            to_address=to_address,
            subject=subject,
            html=html,
            text=text,
            from_address=_configured_from(config),
            reply_to=config.reply_to_email or None,
            bcc=bcc,
        )
