from __future__ import annotations

import json

import httpx
import pytest

from app.core.errors import EmailSendError, SMSSendError
from app.core.settings import settings
from app.models.email_config import EmailConfig
from app.services.email import EmailSender, send_email
from app.services.sms import clean_phone_number, is_valid_phone_number, send_sms, truncate_sms


def _mock_http(monkeypatch, handler):
    real_client = httpx.Client
    requests: list[httpx.Request] = []

    def recording(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(recording), **kwargs)

    monkeypatch.setattr(httpx, "Client", client_factory)
    return requests


@pytest.fixture()
def twilio(monkeypatch):
    monkeypatch.setattr(settings, "sms_provider", "twilio")
    monkeypatch.setattr(settings, "twilio_account_sid", "AC123")
    monkeypatch.setattr(settings, "twilio_auth_token", "secret")
    monkeypatch.setattr(settings, "twilio_phone_number", "+15550000000")


@pytest.fixture()
def resend(monkeypatch):
    monkeypatch.setattr(settings, "email_provider", "resend")
    monkeypatch.setattr(settings, "email_api_key", "re_test")
    monkeypatch.setattr(settings, "email_from", "Transfers <transfers@example.com>")


@pytest.mark.parametrize(
    "raw, cleaned",
    [
        ("(201) 555-0123", "+12015550123"),
        ("201.555.0123", "+12015550123"),
        ("+44 121 234 5678", "+441212345678"),
        ("1-201-555-0123", "+12015550123"),
    ],
)
def test_clean_phone_number(raw, cleaned):
    assert clean_phone_number(raw) == cleaned
    assert is_valid_phone_number(cleaned)


def test_invalid_phone_numbers():
    assert not is_valid_phone_number(clean_phone_number(""))
    assert not is_valid_phone_number(clean_phone_number("call me"))
    assert not is_valid_phone_number("+0123")
    assert clean_phone_number("555-0100") == "+15550100"
    assert not is_valid_phone_number("555-0100")


def test_truncate_sms():
    assert truncate_sms("short", 160) == "short"
    long = "a" * 200
    truncated = truncate_sms(long, 160)
    assert len(truncated) == 160
    assert truncated.endswith("...")


def test_disabled_providers_raise():
    with pytest.raises(SMSSendError, match="disabled"):
        send_sms(to_number="+12015550123", body="hi")
    with pytest.raises(EmailSendError, match="disabled"):
        send_email(to_address="a@example.com", subject="s", html="<p>h</p>")


def test_twilio_send(monkeypatch, twilio):
    requests = _mock_http(monkeypatch, lambda request: httpx.Response(201, json={"sid": "SM42"}))

    result = send_sms(to_number="(201) 555-0123", body="Transfer approved")

    assert result.provider == "twilio"
    assert result.message_id == "SM42"
    (request,) = requests
    assert request.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
    form = dict(pair.split("=", 1) for pair in request.content.decode().split("&"))
    assert form["To"] == "%2B12015550123"
    assert form["From"] == "%2B15550000000"
    assert request.headers["authorization"].startswith("Basic ")


def test_twilio_rejects_invalid_number_without_calling(monkeypatch, twilio):
    requests = _mock_http(monkeypatch, lambda request: httpx.Response(201, json={}))

    with pytest.raises(SMSSendError, match="Invalid phone number"):
        send_sms(to_number="call me", body="hi")
    assert requests == []


def test_twilio_error_status(monkeypatch, twilio):
    _mock_http(monkeypatch, lambda request: httpx.Response(400, json={"message": "bad"}))

    with pytest.raises(SMSSendError, match="Twilio error: 400"):
        send_sms(to_number="+12015550123", body="hi")


def test_twilio_missing_credentials(monkeypatch, twilio):
    monkeypatch.setattr(settings, "twilio_auth_token", None)
    with pytest.raises(SMSSendError, match="credentials"):
        send_sms(to_number="+12015550123", body="hi")


def test_resend_send(monkeypatch, resend):
    requests = _mock_http(monkeypatch, lambda request: httpx.Response(200, json={"id": "email-1"}))

    result = send_email(to_address="m@example.com", subject="Hello", html="<p>Hi</p>", text="Hi")

    assert (result.provider, result.message_id) == ("resend", "email-1")
    payload = json.loads(requests[0].content)
    assert payload == {
        "from": "Transfers <transfers@example.com>",
        "to": ["m@example.com"],
        "subject": "Hello",
        "html": "<p>Hi</p>",
        "text": "Hi",
    }
    assert requests[0].headers["authorization"] == "Bearer re_test"


def test_provider_timeout_becomes_send_error(monkeypatch, resend):
    def timeout(request):
        raise httpx.ReadTimeout("slow", request=request)

    _mock_http(monkeypatch, timeout)

    with pytest.raises(EmailSendError, match="timed out"):
        send_email(to_address="m@example.com", subject="Hello", html="<p>Hi</p>")


def test_email_sender_applies_saved_settings(monkeypatch, resend):
    requests = _mock_http(monkeypatch, lambda request: httpx.Response(200, json={"id": "email-2"}))
    config = EmailConfig(
        from_name="North Group Transfers",
        reply_to_email="desk@example.com",
        bcc_email="archive@example.com",
        footer_html="<p>North Group</p>",
        footer_text="North Group",
        test_mode_enabled=False,
    )

    EmailSender(config)(to_address="m@example.com", subject="Hello", html="<p>Hi</p>", text="Hi")

    payload = json.loads(requests[0].content)
    assert payload["from"] == "North Group Transfers <transfers@example.com>"
    assert payload["to"] == ["m@example.com"]
    assert payload["reply_to"] == "desk@example.com"
    assert payload["bcc"] == ["archive@example.com"]
    assert payload["html"].startswith("<p>Hi</p><hr")
    assert payload["html"].endswith("<p>North Group</p>")
    assert payload["text"] == "Hi\n\n---\nNorth Group"


def test_email_sender_test_mode_redirects_every_message(monkeypatch, resend):
    requests = _mock_http(monkeypatch, lambda request: httpx.Response(200, json={"id": "email-3"}))
    config = EmailConfig(test_mode_enabled=True, test_email_address="qa@example.com", bcc_email="qa@example.com")

    EmailSender(config)(to_address="m@example.com", subject="Hello", html="<p>Hi</p>")

    payload = json.loads(requests[0].content)
    assert payload["to"] == ["qa@example.com"]
    assert payload["from"] == "Transfers <transfers@example.com>"
    assert "bcc" not in payload
    assert "text" not in payload
