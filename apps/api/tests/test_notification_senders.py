"""
Sender tests against httpx.MockTransport; no network access.
"""
import json
import uuid

import httpx
import pytest

from clientflow.core.config import settings
from clientflow.services import notification_senders
from clientflow.services.notification_senders import (
    FailureKind,
    SendResult,
    classify_send_failure,
    normalize_email,
    normalize_phone,
)

ORG_ID = uuid.uuid4()


@pytest.fixture
def twilio_configured(monkeypatch):
    monkeypatch.setattr(settings, "TWILIO_ACCOUNT_SID", "AC123")
    monkeypatch.setattr(settings, "TWILIO_AUTH_TOKEN", "secret")
    monkeypatch.setattr(settings, "TWILIO_FROM_NUMBER", "+15555550000")


@pytest.fixture
def sendgrid_configured(monkeypatch):
    monkeypatch.setattr(settings, "SENDGRID_API_KEY", "SG.test")


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# =============================================================================
# Normalization
# =============================================================================


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("+15555550123", "+15555550123"),
        ("(555) 555-0123", "+15555550123"),
        ("1-555-555-0123", "+15555550123"),
        ("+44 20 7946 0958", "+442079460958"),
        ("", None),
        ("abc", None),
        ("123", None),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


def test_normalize_email():
    assert normalize_email("  Dana@Example.COM ") == "dana@example.com"
    assert normalize_email("not-an-email") is None


# =============================================================================
# SMS
# =============================================================================


@pytest.mark.asyncio
async def test_sms_sandbox_without_credentials():
    result = await notification_senders.send_sms(ORG_ID, "+15555550123", "Hello")

    assert result.success is True
    assert result.sandbox is True
    assert result.message_id is None


@pytest.mark.asyncio
async def test_sms_invalid_recipient_fails_without_request(twilio_configured):
    def handler(request):
        raise AssertionError("no request expected")

    async with _client(handler) as client:
        result = await notification_senders.send_sms(ORG_ID, "12", "Hello", client=client)

    assert result.success is False
    assert result.error_code == "invalid_recipient"
    assert classify_send_failure(result) == FailureKind.PERMANENT


@pytest.mark.asyncio
async def test_sms_posts_to_twilio(twilio_configured):
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["body"] = request.content.decode()
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(201, json={"sid": "SM123"})

    async with _client(handler) as client:
        result = await notification_senders.send_sms(
            ORG_ID, "(555) 555-0123", "See you tomorrow", client=client
        )

    assert result.success is True
    assert result.message_id == "SM123"
    assert seen["url"].endswith("/Accounts/AC123/Messages.json")
    assert "To=%2B15555550123" in seen["body"]
    assert seen["auth"].startswith("Basic ")


@pytest.mark.asyncio
async def test_sms_provider_error_carries_code(twilio_configured):
    def handler(request):
        return httpx.Response(400, json={"code": 21610, "message": "Unsubscribed recipient"})

    async with _client(handler) as client:
        result = await notification_senders.send_sms(ORG_ID, "+15555550123", "Hi", client=client)

    assert result.success is False
    assert result.error_code == "21610"
    assert result.status_code == 400
    assert result.error == "Unsubscribed recipient"
    assert classify_send_failure(result) == FailureKind.PERMANENT


@pytest.mark.asyncio
async def test_sms_timeout_is_transient(twilio_configured):
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    async with _client(handler) as client:
        result = await notification_senders.send_sms(ORG_ID, "+15555550123", "Hi", client=client)

    assert result.success is False
    assert result.error_code == "timeout"
    assert classify_send_failure(result) == FailureKind.TRANSIENT


@pytest.mark.asyncio
async def test_sms_network_error_is_transient(twilio_configured):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        result = await notification_senders.send_sms(ORG_ID, "+15555550123", "Hi", client=client)

    assert result.error_code == "network_error"
    assert classify_send_failure(result) == FailureKind.TRANSIENT


# =============================================================================
# Email
# =============================================================================


@pytest.mark.asyncio
async def test_email_sandbox_without_credentials():
    result = await notification_senders.send_email(ORG_ID, "dana@example.com", "Hi", "<p>Hi</p>")

    assert result.success is True
    assert result.sandbox is True


@pytest.mark.asyncio
async def test_email_posts_to_sendgrid(sendgrid_configured):
    seen = {}

    def handler(request: httpx.Request):
        seen["payload"] = json.loads(request.content)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(202, headers={"X-Message-Id": "msg-1"})

    async with _client(handler) as client:
        result = await notification_senders.send_email(
            ORG_ID, "Dana@Example.com", "Reminder", "<p>See you <b>soon</b></p>", client=client
        )

    assert result.success is True
    assert result.message_id == "msg-1"
    assert seen["auth"] == "Bearer SG.test"
    payload = seen["payload"]
    assert payload["personalizations"][0]["to"][0]["email"] == "dana@example.com"
    assert payload["content"][0] == {"type": "text/plain", "value": "See you soon"}
    assert payload["custom_args"] == {"org_id": str(ORG_ID)}


@pytest.mark.asyncio
async def test_email_server_error_is_transient(sendgrid_configured):
    def handler(request):
        return httpx.Response(503, json={"errors": [{"message": "try later"}]})

    async with _client(handler) as client:
        result = await notification_senders.send_email(
            ORG_ID, "dana@example.com", "Hi", "<p>Hi</p>", client=client
        )

    assert result.success is False
    assert result.error == "try later"
    assert classify_send_failure(result) == FailureKind.TRANSIENT


@pytest.mark.asyncio
async def test_email_missing_recipient(sendgrid_configured):
    result = await notification_senders.send_email(ORG_ID, "", "Hi", "<p>Hi</p>")

    assert result.error_code == "missing_recipient"


# =============================================================================
# Failure classification
# =============================================================================


@pytest.mark.parametrize(
    "result, expected",
    [
        (SendResult(success=False, error_code="missing_recipient"), FailureKind.PERMANENT),
        (SendResult(success=False, error_code="21211", status_code=400), FailureKind.PERMANENT),
        (SendResult(success=False, error_code="21610", status_code=400), FailureKind.PERMANENT),
        (SendResult(success=False, error_code="timeout"), FailureKind.TRANSIENT),
        (SendResult(success=False, error_code="network_error"), FailureKind.TRANSIENT),
        (SendResult(success=False, status_code=429), FailureKind.TRANSIENT),
        (SendResult(success=False, status_code=408), FailureKind.TRANSIENT),
        (SendResult(success=False, status_code=500), FailureKind.TRANSIENT),
        (SendResult(success=False, status_code=503), FailureKind.TRANSIENT),
        (SendResult(success=False, status_code=401), FailureKind.PERMANENT),
        (SendResult(success=False, status_code=400), FailureKind.PERMANENT),
        (SendResult(success=False), FailureKind.TRANSIENT),
    ],
)
def test_classify_send_failure(result, expected):
    assert classify_send_failure(result) == expected
