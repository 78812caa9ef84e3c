"""
Notification senders - deliver a single SMS (Twilio) or email (SendGrid).

Senders never retry and never raise for provider errors: they return a
SendResult and leave retry decisions to the job queue. Without credentials
they run in sandbox mode and report success without dispatching anything.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

import httpx

from clientflow.core.config import settings
from clientflow.core.structured_logging import mask_email, mask_phone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    success: bool
    message_id: str | None = None
    error: str | None = None
    error_code: str | None = None
    status_code: int | None = None
    sandbox: bool = False


class FailureKind(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


# Twilio error codes that will fail the same way on every retry
# https://www.twilio.com/docs/api/errors
TWILIO_PERMANENT_ERROR_CODES = frozenset(
    {
        "21211",  # Invalid 'To' phone number
        "21212",  # Invalid 'From' phone number
        "21214",  # 'To' number cannot be reached
        "21408",  # Permission to send to region not enabled
        "21610",  # Recipient unsubscribed (STOP)
        "21612",  # 'To' number not reachable via this 'From'
        "21614",  # 'To' number is not a mobile number
        "21606",  # 'From' number is not SMS capable
    }
)

# Local validation failures
LOCAL_PERMANENT_ERROR_CODES = frozenset({"missing_recipient", "invalid_recipient"})

TRANSIENT_HTTP_STATUSES = frozenset({408, 409, 425, 429})

_E164_RE = re.compile(r"^\+[1-9]\d{6,14}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def classify_send_failure(result: SendResult) -> FailureKind:
    """
    Decide whether a failed send is worth retrying.

    Known provider/validation codes are permanent; timeouts, network errors,
    throttling and 5xx are transient; other 4xx responses are permanent; an
    unknown failure without a status defaults to transient.
    """
    if result.error_code in LOCAL_PERMANENT_ERROR_CODES:
        return FailureKind.PERMANENT
    if result.error_code in TWILIO_PERMANENT_ERROR_CODES:
        return FailureKind.PERMANENT
    if result.error_code in ("timeout", "network_error"):
        return FailureKind.TRANSIENT
    status = result.status_code
    if status is None:
        return FailureKind.TRANSIENT
    if status in TRANSIENT_HTTP_STATUSES or status >= 500:
        return FailureKind.TRANSIENT
    if 400 <= status < 500:
        return FailureKind.PERMANENT
    return FailureKind.TRANSIENT


def normalize_phone(phone: str | None) -> str | None:
    """Normalize to E.164; bare 10-digit numbers are treated as US."""
    if not phone:
        return None
    digits = re.sub(r"[^\d+]", "", phone.strip())
    if not digits:
        return None
    if not digits.startswith("+"):
        if len(digits) == 10:
            digits = f"+1{digits}"
        elif len(digits) == 11 and digits.startswith("1"):
            digits = f"+{digits}"
        else:
            digits = f"+{digits}"
    return digits if _E164_RE.match(digits) else None


def normalize_email(email: str | None) -> str | None:
    if not email:
        return None
    email = email.strip().lower()
    return email if _EMAIL_RE.match(email) else None


def _html_to_text(html: str) -> str:
    text = re.sub(r"<[^>]+>", " ", html)
    return re.sub(r"\s+", " ", text).strip()


def _build_client(client: httpx.AsyncClient | None) -> tuple[httpx.AsyncClient, bool]:
    if client is not None:
        return client, False
    return httpx.AsyncClient(timeout=settings.SENDER_TIMEOUT_SECONDS), True


# =============================================================================
# SMS (Twilio)
# =============================================================================


async def send_sms(
    org_id: UUID | str,
    to: str,
    body: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> SendResult:
    """Send one SMS through Twilio's Messages API."""
    to_e164 = normalize_phone(to)
    if not to_e164:
        return SendResult(
            success=False,
            error="Recipient phone number is missing or invalid",
            error_code="invalid_recipient" if to else "missing_recipient",
        )

    if not settings.twilio_configured:
        logger.warning(
            "Twilio credentials not configured, using sandbox mode (org=%s to=%s)",
            org_id,
            mask_phone(to_e164),
        )
        return SendResult(success=True, sandbox=True)

    url = f"{settings.TWILIO_API_BASE}/Accounts/{settings.TWILIO_ACCOUNT_SID}/Messages.json"
    data = {"To": to_e164, "From": settings.TWILIO_FROM_NUMBER, "Body": body}

    http, owns_client = _build_client(client)
    try:
        response = await http.post(
            url,
            data=data,
            auth=(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN),
        )
    except httpx.TimeoutException as exc:
        logger.warning("Twilio request timed out (org=%s): %s", org_id, type(exc).__name__)
        return SendResult(success=False, error="Twilio request timed out", error_code="timeout")
    except httpx.RequestError as exc:
        logger.warning("Twilio request failed (org=%s): %s", org_id, type(exc).__name__)
        return SendResult(success=False, error=str(exc) or "network error", error_code="network_error")
    finally:
        if owns_client:
            await http.aclose()

    if response.status_code in (200, 201):
        sid = response.json().get("sid")
        logger.info("SMS sent (org=%s to=%s sid=%s)", org_id, mask_phone(to_e164), sid)
        return SendResult(success=True, message_id=sid, status_code=response.status_code)

    error_code = None
    message = f"Twilio returned {response.status_code}"
    try:
        body_json = response.json()
        if body_json.get("code") is not None:
            error_code = str(body_json["code"])
        message = body_json.get("message") or message
    except ValueError:
        pass
    logger.error(
        "Failed to send SMS (org=%s to=%s status=%s code=%s)",
        org_id,
        mask_phone(to_e164),
        response.status_code,
        error_code,
    )
    return SendResult(
        success=False,
        error=message,
        error_code=error_code,
        status_code=response.status_code,
    )


# =============================================================================
# Email (SendGrid)
# =============================================================================


async def send_email(
    org_id: UUID | str,
    to: str,
    subject: str,
    html: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> SendResult:
    """Send one email through SendGrid's v3 mail/send endpoint."""
    to_email = normalize_email(to)
    if not to_email:
        return SendResult(
            success=False,
            error="Recipient email is missing or invalid",
            error_code="invalid_recipient" if to else "missing_recipient",
        )

    if not settings.sendgrid_configured:
        logger.warning(
            "SendGrid credentials not configured, using sandbox mode (org=%s to=%s)",
            org_id,
            mask_email(to_email),
        )
        return SendResult(success=True, sandbox=True)

    payload = {
        "personalizations": [{"to": [{"email": to_email}]}],
        "from": {"email": settings.SENDGRID_FROM_EMAIL},
        "subject": subject,
        "content": [
            {"type": "text/plain", "value": _html_to_text(html) or subject},
            {"type": "text/html", "value": html},
        ],
        "custom_args": {"org_id": str(org_id)},
    }
    headers = {"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"}

    http, owns_client = _build_client(client)
    try:
        response = await http.post(settings.SENDGRID_API_URL, json=payload, headers=headers)
    except httpx.TimeoutException as exc:
        logger.warning("SendGrid request timed out (org=%s): %s", org_id, type(exc).__name__)
        return SendResult(success=False, error="SendGrid request timed out", error_code="timeout")
    except httpx.RequestError as exc:
        logger.warning("SendGrid request failed (org=%s): %s", org_id, type(exc).__name__)
        return SendResult(success=False, error=str(exc) or "network error", error_code="network_error")
    finally:
        if owns_client:
            await http.aclose()

    if response.status_code in (200, 202):
        message_id = response.headers.get("X-Message-Id")
        logger.info("Email sent (org=%s to=%s id=%s)", org_id, mask_email(to_email), message_id)
        return SendResult(success=True, message_id=message_id, status_code=response.status_code)

    message = f"SendGrid returned {response.status_code}"
    try:
        errors = response.json().get("errors") or []
        if errors and errors[0].get("message"):
            message = errors[0]["message"]
    except ValueError:
        pass
    logger.error(
        "Failed to send email (org=%s to=%s status=%s)",
        org_id,
        mask_email(to_email),
        response.status_code,
    )
    return SendResult(success=False, error=message, status_code=response.status_code)
