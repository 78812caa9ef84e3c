"""Contact messaging - pick a channel and deliver through the notification senders."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from uuid import UUID

from clientflow.core.config import settings
from clientflow.db.enums import MessageChannel
from clientflow.jobs.errors import JobSkipped, SendFailedError
from clientflow.services import notification_senders
from clientflow.services.notification_senders import SendResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recipient:
    phone: str | None = None
    email: str | None = None
    name: str | None = None


@dataclass(frozen=True)
class Delivery:
    channel: MessageChannel
    result: SendResult


def choose_channel(recipient: Recipient) -> MessageChannel | None:
    """SMS when the recipient has a phone, email otherwise."""
    if recipient.phone:
        return MessageChannel.SMS
    if recipient.email:
        return MessageChannel.EMAIL
    return None


def _as_html(body: str) -> str:
    if body.lstrip().startswith("<"):
        return body
    return f"<p>{body}</p>"


async def deliver(
    org_id: UUID,
    recipient: Recipient,
    *,
    body: str,
    subject: str,
    timeout: float | None = None,
) -> Delivery:
    """
    Send one message and return the delivery, or raise.

    Raises JobSkipped when the recipient has no reachable address and
    SendFailedError when the sender reports failure or the call times out.
    """
    channel = choose_channel(recipient)
    if channel is None:
        raise JobSkipped("Recipient has neither phone nor email")

    timeout = timeout if timeout is not None else settings.SENDER_TIMEOUT_SECONDS
    if channel == MessageChannel.SMS:
        call = notification_senders.send_sms(org_id, recipient.phone, body)
    else:
        call = notification_senders.send_email(org_id, recipient.email, subject, _as_html(body))

    try:
        result = await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError:
        result = SendResult(
            success=False,
            error=f"{channel.value} send exceeded {timeout:.0f}s",
            error_code="timeout",
        )

    if not result.success:
        raise SendFailedError(result, channel=channel.value)
    if result.sandbox:
        logger.info("Sandbox delivery via %s for org=%s", channel.value, org_id)
    return Delivery(channel=channel, result=result)
