"""Contact message job handlers (nurture, dunning, manual reminders)."""

from __future__ import annotations

import logging
from datetime import datetime

from clientflow.jobs.errors import JobSkipped
from clientflow.jobs.utils import resolve_recipient
from clientflow.services import messaging_service

logger = logging.getLogger(__name__)

NURTURE_BODY = "Thank you for your interest! We'll be in touch soon."
NURTURE_SUBJECT = "Thank you for your interest"
DUNNING_BODY = "Payment reminder: Please update your payment method to continue service."
DUNNING_SUBJECT = "Payment Reminder"
CONTACT_REMINDER_BODY = "This is a friendly reminder from your service provider."
CONTACT_REMINDER_SUBJECT = "Reminder"


async def _send_contact_message(db, job, *, default_body: str, default_subject: str) -> None:
    payload = job.payload or {}
    recipient = resolve_recipient(db, job.organization_id, payload)
    if recipient is None:
        raise JobSkipped(f"{job.job_type} job has no reachable recipient")

    delivery = await messaging_service.deliver(
        job.organization_id,
        recipient,
        body=payload.get("message") or default_body,
        subject=payload.get("subject") or default_subject,
    )
    logger.info(
        "Sent %s message via %s (job=%s sandbox=%s)",
        job.job_type,
        delivery.channel.value,
        job.id,
        delivery.result.sandbox,
    )


async def process_nurture(db, job, *, now: datetime | None = None) -> None:
    """Send one nurture (drip) message."""
    logger.info("Processing nurture job %s", job.id)
    await _send_contact_message(
        db, job, default_body=NURTURE_BODY, default_subject=NURTURE_SUBJECT
    )


async def process_dunning(db, job, *, now: datetime | None = None) -> None:
    """Send one payment notice."""
    logger.info("Processing dunning job %s", job.id)
    await _send_contact_message(
        db, job, default_body=DUNNING_BODY, default_subject=DUNNING_SUBJECT
    )


async def process_contact_reminder(db, job, *, now: datetime | None = None) -> None:
    """Send a manual reminder that is not tied to an appointment."""
    logger.info("Processing contact reminder job %s", job.id)
    await _send_contact_message(
        db, job, default_body=CONTACT_REMINDER_BODY, default_subject=CONTACT_REMINDER_SUBJECT
    )
