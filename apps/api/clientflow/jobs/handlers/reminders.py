"""Appointment reminder job handler."""

from __future__ import annotations

import logging
from datetime import datetime

from clientflow.db.enums import REMINDABLE_APPOINTMENT_STATUSES, ReminderType
from clientflow.jobs.errors import JobSkipped
from clientflow.jobs.utils import coerce_uuid, recipient_for_contact
from clientflow.services import appointment_service, messaging_service, reminder_service

logger = logging.getLogger(__name__)

REMINDER_SUBJECT = "Appointment reminder"


def _coerce_reminder_type(raw_type: str | None) -> ReminderType | None:
    try:
        return ReminderType(raw_type)
    except ValueError:
        return None


async def process_appointment_reminder(db, job, *, now: datetime | None = None) -> None:
    """
    Send one appointment reminder, at most once per (appointment, offset).

    Canceled or finished appointments and already-sent reminders are skipped.
    Raises ReminderInFlightError while another job holds the marker.
    """
    logger.info("Processing appointment reminder job %s", job.id)
    payload = job.payload or {}

    appointment_id = coerce_uuid(payload.get("appointment_id"))
    reminder_type = _coerce_reminder_type(payload.get("reminder_type"))
    if not appointment_id or reminder_type is None:
        raise JobSkipped("Reminder payload is missing appointment_id or reminder_type")

    appointment = appointment_service.get_appointment(db, job.organization_id, appointment_id)
    if appointment is None:
        raise JobSkipped(f"Appointment {appointment_id} not found")
    if appointment.status not in {s.value for s in REMINDABLE_APPOINTMENT_STATUSES}:
        raise JobSkipped(f"Appointment {appointment_id} is {appointment.status}")

    recipient = recipient_for_contact(appointment.contact)
    if recipient is None:
        raise JobSkipped(f"Appointment {appointment_id} has no reachable contact")

    record = reminder_service.reserve_reminder(
        db,
        org_id=job.organization_id,
        appointment_id=appointment.id,
        reminder_type=reminder_type,
        job_id=job.id,
        now=now,
    )
    if record is None:
        raise JobSkipped(f"Reminder {reminder_type.value} already sent for {appointment_id}")

    message = payload.get("message") or reminder_service.build_reminder_message(
        appointment, reminder_type
    )
    try:
        delivery = await messaging_service.deliver(
            job.organization_id, recipient, body=message, subject=REMINDER_SUBJECT
        )
    except Exception:
        reminder_service.release_reminder(db, record, job_id=job.id, now=now)
        raise

    marked = reminder_service.mark_reminder_sent(
        db,
        record,
        job_id=job.id,
        channel=delivery.channel.value,
        provider_message_id=delivery.result.message_id,
        now=now,
    )
    if not marked:
        logger.warning(
            "Reminder marker for appointment %s moved during send (job=%s)",
            appointment_id,
            job.id,
        )
    logger.info(
        "Sent %s reminder for appointment %s via %s",
        reminder_type.value,
        appointment_id,
        delivery.channel.value,
    )
