"""Automation triggers - map an automation name and payload onto a queued job."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from clientflow.db.enums import AutomationType, JobType, ReminderType
from clientflow.db.models import Job, Organization
from clientflow.services import appointment_service, job_service
from clientflow.utils.timezones import previous_local_day

logger = logging.getLogger(__name__)

# Aliases kept for callers of the older automation names
AUTOMATION_ALIASES: dict[AutomationType, AutomationType] = {
    AutomationType.BOOKING: AutomationType.REMINDER,
    AutomationType.REVIEW: AutomationType.NURTURE,
}


def resolve_automation(automation_type: AutomationType) -> AutomationType:
    return AUTOMATION_ALIASES.get(automation_type, automation_type)


def _parse_uuid(value, field: str) -> UUID:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be a UUID")


def _reminder_job(db: Session, org_id: UUID, payload: dict) -> tuple[JobType, dict]:
    if not payload.get("appointment_id"):
        if not (payload.get("contact_id") or payload.get("phone") or payload.get("email")):
            raise ValueError("reminder needs appointment_id, contact_id, phone or email")
        return JobType.CONTACT_REMINDER, payload

    appointment_id = _parse_uuid(payload["appointment_id"], "appointment_id")
    appointment = appointment_service.get_appointment(db, org_id, appointment_id)
    if appointment is None:
        raise LookupError(f"Appointment {appointment_id} not found")
    try:
        reminder_type = ReminderType(payload.get("reminder_type") or ReminderType.H24.value)
    except ValueError:
        raise ValueError("reminder_type must be one of: 24h, 3h")
    return JobType.APPOINTMENT_REMINDER, {
        **payload,
        "org_id": str(org_id),
        "appointment_id": str(appointment.id),
        "contact_id": str(appointment.contact_id) if appointment.contact_id else None,
        "reminder_type": reminder_type.value,
    }


def _snapshot_job(db: Session, org_id: UUID, payload: dict) -> tuple[JobType, dict]:
    raw_date = payload.get("date")
    if raw_date:
        try:
            snapshot_date = date.fromisoformat(str(raw_date))
        except ValueError:
            raise ValueError("date must be an ISO date (YYYY-MM-DD)")
    else:
        org = db.query(Organization).filter(Organization.id == org_id).one()
        snapshot_date = previous_local_day(datetime.now(timezone.utc), org.timezone)
    return JobType.DAILY_SNAPSHOT, {"org_id": str(org_id), "date": snapshot_date.isoformat()}


def run_automation(
    db: Session,
    org_id: UUID,
    automation_type: AutomationType,
    payload: dict | None = None,
) -> tuple[Job, bool]:
    """
    Enqueue the job for one automation run. Returns (job, created).

    Raises ValueError for a bad payload and LookupError when a referenced
    record does not belong to the org.
    """
    payload = dict(payload or {})
    idempotency_key = payload.pop("idempotency_key", None)
    resolved = resolve_automation(automation_type)

    if resolved == AutomationType.REMINDER:
        job_type, job_payload = _reminder_job(db, org_id, payload)
    elif resolved == AutomationType.NURTURE:
        job_type, job_payload = JobType.NURTURE, payload
    elif resolved == AutomationType.DUNNING:
        job_type, job_payload = JobType.DUNNING, payload
    elif resolved == AutomationType.SNAPSHOT:
        job_type, job_payload = _snapshot_job(db, org_id, payload)
    else:
        raise ValueError(f"Unknown automation type: {automation_type.value}")

    if idempotency_key is not None:
        idempotency_key = f"automation:{org_id}:{idempotency_key}"
    job, created = job_service.enqueue_once(
        db, org_id, job_type, job_payload, idempotency_key=idempotency_key
    )
    logger.info(
        "Automation %s queued as %s job %s (org=%s created=%s)",
        automation_type.value,
        job_type.value,
        job.id,
        org_id,
        created,
    )
    return job, created
