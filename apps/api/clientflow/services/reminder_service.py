"""Appointment reminder scanning and reminder delivery markers."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import and_, exists, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clientflow.core.config import settings
from clientflow.db.enums import (
    REMINDABLE_APPOINTMENT_STATUSES,
    JobType,
    ReminderStatus,
    ReminderType,
)
from clientflow.db.models import Appointment, Organization, ReminderRecord
from clientflow.services import job_service
from clientflow.utils.timezones import resolve_timezone

logger = logging.getLogger(__name__)

REMINDER_OFFSETS: dict[ReminderType, timedelta] = {
    ReminderType.H24: timedelta(hours=24),
    ReminderType.H3: timedelta(hours=3),
}


def reminder_idempotency_key(appointment_id: UUID | str, reminder_type: ReminderType) -> str:
    return f"reminder:{appointment_id}:{reminder_type.value}"


def build_reminder_message(
    appointment: Appointment, reminder_type: ReminderType, tz_name: str | None = None
) -> str:
    local_start = appointment.starts_at.astimezone(resolve_timezone(tz_name))
    when = local_start.strftime("%a %b %d at %I:%M %p").replace(" 0", " ")
    if reminder_type == ReminderType.H24:
        return f"Reminder: You have an appointment tomorrow, {when}."
    return f"Reminder: You have an appointment in 3 hours, {when}."


# =============================================================================
# Scanner
# =============================================================================


def find_appointments_needing_reminder(
    db: Session,
    reminder_type: ReminderType,
    *,
    now: datetime,
    org_id: UUID | None = None,
) -> list[tuple[Appointment, str]]:
    """
    Appointments starting within [now, now + offset] with no reminder record yet.

    Returns (appointment, org timezone) pairs.
    """
    window_end = now + REMINDER_OFFSETS[reminder_type]
    already_recorded = exists().where(
        ReminderRecord.appointment_id == Appointment.id,
        ReminderRecord.reminder_type == reminder_type.value,
    )
    stmt = (
        select(Appointment, Organization.timezone)
        .join(Organization, Organization.id == Appointment.organization_id)
        .where(
            Appointment.status.in_([s.value for s in REMINDABLE_APPOINTMENT_STATUSES]),
            Appointment.starts_at >= now,
            Appointment.starts_at <= window_end,
            ~already_recorded,
        )
        .order_by(Appointment.starts_at)
    )
    if org_id:
        stmt = stmt.where(Appointment.organization_id == org_id)
    return [(row[0], row[1]) for row in db.execute(stmt).all()]


def enqueue_appointment_reminder(
    db: Session,
    appointment: Appointment,
    reminder_type: ReminderType,
    *,
    now: datetime,
    message: str | None = None,
    tz_name: str | None = None,
) -> tuple[bool, UUID]:
    """
    Enqueue the reminder job for one (appointment, offset) pair.

    Returns (created, job_id); created is False when the pair was already queued.
    """
    idempotency_key = reminder_idempotency_key(appointment.id, reminder_type)
    run_at = max(now, appointment.starts_at - REMINDER_OFFSETS[reminder_type])
    job, created = job_service.enqueue_once(
        db,
        appointment.organization_id,
        JobType.APPOINTMENT_REMINDER,
        {
            "org_id": str(appointment.organization_id),
            "contact_id": str(appointment.contact_id) if appointment.contact_id else None,
            "appointment_id": str(appointment.id),
            "message": message or build_reminder_message(appointment, reminder_type, tz_name),
            "reminder_type": reminder_type.value,
            "scheduled_for": appointment.starts_at.isoformat(),
        },
        run_at=run_at,
        idempotency_key=idempotency_key,
    )
    return created, job.id


def scan_appointment_reminders(
    db: Session,
    *,
    now: datetime | None = None,
    org_id: UUID | None = None,
) -> dict:
    """
    Hourly scan: enqueue one reminder job per (appointment, offset) that needs one.

    Safe to run repeatedly; store errors propagate so the caller can retry on
    the next tick without anything having been marked as sent.
    """
    now = now or datetime.now(timezone.utc)
    stats = {
        "appointments_checked": 0,
        "jobs_created": 0,
        "duplicates_skipped": 0,
        "by_offset": {},
    }

    for reminder_type in REMINDER_OFFSETS:
        candidates = find_appointments_needing_reminder(
            db, reminder_type, now=now, org_id=org_id
        )
        created_count = 0
        for appointment, tz_name in candidates:
            stats["appointments_checked"] += 1
            try:
                created, job_id = enqueue_appointment_reminder(
                    db, appointment, reminder_type, now=now, tz_name=tz_name
                )
            except IntegrityError:
                db.rollback()
                stats["duplicates_skipped"] += 1
                continue
            if created:
                created_count += 1
                stats["jobs_created"] += 1
            else:
                stats["duplicates_skipped"] += 1
        stats["by_offset"][reminder_type.value] = created_count

    logger.info(
        "Reminder scan complete (checked=%s created=%s duplicates=%s)",
        stats["appointments_checked"],
        stats["jobs_created"],
        stats["duplicates_skipped"],
    )
    return stats


# =============================================================================
# Delivery markers (compare-and-set)
# =============================================================================


class ReminderInFlightError(Exception):
    """Another job currently holds the reminder marker."""


def get_reminder_record(
    db: Session, appointment_id: UUID, reminder_type: ReminderType
) -> ReminderRecord | None:
    return (
        db.query(ReminderRecord)
        .filter(
            ReminderRecord.appointment_id == appointment_id,
            ReminderRecord.reminder_type == reminder_type.value,
        )
        .first()
    )


def reserve_reminder(
    db: Session,
    *,
    org_id: UUID,
    appointment_id: UUID,
    reminder_type: ReminderType,
    job_id: UUID,
    now: datetime | None = None,
) -> ReminderRecord | None:
    """
    Take the (appointment, offset) marker for this job before sending.

    Returns None when the reminder was already sent. Raises
    ReminderInFlightError when a different job is mid-send.
    """
    now = now or datetime.now(timezone.utc)
    record = get_reminder_record(db, appointment_id, reminder_type)
    if record is None:
        record = ReminderRecord(
            organization_id=org_id,
            appointment_id=appointment_id,
            reminder_type=reminder_type.value,
            status=ReminderStatus.SENDING.value,
            job_id=job_id,
            created_at=now,
            updated_at=now,
        )
        db.add(record)
        try:
            db.commit()
            db.refresh(record)
            return record
        except IntegrityError:
            db.rollback()
            record = get_reminder_record(db, appointment_id, reminder_type)
            if record is None:
                raise

    if record.status == ReminderStatus.SENT.value:
        return None

    stale_before = now - timedelta(seconds=settings.JOB_VISIBILITY_TIMEOUT_SECONDS)
    result = db.execute(
        update(ReminderRecord)
        .where(
            ReminderRecord.id == record.id,
            or_(
                ReminderRecord.status == ReminderStatus.FAILED.value,
                and_(
                    ReminderRecord.status == ReminderStatus.SENDING.value,
                    or_(
                        ReminderRecord.job_id == job_id,
                        ReminderRecord.updated_at < stale_before,
                    ),
                ),
            ),
        )
        .values(status=ReminderStatus.SENDING.value, job_id=job_id, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount != 1:
        db.refresh(record)
        if record.status == ReminderStatus.SENT.value:
            return None
        raise ReminderInFlightError(
            f"Reminder {reminder_type.value} for appointment {appointment_id} is held by job {record.job_id}"
        )
    db.refresh(record)
    return record


def mark_reminder_sent(
    db: Session,
    record: ReminderRecord,
    *,
    job_id: UUID,
    channel: str,
    provider_message_id: str | None,
    now: datetime | None = None,
) -> bool:
    """Flip sending → sent for the holding job. Returns False if the marker moved."""
    now = now or datetime.now(timezone.utc)
    result = db.execute(
        update(ReminderRecord)
        .where(
            ReminderRecord.id == record.id,
            ReminderRecord.status == ReminderStatus.SENDING.value,
            ReminderRecord.job_id == job_id,
        )
        .values(
            status=ReminderStatus.SENT.value,
            channel=channel,
            provider_message_id=provider_message_id,
            sent_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(record)
    return result.rowcount == 1


def release_reminder(
    db: Session, record: ReminderRecord, *, job_id: UUID, now: datetime | None = None
) -> None:
    """Give the marker back after a failed send so a retry can take it."""
    now = now or datetime.now(timezone.utc)
    db.execute(
        update(ReminderRecord)
        .where(
            ReminderRecord.id == record.id,
            ReminderRecord.status == ReminderStatus.SENDING.value,
            ReminderRecord.job_id == job_id,
        )
        .values(status=ReminderStatus.FAILED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
