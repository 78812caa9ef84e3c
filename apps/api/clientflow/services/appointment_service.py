"""Appointment read helpers used by the automation API."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy.orm import Session, joinedload

from clientflow.db.enums import AppointmentStatus, REMINDABLE_APPOINTMENT_STATUSES
from clientflow.db.models import Appointment

NEXT_24H = timedelta(hours=24)
MAX_REMINDER_OFFSET_MINUTES = 24 * 60


@dataclass(frozen=True)
class UpcomingAppointment:
    appointment: Appointment
    reminder_offset_minutes: int


def get_appointment(db: Session, org_id: UUID, appointment_id: UUID) -> Appointment | None:
    return (
        db.query(Appointment)
        .filter(Appointment.id == appointment_id, Appointment.organization_id == org_id)
        .first()
    )


def reminder_offset_minutes(starts_at: datetime, now: datetime) -> int:
    """Whole minutes until start, clamped to [0, 1440]."""
    minutes = int((starts_at - now).total_seconds() // 60)
    return max(0, min(MAX_REMINDER_OFFSET_MINUTES, minutes))


def list_next_24h(
    db: Session, org_id: UUID, *, now: datetime | None = None
) -> list[UpcomingAppointment]:
    """Pending or confirmed appointments starting in the next 24 hours."""
    now = now or datetime.now(timezone.utc)
    appointments = (
        db.query(Appointment)
        .options(joinedload(Appointment.contact))
        .filter(
            Appointment.organization_id == org_id,
            Appointment.status.in_([s.value for s in REMINDABLE_APPOINTMENT_STATUSES]),
            Appointment.starts_at >= now,
            Appointment.starts_at <= now + NEXT_24H,
        )
        .order_by(Appointment.starts_at.asc())
        .all()
    )
    return [
        UpcomingAppointment(
            appointment=appointment,
            reminder_offset_minutes=reminder_offset_minutes(appointment.starts_at, now),
        )
        for appointment in appointments
    ]


def list_completed_within(
    db: Session,
    org_id: UUID,
    within: timedelta,
    *,
    now: datetime | None = None,
) -> list[Appointment]:
    """Appointments marked completed within the period, by last update time."""
    now = now or datetime.now(timezone.utc)
    return (
        db.query(Appointment)
        .options(joinedload(Appointment.contact))
        .filter(
            Appointment.organization_id == org_id,
            Appointment.status == AppointmentStatus.COMPLETED.value,
            Appointment.updated_at >= now - within,
        )
        .order_by(Appointment.updated_at.desc())
        .all()
    )


def parse_within(value: str) -> timedelta:
    """Parse a period such as '1d', '12h' or '30m'."""
    value = (value or "").strip().lower()
    units = {"d": "days", "h": "hours", "m": "minutes"}
    if len(value) < 2 or value[-1] not in units or not value[:-1].isdigit():
        raise ValueError(f"Invalid period: {value!r}")
    amount = int(value[:-1])
    if amount <= 0:
        raise ValueError(f"Invalid period: {value!r}")
    return timedelta(**{units[value[-1]]: amount})


def list_appointments(
    db: Session, org_id: UUID, *, page: int = 1, limit: int = 20
) -> tuple[list[Appointment], int]:
    """Newest-first page of an org's appointments, plus the total count."""
    query = db.query(Appointment).filter(Appointment.organization_id == org_id)
    total = query.count()
    appointments = (
        query.options(joinedload(Appointment.contact))
        .order_by(Appointment.starts_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return appointments, total
