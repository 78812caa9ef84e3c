"""Daily KPI snapshots - compute per org-local day and upsert by (org, date)."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from clientflow.db.enums import AppointmentStatus, DealStage, JobType
from clientflow.db.models import (
    Appointment,
    Call,
    Contact,
    DailySnapshot,
    Deal,
    Organization,
)
from clientflow.services import job_service
from clientflow.utils.timezones import (
    local_day_bounds,
    previous_local_day,
    resolve_timezone,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotMetrics:
    calls: int = 0
    leads: int = 0
    bookings: int = 0
    appointments_held: int = 0
    no_shows: int = 0
    show_rate: float = 0.0
    conversions: int = 0
    revenue_cents: int = 0


def snapshot_idempotency_key(org_id: UUID | str, snapshot_date: date) -> str:
    return f"snapshot:{org_id}:{snapshot_date.isoformat()}"


def compute_daily_snapshot(db: Session, org_id: UUID, snapshot_date: date) -> SnapshotMetrics:
    """Roll up one org-local day. Read-only."""
    org = db.query(Organization).filter(Organization.id == org_id).first()
    if org is None:
        raise ValueError(f"Organization {org_id} not found")
    start, end = local_day_bounds(snapshot_date, org.timezone)

    calls = (
        db.query(func.count(Call.id))
        .filter(Call.organization_id == org_id, Call.started_at >= start, Call.started_at < end)
        .scalar()
    )
    leads = (
        db.query(func.count(Contact.id))
        .filter(
            Contact.organization_id == org_id,
            Contact.created_at >= start,
            Contact.created_at < end,
        )
        .scalar()
    )
    bookings = (
        db.query(func.count(Appointment.id))
        .filter(
            Appointment.organization_id == org_id,
            Appointment.created_at >= start,
            Appointment.created_at < end,
        )
        .scalar()
    )

    # Held / no-show are counted by the day the appointment was scheduled for
    outcome_counts = dict(
        db.query(Appointment.status, func.count(Appointment.id))
        .filter(
            Appointment.organization_id == org_id,
            Appointment.starts_at >= start,
            Appointment.starts_at < end,
            Appointment.status.in_(
                [AppointmentStatus.COMPLETED.value, AppointmentStatus.NO_SHOW.value]
            ),
        )
        .group_by(Appointment.status)
        .all()
    )
    held = outcome_counts.get(AppointmentStatus.COMPLETED.value, 0)
    no_shows = outcome_counts.get(AppointmentStatus.NO_SHOW.value, 0)
    show_rate = round(held / (held + no_shows), 4) if held + no_shows else 0.0

    conversions, revenue = (
        db.query(func.count(Deal.id), func.coalesce(func.sum(Deal.value_cents), 0))
        .filter(
            Deal.organization_id == org_id,
            Deal.stage == DealStage.WON.value,
            Deal.closed_at.is_not(None),
            Deal.closed_at >= start,
            Deal.closed_at < end,
        )
        .one()
    )

    return SnapshotMetrics(
        calls=calls or 0,
        leads=leads or 0,
        bookings=bookings or 0,
        appointments_held=held,
        no_shows=no_shows,
        show_rate=show_rate,
        conversions=conversions or 0,
        revenue_cents=int(revenue or 0),
    )


def _dialect_insert(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Snapshot upsert is not supported on {dialect}")


def upsert_daily_snapshot(
    db: Session, org_id: UUID, snapshot_date: date, metrics: SnapshotMetrics
) -> DailySnapshot:
    """Insert or overwrite the (org, date) row; re-running leaves one identical row."""
    now = datetime.now(timezone.utc)
    values = asdict(metrics)
    insert = _dialect_insert(db)
    stmt = insert(DailySnapshot).values(
        organization_id=org_id,
        snapshot_date=snapshot_date,
        created_at=now,
        updated_at=now,
        **values,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[DailySnapshot.organization_id, DailySnapshot.snapshot_date],
        set_={**{key: stmt.excluded[key] for key in values}, "updated_at": now},
    )
    db.execute(stmt)
    db.commit()

    snapshot = (
        db.query(DailySnapshot)
        .filter(
            DailySnapshot.organization_id == org_id,
            DailySnapshot.snapshot_date == snapshot_date,
        )
        .one()
    )
    db.refresh(snapshot)
    return snapshot


def run_daily_snapshot(db: Session, org_id: UUID, snapshot_date: date) -> DailySnapshot:
    metrics = compute_daily_snapshot(db, org_id, snapshot_date)
    snapshot = upsert_daily_snapshot(db, org_id, snapshot_date, metrics)
    logger.info(
        "Daily snapshot stored (org=%s date=%s leads=%s held=%s revenue_cents=%s)",
        org_id,
        snapshot_date.isoformat(),
        metrics.leads,
        metrics.appointments_held,
        metrics.revenue_cents,
    )
    return snapshot


def get_snapshot(db: Session, org_id: UUID, snapshot_date: date) -> DailySnapshot | None:
    return (
        db.query(DailySnapshot)
        .filter(
            DailySnapshot.organization_id == org_id,
            DailySnapshot.snapshot_date == snapshot_date,
        )
        .first()
    )


def schedule_daily_snapshots(
    db: Session,
    now: datetime | None = None,
    *,
    not_before_hour: int | None = None,
) -> dict:
    """
    Enqueue one snapshot job per org for the org's previous local day.

    With not_before_hour, orgs whose local clock has not reached that hour yet
    are left for a later tick. Repeat calls are deduplicated by idempotency key.
    """
    now = now or datetime.now(timezone.utc)
    stats = {"orgs_checked": 0, "jobs_created": 0, "duplicates_skipped": 0, "not_due": 0}

    for org in db.query(Organization).order_by(Organization.created_at).all():
        stats["orgs_checked"] += 1
        local_hour = now.astimezone(resolve_timezone(org.timezone)).hour
        if not_before_hour is not None and local_hour < not_before_hour:
            stats["not_due"] += 1
            continue

        snapshot_date = previous_local_day(now, org.timezone)
        _, created = job_service.enqueue_once(
            db,
            org.id,
            JobType.DAILY_SNAPSHOT,
            {"org_id": str(org.id), "date": snapshot_date.isoformat()},
            idempotency_key=snapshot_idempotency_key(org.id, snapshot_date),
        )
        if created:
            stats["jobs_created"] += 1
        else:
            stats["duplicates_skipped"] += 1

    logger.info(
        "Daily snapshot scheduling complete (orgs=%s created=%s duplicates=%s)",
        stats["orgs_checked"],
        stats["jobs_created"],
        stats["duplicates_skipped"],
    )
    return stats
