import uuid
from datetime import date, datetime, timedelta, timezone

import pytest

from clientflow.db.enums import AppointmentStatus, DealStage, JobType
from clientflow.db.models import Appointment, Call, Contact, DailySnapshot, Deal, Job
from clientflow.services import snapshot_service

DAY = date(2026, 3, 1)
NOON = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _seed_day(db, org):
    """Two leads, three bookings, 3 held / 1 no-show, one won deal, two calls."""
    lead_a = Contact(organization_id=org.id, first_name="Ana", created_at=NOON)
    lead_b = Contact(organization_id=org.id, first_name="Ben", created_at=NOON + timedelta(hours=3))
    old_lead = Contact(organization_id=org.id, first_name="Old", created_at=NOON - timedelta(days=3))
    db.add_all([lead_a, lead_b, old_lead])
    db.flush()

    for status in (
        AppointmentStatus.COMPLETED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.NO_SHOW,
    ):
        db.add(
            Appointment(
                organization_id=org.id,
                contact_id=old_lead.id,
                starts_at=NOON,
                status=status.value,
                created_at=NOON - timedelta(days=5),
            )
        )
    for hours in (1, 2, 4):
        db.add(
            Appointment(
                organization_id=org.id,
                contact_id=lead_a.id,
                starts_at=NOON + timedelta(days=7),
                status=AppointmentStatus.CONFIRMED.value,
                created_at=NOON + timedelta(hours=hours),
            )
        )

    db.add_all(
        [
            Deal(organization_id=org.id, stage=DealStage.WON.value, value_cents=125000, closed_at=NOON),
            Deal(organization_id=org.id, stage=DealStage.LOST.value, value_cents=99900, closed_at=NOON),
            Deal(organization_id=org.id, stage=DealStage.WON.value, value_cents=5000, closed_at=NOON + timedelta(days=1)),
            Call(organization_id=org.id, started_at=NOON, duration_seconds=60),
            Call(organization_id=org.id, started_at=NOON + timedelta(hours=1), duration_seconds=300),
        ]
    )
    db.commit()


def test_compute_daily_snapshot_counts_one_local_day(db, test_org):
    _seed_day(db, test_org)

    metrics = snapshot_service.compute_daily_snapshot(db, test_org.id, DAY)

    assert metrics.leads == 2
    assert metrics.bookings == 3
    assert metrics.appointments_held == 3
    assert metrics.no_shows == 1
    assert metrics.show_rate == 0.75
    assert metrics.conversions == 1
    assert metrics.revenue_cents == 125000
    assert metrics.calls == 2


def test_empty_day_has_zero_show_rate(db, test_org):
    metrics = snapshot_service.compute_daily_snapshot(db, test_org.id, DAY)

    assert metrics == snapshot_service.SnapshotMetrics()


def test_day_bounds_follow_org_timezone(db, test_org):
    test_org.timezone = "America/Chicago"
    # 03:00 UTC on Mar 2 is still Mar 1 in Chicago
    db.add(
        Contact(
            organization_id=test_org.id,
            first_name="Late",
            created_at=datetime(2026, 3, 2, 3, 0, tzinfo=timezone.utc),
        )
    )
    db.commit()

    assert snapshot_service.compute_daily_snapshot(db, test_org.id, DAY).leads == 1
    assert snapshot_service.compute_daily_snapshot(db, test_org.id, date(2026, 3, 2)).leads == 0


def test_unknown_org_is_rejected(db):
    with pytest.raises(ValueError):
        snapshot_service.compute_daily_snapshot(db, uuid.uuid4(), DAY)


def test_running_twice_keeps_one_identical_row(db, test_org):
    _seed_day(db, test_org)

    first = snapshot_service.run_daily_snapshot(db, test_org.id, DAY)
    first_values = (first.leads, first.appointments_held, first.show_rate, first.revenue_cents)
    second = snapshot_service.run_daily_snapshot(db, test_org.id, DAY)

    assert db.query(DailySnapshot).count() == 1
    assert second.id == first.id
    assert (second.leads, second.appointments_held, second.show_rate, second.revenue_cents) == first_values


def test_rerun_overwrites_with_current_data(db, test_org):
    snapshot_service.run_daily_snapshot(db, test_org.id, DAY)
    db.add(Contact(organization_id=test_org.id, first_name="New", created_at=NOON))
    db.commit()

    snapshot = snapshot_service.run_daily_snapshot(db, test_org.id, DAY)

    assert snapshot.leads == 1
    assert snapshot_service.get_snapshot(db, test_org.id, DAY).leads == 1


def test_schedule_daily_snapshots_enqueues_previous_day_once(db, test_org, other_org):
    now = datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)

    stats = snapshot_service.schedule_daily_snapshots(db, now)
    again = snapshot_service.schedule_daily_snapshots(db, now + timedelta(minutes=15))

    assert stats["orgs_checked"] == 2
    assert stats["jobs_created"] == 2
    assert again["jobs_created"] == 0
    assert again["duplicates_skipped"] == 2

    job = db.query(Job).filter(Job.organization_id == test_org.id).one()
    assert job.job_type == JobType.DAILY_SNAPSHOT.value
    assert job.payload["date"] == "2026-03-01"
    assert job.idempotency_key == f"snapshot:{test_org.id}:2026-03-01"


def test_schedule_waits_for_local_hour(db, test_org):
    test_org.timezone = "America/Los_Angeles"
    db.commit()
    # 08:30 UTC is 00:30 local, 09:30 UTC is 01:30 local (PST, UTC-8)
    before = datetime(2026, 3, 2, 8, 30, tzinfo=timezone.utc)
    after = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)

    not_due = snapshot_service.schedule_daily_snapshots(db, before, not_before_hour=1)
    due = snapshot_service.schedule_daily_snapshots(db, after, not_before_hour=1)

    assert not_due["not_due"] == 1
    assert not_due["jobs_created"] == 0
    assert due["not_due"] == 0
    assert due["jobs_created"] == 1
    job = db.query(Job).filter(Job.organization_id == test_org.id).one()
    assert job.payload["date"] == "2026-03-01"
