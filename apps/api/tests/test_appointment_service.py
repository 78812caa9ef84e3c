from datetime import datetime, timedelta, timezone

import pytest

from clientflow.db.enums import AppointmentStatus
from clientflow.services import appointment_service

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "starts_in, expected",
    [
        (timedelta(minutes=90), 90),
        (timedelta(minutes=90, seconds=59), 90),
        (timedelta(hours=30), 1440),
        (-timedelta(minutes=5), 0),
    ],
)
def test_reminder_offset_minutes_is_clamped(starts_in, expected):
    assert appointment_service.reminder_offset_minutes(NOW + starts_in, NOW) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("1d", timedelta(days=1)),
        ("12h", timedelta(hours=12)),
        ("30m", timedelta(minutes=30)),
        (" 2D ", timedelta(days=2)),
    ],
)
def test_parse_within(value, expected):
    assert appointment_service.parse_within(value) == expected


@pytest.mark.parametrize("value", ["", "d", "0d", "1w", "-1d", "1.5h", "abc"])
def test_parse_within_rejects_bad_periods(value):
    with pytest.raises(ValueError):
        appointment_service.parse_within(value)


def test_list_next_24h_only_returns_upcoming_active(db, test_org, make_appointment):
    soon = make_appointment(timedelta(hours=2), now=NOW)
    make_appointment(timedelta(hours=1), status=AppointmentStatus.CANCELED, now=NOW)
    make_appointment(timedelta(hours=25), now=NOW)
    make_appointment(-timedelta(hours=1), now=NOW)
    later = make_appointment(timedelta(hours=20), status=AppointmentStatus.PENDING, now=NOW)

    upcoming = appointment_service.list_next_24h(db, test_org.id, now=NOW)

    assert [item.appointment.id for item in upcoming] == [soon.id, later.id]
    assert upcoming[0].reminder_offset_minutes == 120
    assert upcoming[1].reminder_offset_minutes == 1200


def test_list_completed_within_uses_update_time(db, test_org, make_appointment):
    recent = make_appointment(-timedelta(hours=3), status=AppointmentStatus.COMPLETED, now=NOW)
    stale = make_appointment(-timedelta(days=3), status=AppointmentStatus.COMPLETED, now=NOW)
    recent.updated_at = NOW - timedelta(hours=2)
    stale.updated_at = NOW - timedelta(days=2)
    db.commit()

    completed = appointment_service.list_completed_within(
        db, test_org.id, timedelta(days=1), now=NOW
    )

    assert [a.id for a in completed] == [recent.id]


def test_list_appointments_paginates(db, test_org, other_org, make_appointment):
    for hours in range(5):
        make_appointment(timedelta(hours=hours + 1), now=NOW)
    make_appointment(timedelta(hours=1), now=NOW, org=other_org, contact=None)

    page, total = appointment_service.list_appointments(db, test_org.id, page=2, limit=2)

    assert total == 5
    assert len(page) == 2
    assert page[0].starts_at == NOW + timedelta(hours=3)
