"""
Internal endpoints for scheduled/cron operations.

Protected by X-Internal-Secret header.
Call from external cron: reminder-scan hourly, daily-snapshots at 01:00.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from clientflow.core.deps import get_db, verify_internal_secret
from clientflow.services import reminder_service, snapshot_service

router = APIRouter(
    prefix="/internal/scheduled",
    tags=["internal"],
    dependencies=[Depends(verify_internal_secret)],
)


class ReminderScanResponse(BaseModel):
    appointments_checked: int
    jobs_created: int
    duplicates_skipped: int
    by_offset: dict[str, int]


class SnapshotScheduleResponse(BaseModel):
    orgs_checked: int
    jobs_created: int
    duplicates_skipped: int
    not_due: int


@router.post("/reminder-scan", response_model=ReminderScanResponse)
def reminder_scan(db: Session = Depends(get_db)):
    """Hourly sweep: enqueue 24h and 3h appointment reminders."""
    return reminder_service.scan_appointment_reminders(db)


@router.post("/daily-snapshots", response_model=SnapshotScheduleResponse)
def daily_snapshots(db: Session = Depends(get_db)):
    """Daily: enqueue one snapshot job per organization for its previous day."""
    return snapshot_service.schedule_daily_snapshots(db)
