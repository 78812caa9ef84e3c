"""Daily snapshot job handler."""

from __future__ import annotations

import logging
from datetime import date, datetime

from clientflow.db.models import Organization
from clientflow.jobs.errors import JobSkipped
from clientflow.services import snapshot_service

logger = logging.getLogger(__name__)


async def process_daily_snapshot(db, job, *, now: datetime | None = None) -> None:
    """Compute and upsert one org's snapshot for the payload date."""
    logger.info("Processing daily snapshot job %s", job.id)
    payload = job.payload or {}
    try:
        snapshot_date = date.fromisoformat(str(payload.get("date")))
    except ValueError:
        raise JobSkipped(f"Invalid snapshot date {payload.get('date')!r}")

    if db.get(Organization, job.organization_id) is None:
        raise JobSkipped(f"Organization {job.organization_id} no longer exists")

    snapshot_service.run_daily_snapshot(db, job.organization_id, snapshot_date)
