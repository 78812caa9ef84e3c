"""
Background worker for processing scheduled jobs.

Usage:
    python -m clientflow.worker

The worker claims ready jobs, runs them through the handler registry and
settles each one (ack, retry with backoff, or dead-letter). With
WORKER_SCHEDULER_ENABLED it also runs the hourly reminder scan and the daily
snapshot scheduling in-process instead of relying on external cron.
"""

import asyncio
import logging
import os
import socket
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from clientflow.core.config import settings
from clientflow.core.monitoring import report_exception, setup_monitoring
from clientflow.core.structured_logging import build_log_context
from clientflow.db.enums import JobType
from clientflow.db.session import SessionLocal
from clientflow.jobs.errors import JobSkipped, PermanentJobError, SendFailedError
from clientflow.jobs.registry import resolve_job_handler
from clientflow.services import job_service, reminder_service, snapshot_service

monitoring = setup_monitoring("clientflow-worker")
logger = logging.getLogger(__name__)

# Worker configuration
POLL_INTERVAL_SECONDS = settings.WORKER_POLL_INTERVAL
BATCH_SIZE = settings.WORKER_BATCH_SIZE

# In-process scheduler
SCHEDULER_ENABLED = settings.WORKER_SCHEDULER_ENABLED
REMINDER_SCAN_INTERVAL_SECONDS = settings.REMINDER_SCAN_INTERVAL_SECONDS
SNAPSHOT_CHECK_INTERVAL_SECONDS = 900
SNAPSHOT_HOUR_LOCAL = settings.SNAPSHOT_HOUR_LOCAL


def build_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def parse_worker_job_types(raw: str | None) -> list[JobType] | None:
    """Parse WORKER_JOB_TYPES; None means every type. Unknown names are ignored."""
    if not raw:
        return None
    job_types = []
    for name in (part.strip() for part in raw.split(",")):
        if not name:
            continue
        try:
            job_types.append(JobType(name))
        except ValueError:
            logger.warning("Ignoring unknown job type in WORKER_JOB_TYPES: %s", name)
    return job_types or None


async def process_job(db, job, *, now: datetime | None = None) -> None:
    """Process a single job based on its type."""
    logger.info(
        "Processing job %s (type=%s, attempt=%s/%s)",
        job.id,
        job.job_type,
        job.attempts,
        job.max_attempts,
    )
    handler = resolve_job_handler(job.job_type)
    await handler(db, job, now=now)


async def run_claimed_job(db, job, *, worker_id: str, now: datetime | None = None) -> str:
    """
    Run one claimed job and settle it. Returns the job's resulting status.

    `now` (default: wall clock) drives settlement and reminder markers.

    Skips are acked, permanent failures dead-lettered, everything else
    retried until the job's attempts are used up.
    """
    log_context = build_log_context(
        org_id=str(job.organization_id),
        job_id=str(job.id),
        job_type=job.job_type,
        worker_id=worker_id,
    )
    try:
        await process_job(db, job, now=now)
    except JobSkipped as e:
        db.rollback()
        logger.info("Job %s skipped: %s", job.id, e, extra=log_context)
        job_service.ack(db, job, worker_id=worker_id, now=now)
    except PermanentJobError as e:
        db.rollback()
        logger.error("Job %s failed permanently: %s", job.id, e, extra=log_context)
        job_service.fail(db, job, str(e), retryable=False, error_code=e.error_code, now=now)
    except SendFailedError as e:
        db.rollback()
        logger.error(
            "Job %s send failed (%s, code=%s)",
            job.id,
            e.kind.value,
            e.error_code,
            extra=log_context,
        )
        job_service.fail(
            db, job, str(e), retryable=e.retryable, error_code=e.error_code, now=now
        )
    except reminder_service.ReminderInFlightError as e:
        db.rollback()
        logger.info("Job %s deferred: %s", job.id, e, extra=log_context)
        job_service.fail(db, job, str(e), retryable=True, error_code="reminder_in_flight", now=now)
    except Exception as e:
        db.rollback()
        logger.error("Job %s failed: %s", job.id, type(e).__name__, extra=log_context)
        report_exception(monitoring, e)
        job_service.fail(db, job, str(e) or type(e).__name__, retryable=True, now=now)
    else:
        job_service.ack(db, job, worker_id=worker_id, now=now)
        logger.info("Job %s completed successfully", job.id, extra=log_context)
    return job.status


async def run_worker_once(
    db,
    *,
    worker_id: str,
    job_types: list[JobType] | None = None,
    limit: int | None = None,
    now: datetime | None = None,
) -> int:
    """Claim one batch and process it sequentially. Returns the batch size."""
    jobs = job_service.claim_jobs(
        db,
        worker_id=worker_id,
        limit=limit or BATCH_SIZE,
        job_types=job_types,
        now=now,
    )
    if jobs:
        logger.info("Claimed %s jobs (worker=%s)", len(jobs), worker_id)
    for job in jobs:
        await run_claimed_job(db, job, worker_id=worker_id, now=now)
    return len(jobs)


# =============================================================================
# In-process scheduler ticks
# =============================================================================


def _is_due(now: datetime, last_run_at: datetime | None, interval_seconds: int) -> bool:
    return last_run_at is None or (now - last_run_at).total_seconds() >= interval_seconds


def maybe_run_reminder_scan(db, *, now: datetime, last_run_at: datetime | None) -> datetime | None:
    """Run the reminder scan when due. Returns the new last-run time."""
    if not SCHEDULER_ENABLED:
        return last_run_at
    if not _is_due(now, last_run_at, REMINDER_SCAN_INTERVAL_SECONDS):
        return last_run_at

    stats = reminder_service.scan_appointment_reminders(db, now=now)
    logger.info(
        "Scheduled reminder scan (created=%s duplicates=%s)",
        stats.get("jobs_created", 0),
        stats.get("duplicates_skipped", 0),
    )
    return now


def maybe_schedule_daily_snapshots(
    db, *, now: datetime, last_run_at: datetime | None
) -> datetime | None:
    """Enqueue yesterday's snapshots for orgs past SNAPSHOT_HOUR_LOCAL."""
    if not SCHEDULER_ENABLED:
        return last_run_at
    if not _is_due(now, last_run_at, SNAPSHOT_CHECK_INTERVAL_SECONDS):
        return last_run_at

    stats = snapshot_service.schedule_daily_snapshots(
        db, now, not_before_hour=SNAPSHOT_HOUR_LOCAL
    )
    logger.info(
        "Scheduled daily snapshots (created=%s duplicates=%s)",
        stats.get("jobs_created", 0),
        stats.get("duplicates_skipped", 0),
    )
    return now


async def worker_loop() -> None:
    """Main worker loop - claims and processes ready jobs until cancelled."""
    worker_id = build_worker_id()
    job_types = parse_worker_job_types(settings.WORKER_JOB_TYPES)
    logger.info(
        "Worker %s starting (poll interval: %ss, batch size: %s, types: %s, scheduler: %s)",
        worker_id,
        POLL_INTERVAL_SECONDS,
        BATCH_SIZE,
        ",".join(jt.value for jt in job_types) if job_types else "all",
        SCHEDULER_ENABLED,
    )
    if not settings.twilio_configured:
        logger.warning("Twilio credentials not set - SMS will run in sandbox mode")
    if not settings.sendgrid_configured:
        logger.warning("SENDGRID_API_KEY not set - email will run in sandbox mode")

    last_scan_at: datetime | None = None
    last_snapshot_check_at: datetime | None = None

    while True:
        with SessionLocal() as db:
            try:
                now = datetime.now(timezone.utc)
                last_scan_at = maybe_run_reminder_scan(db, now=now, last_run_at=last_scan_at)
                last_snapshot_check_at = maybe_schedule_daily_snapshots(
                    db, now=now, last_run_at=last_snapshot_check_at
                )
                await run_worker_once(db, worker_id=worker_id, job_types=job_types)
            except SQLAlchemyError as e:
                # Store unavailable; nothing was marked sent, the next tick retries
                db.rollback()
                logger.error("Database error in worker loop: %s", type(e).__name__)
                report_exception(monitoring, e)
            except Exception as e:
                logger.exception("Error in worker loop: %s", e)
                report_exception(monitoring, e)

        await asyncio.sleep(POLL_INTERVAL_SECONDS)


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker stopped")


if __name__ == "__main__":
    main()
