"""Job service - durable job queue with claim, retry/backoff and dead-lettering."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable
from uuid import UUID

from sqlalchemy import and_, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clientflow.core.config import settings
from clientflow.db.enums import BackoffStrategy, JobStatus, JobType
from clientflow.db.models import Job

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry/backoff policy stored on each job.

    delay_for(n) is the wait before attempt n + 1 after n attempts have failed:
    base * factor ** (n - 1) for exponential, capped at max_delay_seconds.
    """

    base_seconds: float = 2.0
    factor: float = 2.0
    max_delay_seconds: float = 3600.0
    max_attempts: int = 3
    strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("backoff delays must be non-negative")
        if self.factor < 1:
            raise ValueError("backoff factor must be >= 1")

    def delay_for(self, attempts: int) -> timedelta:
        return timedelta(seconds=compute_backoff(self, attempts))

    @classmethod
    def default(cls) -> "RetryPolicy":
        return cls(
            base_seconds=settings.JOB_BACKOFF_BASE_SECONDS,
            factor=settings.JOB_BACKOFF_FACTOR,
            max_delay_seconds=settings.JOB_BACKOFF_MAX_SECONDS,
            max_attempts=settings.JOB_MAX_ATTEMPTS,
        )

    @classmethod
    def from_job(cls, job: Job) -> "RetryPolicy":
        return cls(
            base_seconds=job.backoff_base_seconds,
            factor=job.backoff_factor,
            max_delay_seconds=job.backoff_max_seconds,
            max_attempts=job.max_attempts,
            strategy=BackoffStrategy(job.backoff_strategy),
        )


def compute_backoff(policy: RetryPolicy, attempts: int) -> float:
    """Seconds to wait before the next attempt, given attempts already made."""
    if attempts < 1:
        return 0.0
    if policy.strategy == BackoffStrategy.FIXED:
        return min(policy.max_delay_seconds, policy.base_seconds)
    # Clamp the exponent so large attempt counts cannot overflow
    exponent = min(attempts - 1, 64)
    return min(policy.max_delay_seconds, policy.base_seconds * (policy.factor**exponent))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Enqueue
# =============================================================================


def get_job_by_idempotency_key(db: Session, idempotency_key: str) -> Job | None:
    return db.query(Job).filter(Job.idempotency_key == idempotency_key).first()


def enqueue(
    db: Session,
    org_id: UUID,
    job_type: JobType,
    payload: dict,
    *,
    delay: timedelta | None = None,
    run_at: datetime | None = None,
    policy: RetryPolicy | None = None,
    idempotency_key: str | None = None,
) -> Job:
    """
    Enqueue a new background job.

    If run_at and delay are both None, the job is ready immediately.
    If idempotency_key matches an existing job, that job is returned and
    nothing is inserted.
    """
    job, _ = enqueue_once(
        db,
        org_id,
        job_type,
        payload,
        delay=delay,
        run_at=run_at,
        policy=policy,
        idempotency_key=idempotency_key,
    )
    return job


def enqueue_once(
    db: Session,
    org_id: UUID,
    job_type: JobType,
    payload: dict,
    *,
    delay: timedelta | None = None,
    run_at: datetime | None = None,
    policy: RetryPolicy | None = None,
    idempotency_key: str | None = None,
) -> tuple[Job, bool]:
    """Like enqueue, but also report whether a new job was created."""
    if delay is not None and run_at is not None:
        raise ValueError("Pass either delay or run_at, not both")

    if idempotency_key:
        existing = get_job_by_idempotency_key(db, idempotency_key)
        if existing:
            return existing, False

    policy = policy or RetryPolicy.default()
    now = _utcnow()
    if run_at is None:
        run_at = now + delay if delay else now

    job = Job(
        organization_id=org_id,
        job_type=job_type.value,
        payload=payload,
        run_at=run_at,
        status=JobStatus.QUEUED.value,
        attempts=0,
        max_attempts=policy.max_attempts,
        backoff_strategy=policy.strategy.value,
        backoff_base_seconds=policy.base_seconds,
        backoff_factor=policy.factor,
        backoff_max_seconds=policy.max_delay_seconds,
        idempotency_key=idempotency_key,
        created_at=now,
        updated_at=now,
    )
    db.add(job)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with another enqueue of the same key
        db.rollback()
        if idempotency_key:
            existing = get_job_by_idempotency_key(db, idempotency_key)
            if existing:
                return existing, False
        raise
    db.refresh(job)
    logger.info(
        "Enqueued job %s (type=%s, org=%s, run_at=%s)",
        job.id,
        job.job_type,
        org_id,
        job.run_at.isoformat(),
    )
    return job, True


# =============================================================================
# Claim
# =============================================================================


def _ready_filter(now: datetime):
    """Queued jobs that are due, or active jobs whose lock has expired."""
    return or_(
        and_(Job.status == JobStatus.QUEUED.value, Job.run_at <= now),
        and_(
            Job.status == JobStatus.ACTIVE.value,
            Job.locked_until.is_not(None),
            Job.locked_until < now,
        ),
    )


def get_pending_jobs(db: Session, limit: int = 10, now: datetime | None = None) -> list[Job]:
    """
    Get jobs that are ready to be claimed, ordered by run_at.

    Read-only; use claim_jobs to take ownership.
    """
    now = now or _utcnow()
    return (
        db.query(Job)
        .filter(_ready_filter(now))
        .order_by(Job.run_at)
        .limit(limit)
        .all()
    )


def claim_jobs(
    db: Session,
    *,
    worker_id: str,
    limit: int = 10,
    job_types: Iterable[JobType] | None = None,
    now: datetime | None = None,
    visibility_timeout: timedelta | None = None,
) -> list[Job]:
    """
    Atomically claim ready jobs for one worker.

    Candidates are locked with FOR UPDATE SKIP LOCKED (PostgreSQL), then each
    is claimed with an UPDATE guarded on the status and lock it was read with,
    so two workers can never both win the same job. Reclaimed jobs whose
    attempts are already exhausted are dead-lettered instead of returned.
    """
    now = now or _utcnow()
    visibility_timeout = visibility_timeout or timedelta(
        seconds=settings.JOB_VISIBILITY_TIMEOUT_SECONDS
    )

    query = db.query(Job).filter(_ready_filter(now))
    if job_types:
        query = query.filter(Job.job_type.in_([jt.value for jt in job_types]))
    candidates = (
        query.order_by(Job.run_at)
        .limit(limit)
        .with_for_update(skip_locked=True)
        .all()
    )

    claimed_ids: list[UUID] = []
    for job in candidates:
        guard = [Job.id == job.id, Job.status == job.status, Job.attempts == job.attempts]
        if job.locked_until is None:
            guard.append(Job.locked_until.is_(None))
        else:
            guard.append(Job.locked_until == job.locked_until)

        if job.status == JobStatus.ACTIVE.value and job.attempts >= job.max_attempts:
            result = db.execute(
                update(Job)
                .where(*guard)
                .values(
                    status=JobStatus.DEAD.value,
                    locked_by=None,
                    locked_until=None,
                    dead_at=now,
                    updated_at=now,
                    last_error=job.last_error or "visibility timeout expired on final attempt",
                    last_error_code="visibility_timeout",
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                logger.warning(
                    "Job %s dead-lettered after lock expiry on final attempt (worker=%s)",
                    job.id,
                    job.locked_by,
                )
            continue

        if job.status == JobStatus.ACTIVE.value:
            logger.warning(
                "Reclaiming job %s from worker %s (lock expired %s)",
                job.id,
                job.locked_by,
                job.locked_until.isoformat() if job.locked_until else None,
            )

        result = db.execute(
            update(Job)
            .where(*guard)
            .values(
                status=JobStatus.ACTIVE.value,
                attempts=Job.attempts + 1,
                locked_by=worker_id,
                locked_until=now + visibility_timeout,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            claimed_ids.append(job.id)

    db.commit()
    if not claimed_ids:
        return []

    jobs = db.query(Job).filter(Job.id.in_(claimed_ids)).order_by(Job.run_at).all()
    for job in jobs:
        db.refresh(job)
    return jobs


# =============================================================================
# Outcomes
# =============================================================================


def ack(
    db: Session, job: Job, *, worker_id: str | None = None, now: datetime | None = None
) -> Job:
    """Mark a job as completed (terminal)."""
    if worker_id and job.locked_by and job.locked_by != worker_id:
        logger.warning(
            "Job %s acked by %s but locked by %s", job.id, worker_id, job.locked_by
        )
    now = now or _utcnow()
    job.status = JobStatus.COMPLETED.value
    job.completed_at = now
    job.updated_at = now
    job.locked_by = None
    job.locked_until = None
    job.last_error = None
    job.last_error_code = None
    db.commit()
    db.refresh(job)
    return job


def fail(
    db: Session,
    job: Job,
    error: str,
    *,
    retryable: bool = True,
    error_code: str | None = None,
    now: datetime | None = None,
) -> Job:
    """
    Record a failed attempt.

    Retryable failures with attempts left go back to queued with backoff;
    anything else is dead-lettered and never retried automatically.
    """
    now = now or _utcnow()
    job.last_error = error[:2000] if error else error
    job.last_error_code = error_code
    job.locked_by = None
    job.locked_until = None
    job.updated_at = now

    if retryable and job.attempts < job.max_attempts:
        delay = RetryPolicy.from_job(job).delay_for(job.attempts)
        job.status = JobStatus.QUEUED.value
        job.run_at = now + delay
        logger.info(
            "Job %s scheduled for retry %s/%s in %.1fs",
            job.id,
            job.attempts + 1,
            job.max_attempts,
            delay.total_seconds(),
        )
    else:
        job.status = JobStatus.DEAD.value
        job.dead_at = now
        logger.warning(
            "Job %s dead-lettered (type=%s, attempts=%s/%s, retryable=%s, code=%s)",
            job.id,
            job.job_type,
            job.attempts,
            job.max_attempts,
            retryable,
            error_code,
        )

    db.commit()
    db.refresh(job)
    return job


def requeue_dead_job(db: Session, job: Job, *, run_at: datetime | None = None) -> Job:
    """
    Manually requeue a dead job with a fresh attempt budget.

    Only called by operators; the queue never revives dead jobs on its own.
    """
    if job.status != JobStatus.DEAD.value:
        raise ValueError(f"Job {job.id} is {job.status}, only dead jobs can be requeued")
    now = _utcnow()
    job.status = JobStatus.QUEUED.value
    job.attempts = 0
    job.run_at = run_at or now
    job.dead_at = None
    job.updated_at = now
    db.commit()
    db.refresh(job)
    logger.info("Dead job %s requeued manually", job.id)
    return job


# =============================================================================
# Queries
# =============================================================================


def get_job(db: Session, job_id: UUID, org_id: UUID | None = None) -> Job | None:
    """Get a job by ID, optionally scoped to org."""
    query = db.query(Job).filter(Job.id == job_id)
    if org_id:
        query = query.filter(Job.organization_id == org_id)
    return query.first()


def list_jobs(
    db: Session,
    org_id: UUID,
    status: JobStatus | None = None,
    job_type: JobType | None = None,
    limit: int = 50,
) -> list[Job]:
    """List jobs for an organization with optional filters."""
    query = db.query(Job).filter(Job.organization_id == org_id)
    if status:
        query = query.filter(Job.status == status.value)
    if job_type:
        query = query.filter(Job.job_type == job_type.value)
    return query.order_by(Job.created_at.desc()).limit(limit).all()


def list_dead_jobs(db: Session, org_id: UUID | None = None, limit: int = 50) -> list[Job]:
    query = db.query(Job).filter(Job.status == JobStatus.DEAD.value)
    if org_id:
        query = query.filter(Job.organization_id == org_id)
    return query.order_by(Job.dead_at.desc()).limit(limit).all()


def get_queue_stats(db: Session, org_id: UUID | None = None, now: datetime | None = None) -> dict:
    """
    Queue health: counts by status and type, plus the age of the oldest ready job.

    Dead jobs are included so they stay visible until someone handles them.
    """
    now = now or _utcnow()

    status_query = db.query(Job.status, func.count(Job.id))
    type_query = db.query(Job.job_type, Job.status, func.count(Job.id))
    oldest_query = db.query(func.min(Job.run_at)).filter(
        Job.status == JobStatus.QUEUED.value, Job.run_at <= now
    )
    if org_id:
        status_query = status_query.filter(Job.organization_id == org_id)
        type_query = type_query.filter(Job.organization_id == org_id)
        oldest_query = oldest_query.filter(Job.organization_id == org_id)

    by_status = {status.value: 0 for status in JobStatus}
    for status, count in status_query.group_by(Job.status).all():
        by_status[status] = count

    by_type: dict[str, dict[str, int]] = {}
    for job_type, status, count in type_query.group_by(Job.job_type, Job.status).all():
        by_type.setdefault(job_type, {})[status] = count

    oldest_ready_at = oldest_query.scalar()
    oldest_ready_age_seconds = None
    if oldest_ready_at is not None:
        if oldest_ready_at.tzinfo is None:
            oldest_ready_at = oldest_ready_at.replace(tzinfo=timezone.utc)
        oldest_ready_age_seconds = max(0.0, (now - oldest_ready_at).total_seconds())

    return {
        "by_status": by_status,
        "by_type": by_type,
        "dead": by_status[JobStatus.DEAD.value],
        "oldest_ready_age_seconds": oldest_ready_age_seconds,
    }
