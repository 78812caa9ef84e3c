"""
How the worker settles a claimed job for each handler outcome.
"""
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from clientflow import worker
from clientflow.db.enums import JobStatus, JobType
from clientflow.jobs.errors import JobSkipped, PermanentJobError, SendFailedError
from clientflow.services import job_service
from clientflow.services.job_service import RetryPolicy
from clientflow.services.notification_senders import SendResult

# A clock ahead of real time, so only the injected value can make retries due
NOW = (datetime.now(timezone.utc) + timedelta(days=30)).replace(microsecond=0)


@pytest.fixture
def claimed_job(db, test_org):
    job_service.enqueue(
        db,
        test_org.id,
        JobType.NURTURE,
        {"phone": "+15555550123"},
        run_at=NOW,
        policy=RetryPolicy(max_attempts=3),
    )
    [job] = job_service.claim_jobs(db, worker_id="w1", now=NOW)
    return job


def _handler_raising(exc):
    async def handler(_db, _job, **_kwargs):
        raise exc

    return handler


@pytest.mark.asyncio
async def test_success_acks(db, claimed_job, monkeypatch):
    async def handler(_db, _job, **_kwargs):
        return None

    monkeypatch.setattr(worker, "resolve_job_handler", lambda _type: handler)

    status = await worker.run_claimed_job(db, claimed_job, worker_id="w1", now=NOW)

    assert status == JobStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_skip_is_acked_not_retried(db, claimed_job, monkeypatch):
    monkeypatch.setattr(
        worker, "resolve_job_handler", lambda _type: _handler_raising(JobSkipped("canceled"))
    )

    status = await worker.run_claimed_job(db, claimed_job, worker_id="w1", now=NOW)

    assert status == JobStatus.COMPLETED.value
    assert claimed_job.last_error is None


@pytest.mark.asyncio
async def test_permanent_error_dead_letters(db, claimed_job, monkeypatch):
    monkeypatch.setattr(
        worker,
        "resolve_job_handler",
        lambda _type: _handler_raising(PermanentJobError("bad payload", error_code="bad_payload")),
    )

    status = await worker.run_claimed_job(db, claimed_job, worker_id="w1", now=NOW)

    assert status == JobStatus.DEAD.value
    assert claimed_job.last_error_code == "bad_payload"


@pytest.mark.asyncio
async def test_transient_send_failure_is_retried(db, claimed_job, monkeypatch):
    error = SendFailedError(
        SendResult(success=False, error="rate limited", status_code=429), channel="sms"
    )
    monkeypatch.setattr(worker, "resolve_job_handler", lambda _type: _handler_raising(error))

    status = await worker.run_claimed_job(db, claimed_job, worker_id="w1", now=NOW)

    assert status == JobStatus.QUEUED.value
    assert claimed_job.last_error_code == "http_429"
    assert claimed_job.locked_by is None


@pytest.mark.asyncio
async def test_permanent_send_failure_dead_letters(db, claimed_job, monkeypatch):
    error = SendFailedError(
        SendResult(success=False, error="invalid", error_code="invalid_recipient"), channel="email"
    )
    monkeypatch.setattr(worker, "resolve_job_handler", lambda _type: _handler_raising(error))

    status = await worker.run_claimed_job(db, claimed_job, worker_id="w1", now=NOW)

    assert status == JobStatus.DEAD.value
    assert claimed_job.last_error_code == "invalid_recipient"


@pytest.mark.asyncio
async def test_unexpected_error_is_retried(db, claimed_job, monkeypatch):
    monkeypatch.setattr(
        worker, "resolve_job_handler", lambda _type: _handler_raising(RuntimeError("boom"))
    )

    status = await worker.run_claimed_job(db, claimed_job, worker_id="w1", now=NOW)

    assert status == JobStatus.QUEUED.value
    assert claimed_job.last_error == "boom"


@pytest.mark.asyncio
async def test_run_worker_once_processes_batch(db, test_org, monkeypatch):
    processed = []

    async def handler(_db, job, **_kwargs):
        processed.append(job.id)

    monkeypatch.setattr(worker, "resolve_job_handler", lambda _type: handler)
    for _ in range(3):
        job_service.enqueue(db, test_org.id, JobType.DUNNING, {}, run_at=NOW)

    count = await worker.run_worker_once(db, worker_id="w1", limit=2, now=NOW)

    assert count == 2
    assert len(processed) == 2
    assert job_service.get_queue_stats(db, now=NOW)["by_status"]["completed"] == 2


@pytest.mark.asyncio
async def test_nurture_handler_sends_through_sandbox(db, claimed_job):
    status = await worker.run_claimed_job(db, claimed_job, worker_id="w1", now=NOW)

    assert status == JobStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_dunning_without_recipient_is_skipped(db, test_org):
    job_service.enqueue(db, test_org.id, JobType.DUNNING, {}, run_at=NOW)
    [job] = job_service.claim_jobs(db, worker_id="w1", now=NOW)

    status = await worker.run_claimed_job(db, job, worker_id="w1", now=NOW)

    assert status == JobStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_snapshot_job_with_bad_date_is_skipped(db, test_org):
    job_service.enqueue(db, test_org.id, JobType.DAILY_SNAPSHOT, {"date": "soon"}, run_at=NOW)
    [job] = job_service.claim_jobs(db, worker_id="w1", now=NOW)

    status = await worker.run_claimed_job(db, job, worker_id="w1", now=NOW)

    assert status == JobStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_snapshot_job_writes_row(db, test_org):
    from datetime import date

    from clientflow.services import snapshot_service

    job_service.enqueue(
        db, test_org.id, JobType.DAILY_SNAPSHOT, {"date": "2026-03-01"}, run_at=NOW
    )
    [job] = job_service.claim_jobs(db, worker_id="w1", now=NOW)

    status = await worker.run_claimed_job(db, job, worker_id="w1", now=NOW)

    assert status == JobStatus.COMPLETED.value
    assert snapshot_service.get_snapshot(db, test_org.id, date(2026, 3, 1)) is not None


@pytest.mark.asyncio
async def test_retry_is_scheduled_from_the_worker_clock(db, test_org, monkeypatch):
    monkeypatch.setattr(
        worker, "resolve_job_handler", lambda _type: _handler_raising(RuntimeError("boom"))
    )
    job = job_service.enqueue(
        db,
        test_org.id,
        JobType.NURTURE,
        {},
        run_at=NOW,
        policy=RetryPolicy(base_seconds=60, max_attempts=3),
    )

    await worker.run_worker_once(db, worker_id="w1", now=NOW)

    db.refresh(job)
    assert job.status == JobStatus.QUEUED.value
    assert job.run_at == NOW + timedelta(seconds=60)
    assert job.updated_at == NOW
    assert job_service.claim_jobs(db, worker_id="w1", now=NOW + timedelta(seconds=59)) == []
    [reclaimed] = job_service.claim_jobs(db, worker_id="w1", now=NOW + timedelta(seconds=60))
    assert reclaimed.id == job.id
    assert reclaimed.attempts == 2


@pytest.mark.asyncio
async def test_ack_uses_the_worker_clock(db, claimed_job):
    await worker.run_claimed_job(db, claimed_job, worker_id="w1", now=NOW)

    assert claimed_job.completed_at == NOW


@pytest.mark.asyncio
async def test_snapshot_job_for_missing_org_is_skipped(db):
    job = job_service.enqueue(
        db, uuid.uuid4(), JobType.DAILY_SNAPSHOT, {"date": "2026-03-01"}, run_at=NOW
    )
    [claimed] = job_service.claim_jobs(db, worker_id="w1", now=NOW)
    assert claimed.id == job.id

    status = await worker.run_claimed_job(db, claimed, worker_id="w1", now=NOW)

    assert status == JobStatus.COMPLETED.value
    assert claimed.last_error is None
