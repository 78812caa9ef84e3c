"""Jobs router - inspect the queue and requeue dead jobs."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from clientflow.core.deps import get_db, require_org
from clientflow.db.enums import JobStatus, JobType
from clientflow.db.models import Organization
from clientflow.schemas.job import JobListItem, JobRead, JobRequeueRequest, QueueStats
from clientflow.services import job_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Jobs"])


@router.get("", response_model=list[JobListItem])
def list_jobs(
    status: JobStatus | None = None,
    job_type: JobType | None = None,
    limit: int = 50,
    org: Organization = Depends(require_org),
    db: Session = Depends(get_db),
):
    """List recent jobs for the organization."""
    return job_service.list_jobs(
        db,
        org_id=org.id,
        status=status,
        job_type=job_type,
        limit=min(limit, 100),
    )


@router.get("/stats", response_model=QueueStats)
def queue_stats(
    org: Organization = Depends(require_org),
    db: Session = Depends(get_db),
):
    """Queue counts by status and type, including dead-lettered jobs."""
    return job_service.get_queue_stats(db, org_id=org.id)


@router.get("/dead", response_model=list[JobRead])
def list_dead_jobs(
    limit: int = 50,
    org: Organization = Depends(require_org),
    db: Session = Depends(get_db),
):
    """Dead-lettered jobs awaiting manual attention."""
    return job_service.list_dead_jobs(db, org_id=org.id, limit=min(limit, 100))


@router.get("/{job_id}", response_model=JobRead)
def get_job(
    job_id: UUID,
    org: Organization = Depends(require_org),
    db: Session = Depends(get_db),
):
    """Get a job by ID."""
    job = job_service.get_job(db, job_id, org_id=org.id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.post("/{job_id}/requeue", response_model=JobRead)
def requeue_job(
    job_id: UUID,
    body: JobRequeueRequest | None = None,
    org: Organization = Depends(require_org),
    db: Session = Depends(get_db),
):
    """Give a dead job a fresh attempt budget and put it back on the queue."""
    job = job_service.get_job(db, job_id, org_id=org.id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    try:
        job = job_service.requeue_dead_job(db, job, run_at=body.run_at if body else None)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    logger.info("Job %s requeued via API (org=%s)", job.id, org.id)
    return job
