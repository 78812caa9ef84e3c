"""Pydantic schemas for background jobs."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class JobRead(BaseModel):
    """Job response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    job_type: str
    payload: dict
    run_at: datetime
    status: str
    attempts: int
    max_attempts: int
    backoff_strategy: str
    backoff_base_seconds: float
    backoff_factor: float
    backoff_max_seconds: float
    idempotency_key: str | None
    locked_by: str | None
    locked_until: datetime | None
    last_error: str | None
    last_error_code: str | None
    created_at: datetime
    completed_at: datetime | None
    dead_at: datetime | None


class JobListItem(BaseModel):
    """Job list item (minimal)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    job_type: str
    status: str
    run_at: datetime
    attempts: int
    max_attempts: int
    last_error_code: str | None
    created_at: datetime
    completed_at: datetime | None


class QueueStats(BaseModel):
    by_status: dict[str, int]
    by_type: dict[str, dict[str, int]]
    dead: int
    oldest_ready_age_seconds: float | None


class JobRequeueRequest(BaseModel):
    run_at: datetime | None = None
