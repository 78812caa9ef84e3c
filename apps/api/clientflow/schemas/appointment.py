"""Pydantic schemas for appointment listings."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ContactSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str | None
    last_name: str | None
    phone: str | None
    email: str | None


class AppointmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    starts_at: datetime
    ends_at: datetime
    status: str
    location: str | None
    contact: ContactSummary | None
    # Set by the next_24h window
    reminder_offset_minutes: int | None = None
    # Set by the completed listing
    completed_at: datetime | None = None


class AppointmentListResponse(BaseModel):
    data: list[AppointmentRead]
    total: int | None = None
    page: int | None = None
    limit: int | None = None
