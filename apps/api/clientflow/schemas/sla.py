"""Pydantic schemas for the SLA monitor."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class SlaContact(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    phone: str | None
    email: str | None


class SlaMessage(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    body: str
    channel: str
    created_at: datetime


class UnansweredConversationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    conversation_id: UUID
    channel: str
    last_inbound_at: datetime
    last_responded_at: datetime | None
    waiting_minutes: float
    contact: SlaContact | None
    last_message: SlaMessage | None = None


class UnansweredResponse(BaseModel):
    minutes: int
    count: int
    data: list[UnansweredConversationRead]
