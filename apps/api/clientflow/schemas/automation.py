"""Pydantic schemas for automation triggers and inbound messages."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from clientflow.db.enums import AutomationType


class AutomationRunRequest(BaseModel):
    type: AutomationType
    payload: dict = Field(default_factory=dict)


class AutomationRunResponse(BaseModel):
    success: bool
    job_id: UUID
    job_type: str
    type: AutomationType
    org_id: UUID
    created: bool


class SmsInboundRequest(BaseModel):
    """Inbound SMS as forwarded from the Twilio webhook (Twilio field names)."""

    model_config = ConfigDict(populate_by_name=True)

    from_number: str = Field(alias="From")
    to_number: str | None = Field(default=None, alias="To")
    body: str = Field(default="", alias="Body")
    message_sid: str | None = Field(default=None, alias="MessageSid")


class SmsInboundResponse(BaseModel):
    success: bool
    message_id: str | None
    org_id: UUID
    contact_id: UUID
    conversation_id: UUID
