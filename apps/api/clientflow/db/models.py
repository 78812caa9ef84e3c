"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import (
    BigInteger,
    Date,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clientflow.db.base import Base
from clientflow.db.enums import (
    DEFAULT_APPOINTMENT_STATUS,
    DEFAULT_JOB_STATUS,
    BackoffStrategy,
    ConversationStatus,
    DealStage,
)
from clientflow.db.types import JSONType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Tenancy
# =============================================================================


class Organization(Base):
    """Tenant boundary: every other row belongs to exactly one organization."""

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    timezone: Mapped[str] = mapped_column(
        String(64), server_default=text("'UTC'"), default="UTC", nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)


class Contact(Base):
    __tablename__ = "contacts"
    __table_args__ = (
        Index("idx_contacts_org_created", "organization_id", "created_at"),
        Index("idx_contacts_org_phone", "organization_id", "phone"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts)


# =============================================================================
# Appointments & reminders
# =============================================================================


class Appointment(Base):
    """
    Scheduled meeting with a contact.

    The scheduler only reads appointments; status changes come from the API.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_org_starts", "organization_id", "starts_at"),
        Index("idx_appointments_status_starts", "status", "starts_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    contact_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True
    )
    starts_at: Mapped[datetime] = mapped_column(nullable=False)
    duration_minutes: Mapped[int] = mapped_column(
        Integer, server_default=text("30"), default=30, nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_APPOINTMENT_STATUS.value, nullable=False
    )
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, onupdate=_utcnow, nullable=False
    )

    contact: Mapped["Contact | None"] = relationship()

    @property
    def ends_at(self) -> datetime:
        return self.starts_at + timedelta(minutes=self.duration_minutes)


class ReminderRecord(Base):
    """
    Reminder delivery marker for one (appointment, offset) pair.

    The unique constraint is the authoritative at-most-once guard; status moves
    sending → sent (or failed, then sending again on retry) by compare-and-set.
    """

    __tablename__ = "reminder_records"
    __table_args__ = (
        UniqueConstraint(
            "appointment_id", "reminder_type", name="uq_reminder_appointment_type"
        ),
        Index("idx_reminder_records_org", "organization_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    appointment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False
    )
    reminder_type: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    job_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    channel: Mapped[str | None] = mapped_column(String(10), nullable=True)
    provider_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, onupdate=_utcnow, nullable=False
    )


# =============================================================================
# Jobs
# =============================================================================


class Job(Base):
    """
    Background job for async processing.

    Used for: appointment reminders, nurture/dunning messages, daily snapshots.
    Workers claim ready jobs atomically and ack or fail them.
    """

    __tablename__ = "jobs"
    __table_args__ = (
        Index("idx_jobs_ready", "status", "run_at"),
        Index("idx_jobs_org", "organization_id", "created_at"),
        Index(
            "uq_job_idempotency",
            "idempotency_key",
            unique=True,
            postgresql_where=text("idempotency_key IS NOT NULL"),
            sqlite_where=text("idempotency_key IS NOT NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )

    job_type: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    run_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_JOB_STATUS.value, nullable=False
    )

    # Retry policy snapshot, so a job retries the same way on any worker
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    backoff_strategy: Mapped[str] = mapped_column(
        String(20), default=BackoffStrategy.EXPONENTIAL.value, nullable=False
    )
    backoff_base_seconds: Mapped[float] = mapped_column(Float, default=2.0, nullable=False)
    backoff_factor: Mapped[float] = mapped_column(Float, default=2.0, nullable=False)
    backoff_max_seconds: Mapped[float] = mapped_column(Float, default=3600.0, nullable=False)

    # Claim lock; an expired locked_until makes an active job reclaimable
    locked_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    locked_until: Mapped[datetime | None] = mapped_column(nullable=True)

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_error_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, onupdate=_utcnow, nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    dead_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Idempotency key for deduplication
    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)


# =============================================================================
# Conversations
# =============================================================================


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        Index("idx_conversations_org_inbound", "organization_id", "last_inbound_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    contact_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True
    )
    channel: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ConversationStatus.OPEN.value, nullable=False
    )
    last_inbound_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_responded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, onupdate=_utcnow, nullable=False
    )

    contact: Mapped["Contact | None"] = relationship()


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_conversation", "conversation_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    channel: Mapped[str] = mapped_column(String(10), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    provider_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)


# =============================================================================
# Calls, deals & snapshots
# =============================================================================


class Call(Base):
    __tablename__ = "calls"
    __table_args__ = (Index("idx_calls_org_started", "organization_id", "started_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    contact_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True
    )
    started_at: Mapped[datetime] = mapped_column(nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    outcome: Mapped[str | None] = mapped_column(String(50), nullable=True)


class Deal(Base):
    __tablename__ = "deals"
    __table_args__ = (Index("idx_deals_org_closed", "organization_id", "closed_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    contact_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True
    )
    stage: Mapped[str] = mapped_column(String(20), default=DealStage.OPEN.value, nullable=False)
    value_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)


class DailySnapshot(Base):
    """Per-organization KPI rollup for one org-local calendar day."""

    __tablename__ = "daily_snapshots"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "snapshot_date", name="uq_daily_snapshot_org_date"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)

    calls: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    leads: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    bookings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    appointments_held: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    no_shows: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    show_rate: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    conversions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    revenue_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, onupdate=_utcnow, nullable=False
    )
