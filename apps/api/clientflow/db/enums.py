"""Enum definitions for application constants."""

from enum import Enum


# =============================================================================
# Jobs
# =============================================================================


class JobType(str, Enum):
    """Types of background jobs."""

    APPOINTMENT_REMINDER = "appointment_reminder"
    CONTACT_REMINDER = "contact_reminder"  # Manual reminder without an appointment
    NURTURE = "nurture"  # Drip campaign step
    DUNNING = "dunning"  # Payment notice
    DAILY_SNAPSHOT = "daily_snapshot"


class JobStatus(str, Enum):
    """
    Status of background jobs.

    Flow: queued → active → completed
                      ↘ queued (retry with backoff)
                      ↘ dead (retries exhausted or permanent failure)
    """

    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    DEAD = "dead"


TERMINAL_JOB_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.DEAD})


class BackoffStrategy(str, Enum):
    """Delay growth between job retries."""

    EXPONENTIAL = "exponential"
    FIXED = "fixed"


class AutomationType(str, Enum):
    """Automation names accepted by POST /automations/run."""

    REMINDER = "reminder"
    NURTURE = "nurture"
    DUNNING = "dunning"
    SNAPSHOT = "snapshot"
    BOOKING = "booking"  # Alias of reminder
    REVIEW = "review"  # Alias of nurture


# =============================================================================
# Appointments & reminders
# =============================================================================


class AppointmentStatus(str, Enum):
    """
    Appointment lifecycle status.

    Flow: pending → confirmed → completed
              ↘ canceled
              ↘ no_show
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELED = "canceled"
    NO_SHOW = "no_show"


# Appointments still expecting the client to show up
REMINDABLE_APPOINTMENT_STATUSES = frozenset(
    {AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED}
)


class ReminderType(str, Enum):
    """Reminder offsets before an appointment starts."""

    H24 = "24h"
    H3 = "3h"


class ReminderStatus(str, Enum):
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


# =============================================================================
# Messaging
# =============================================================================


class MessageChannel(str, Enum):
    SMS = "sms"
    EMAIL = "email"


class MessageDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class ConversationStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


# =============================================================================
# Sales
# =============================================================================


class DealStage(str, Enum):
    OPEN = "open"
    WON = "won"
    LOST = "lost"


# Defaults
DEFAULT_JOB_STATUS: JobStatus = JobStatus.QUEUED
DEFAULT_APPOINTMENT_STATUS: AppointmentStatus = AppointmentStatus.PENDING
