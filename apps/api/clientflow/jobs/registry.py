"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from clientflow.db.enums import JobType
from clientflow.jobs.handlers import messages, reminders, snapshots

# Called as handler(db, job, now=...)
JobHandler = Callable[..., Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.APPOINTMENT_REMINDER.value: reminders.process_appointment_reminder,
    JobType.CONTACT_REMINDER.value: messages.process_contact_reminder,
    JobType.NURTURE.value: messages.process_nurture,
    JobType.DUNNING.value: messages.process_dunning,
    JobType.DAILY_SNAPSHOT.value: snapshots.process_daily_snapshot,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
