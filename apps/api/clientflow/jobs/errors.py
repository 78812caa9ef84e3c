"""Exceptions that tell the worker how to settle a job."""

from __future__ import annotations

from clientflow.services.notification_senders import (
    FailureKind,
    SendResult,
    classify_send_failure,
)


class JobSkipped(Exception):
    """
    The job cannot or need not run (target gone, canceled, already done).

    The worker acks it as a no-op; it is never retried.
    """


class PermanentJobError(Exception):
    """The job will fail the same way on every attempt; dead-letter it now."""

    def __init__(self, message: str, *, error_code: str | None = None):
        super().__init__(message)
        self.error_code = error_code


class SendFailedError(Exception):
    """A notification sender reported failure."""

    def __init__(self, result: SendResult, *, channel: str):
        self.result = result
        self.channel = channel
        self.kind = classify_send_failure(result)
        super().__init__(f"{channel} send failed: {result.error or 'unknown error'}")

    @property
    def retryable(self) -> bool:
        return self.kind == FailureKind.TRANSIENT

    @property
    def error_code(self) -> str | None:
        if self.result.error_code:
            return self.result.error_code
        if self.result.status_code:
            return f"http_{self.result.status_code}"
        return None
