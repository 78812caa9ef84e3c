"""Tests for structured logging helpers."""

from clientflow.core.structured_logging import build_log_context, mask_email, mask_phone


def test_build_log_context_includes_only_provided_fields():
    context = build_log_context(
        org_id="org-1",
        job_id="job-1",
        job_type="appointment_reminder",
        worker_id="host:1",
        route="/automations/run",
        method="POST",
    )

    assert context == {
        "org_id": "org-1",
        "job_id": "job-1",
        "job_type": "appointment_reminder",
        "worker_id": "host:1",
        "route": "/automations/run",
        "method": "POST",
    }


def test_build_log_context_ignores_empty_fields():
    context = build_log_context(
        org_id="",
        job_id=None,
        request_id="req-1",
    )

    assert context == {"request_id": "req-1"}


def test_mask_phone_keeps_last_four_digits():
    assert mask_phone("+15555550123") == "***0123"
    assert mask_phone("123") == "***"
    assert mask_phone(None) == ""


def test_mask_email_hides_local_part():
    assert mask_email("dana.reyes@example.com") == "dan...@example.com"
    assert mask_email("broken") == "bro..."
    assert mask_email("") == ""
