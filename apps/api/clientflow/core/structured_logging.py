"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    org_id: str | None = None,
    job_id: str | None = None,
    job_type: str | None = None,
    worker_id: str | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict."""
    context: dict[str, Any] = {}
    if org_id:
        context["org_id"] = org_id
    if job_id:
        context["job_id"] = job_id
    if job_type:
        context["job_type"] = job_type
    if worker_id:
        context["worker_id"] = worker_id
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context


def mask_phone(phone: str | None) -> str:
    if not phone:
        return ""
    digits = phone.strip()
    if len(digits) <= 4:
        return "***"
    return f"***{digits[-4:]}"


def mask_email(email: str | None) -> str:
    if not email:
        return ""
    local, _, domain = email.partition("@")
    prefix = local[:3] if local else ""
    return f"{prefix}...@{domain}" if domain else f"{prefix}..."
