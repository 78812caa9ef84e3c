"""Error tracking setup shared by the API and the worker."""

from dataclasses import dataclass
import logging
import os

from clientflow.core.config import settings


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonitoringState:
    """Whether error tracking was initialized for this process."""

    sentry_enabled: bool


def _monitoring_enabled() -> bool:
    if not settings.SENTRY_DSN or settings.ENV == "dev":
        return False
    if os.getenv("TESTING", "").lower() in ("1", "true", "yes"):
        return False
    return True


def setup_monitoring(service_name: str, *, with_fastapi: bool = False) -> MonitoringState:
    """
    Initialize Sentry error tracking.

    No-op in dev, under tests, or when SENTRY_DSN is unset.
    """
    if not _monitoring_enabled():
        return MonitoringState(sentry_enabled=False)

    import sentry_sdk
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    integrations = [SqlalchemyIntegration()]
    if with_fastapi:
        from sentry_sdk.integrations.fastapi import FastApiIntegration

        integrations.append(FastApiIntegration(transaction_style="endpoint"))

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        release=f"{service_name}@{settings.VERSION}",
        integrations=integrations,
        traces_sample_rate=0.1,
        send_default_pii=False,  # Recipients and message bodies stay out of Sentry
    )
    logger.info("Sentry initialized for %s", service_name)
    return MonitoringState(sentry_enabled=True)


def report_exception(state: MonitoringState, exc: BaseException | None = None) -> None:
    """Report an exception (or the one being handled) to Sentry."""
    if not state.sentry_enabled:
        return

    import sentry_sdk

    sentry_sdk.capture_exception(exc)
