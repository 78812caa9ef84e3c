"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str = "sqlite+pysqlite:///./clientflow.db"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Internal scheduled endpoints (cron ticks)
    INTERNAL_SECRET: str = ""  # Secret for /internal/scheduled/* endpoints

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_API: int = 60

    # Twilio (SMS). Missing credentials put the sender in sandbox mode.
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_FROM_NUMBER: str = ""
    TWILIO_API_BASE: str = "https://api.twilio.com/2010-04-01"

    # SendGrid (email). Missing credentials put the sender in sandbox mode.
    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = "noreply@clientflow.app"
    SENDGRID_API_URL: str = "https://api.sendgrid.com/v3/mail/send"

    # Upper bound for a single provider call
    SENDER_TIMEOUT_SECONDS: float = 10.0

    # Worker
    WORKER_POLL_INTERVAL: int = 10
    WORKER_BATCH_SIZE: int = 10
    WORKER_JOB_TYPES: str = ""  # Comma-separated job types; empty means all
    JOB_VISIBILITY_TIMEOUT_SECONDS: int = 300

    # Retry policy defaults
    JOB_MAX_ATTEMPTS: int = 3
    JOB_BACKOFF_BASE_SECONDS: float = 2.0
    JOB_BACKOFF_FACTOR: float = 2.0
    JOB_BACKOFF_MAX_SECONDS: float = 3600.0

    # In-process scheduler (alternative to external cron calling /internal/scheduled/*)
    WORKER_SCHEDULER_ENABLED: bool = False
    REMINDER_SCAN_INTERVAL_SECONDS: int = 3600
    SNAPSHOT_HOUR_LOCAL: int = 1

    # SLA monitor
    SLA_DEFAULT_MINUTES: int = 5

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def twilio_configured(self) -> bool:
        return bool(self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN)

    @property
    def sendgrid_configured(self) -> bool:
        return bool(self.SENDGRID_API_KEY)


settings = Settings()
