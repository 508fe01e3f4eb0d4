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
    DATABASE_URL: str

    # Base URL used for conversation deep links in alerts and emails
    APP_BASE_URL: str = "http://localhost:3000"

    # Resend (escalation + report emails). Both must be set or email is skipped.
    RESEND_API_KEY: str = ""
    RESEND_FROM_ADDRESS: str = ""

    # Slack Web API
    SLACK_API_BASE_URL: str = "https://slack.com/api"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Fallback when a mailbox has no time zone configured
    DEFAULT_TIMEZONE: str = "America/New_York"

    # Worker
    WORKER_POLL_INTERVAL: int = 10
    WORKER_BATCH_SIZE: int = 10

    @property
    def email_delivery_configured(self) -> bool:
        """Resend needs both the API key and a From address."""
        return bool(self.RESEND_API_KEY.strip() and self.RESEND_FROM_ADDRESS.strip())

    @property
    def base_url(self) -> str:
        return self.APP_BASE_URL.rstrip("/")


settings = Settings()
