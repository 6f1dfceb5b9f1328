from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Fuel Lead Intelligence"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Database
    database_url: str | None = None
    db_pool_min_size: int = 1
    db_pool_max_size: int = 5
    auto_create_schema: bool = False

    # Lead identity
    lead_identity_casefold: bool = False

    # Crawling
    crawl_user_agent: str = "FuelLeadBot/1.0 (Business Intelligence)"
    crawl_fetch_timeout_seconds: float = 10.0
    crawl_default_delay_seconds: float = 2.0
    crawl_fetch_max_attempts: int = 2

    # Scheduler
    scheduler_enabled: bool = True
    scheduler_timezone: str = "Asia/Kolkata"
    scheduler_daily_hour: int = 2
    scheduler_daily_minute: int = 0

    # Notifications
    email_smtp_url: str | None = None
    email_from: str = "noreply@fuel-leads.local"
    email_disable_tls: bool = False
    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_sms_number: str | None = None
    twilio_chat_number: str | None = None
    default_country_code: str = "+91"
    frontend_url: str = "http://localhost:5173"

    # Security
    cors_origins: list[str] = []  # Empty by default for security

    # Sentry
    sentry_dsn: str | None = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Metrics
    metrics_backend: str = "stdout"
    metrics_namespace: str = "lead_intel"
    metrics_disable: bool = False
    metrics_sample_rate: float = 1.0
    metrics_statsd_host: str = "127.0.0.1"
    metrics_statsd_port: int = 8125

    @property
    def twilio_configured(self) -> bool:
        """Return True when Twilio credentials are present."""
        return bool(self.twilio_account_sid and self.twilio_auth_token)

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
