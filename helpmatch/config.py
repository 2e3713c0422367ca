# helpmatch/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    run_mode: Literal["all", "web", "worker"] = "all"
    log_level: str = "INFO"
    enable_request_logging: bool = True

    # Database
    expected_schema_version: str = "001_init.sql"  # Update on deploy when new migrations are added
    database_url: str | None = None
    pghost: str = "localhost"
    pgport: int = 5432
    pguser: str = "postgres"
    pgpassword: str = ""
    pgdatabase: str = "postgres"
    pg_pool_min: int = 1
    pg_pool_max: int = 10
    pg_connect_timeout: int = 5

    # Security
    admin_token: str | None = None

    # Outbound email (SendGrid v3 mail API)
    notifications_enabled: bool = True  # Master switch; False logs "sending disabled" instead of sending
    sendgrid_api_key: str | None = None
    sendgrid_api_url: str = "https://api.sendgrid.com/v3/mail/send"
    mail_from: str = "help@example.org"
    public_base_url: str = "https://www.example.org/#"  # Reply links: <base>/offer-help/<request_id>
    mail_timeout_seconds: float = 25.0

    # Matching
    max_results: int = 30  # K: helpers notified per request
    minimum_notification_delay_minutes: int = 20  # Grace window before a request becomes eligible

    # Notification scheduler
    scheduler_enabled: bool = True
    schedule_interval_seconds: float = 180.0  # every 3 minutes
    notification_batch_size: int = 3  # Requests processed per tick
    claim_lease_seconds: int = 900  # Claimed requests become eligible again after this (crash recovery)

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def sending_enabled(self) -> bool:
        """Outbound email is on only with the master switch and an API key."""
        return bool(self.notifications_enabled and self.sendgrid_api_key)

    @property
    def database_dsn(self) -> str:
        if self.database_url:
            return self.database_url

        return (
            f"postgresql://{self.pguser}:{self.pgpassword}"
            f"@{self.pghost}:{self.pgport}/{self.pgdatabase}"
        )

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        required_fields = [
            ("admin_token", self.admin_token),
            ("sendgrid_api_key", self.sendgrid_api_key),
        ]

        return [field_name for field_name, value in required_fields if not value]


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if not s.admin_token:
        warnings.append("admin_token is not set (admin endpoints will answer 503).")

    if not s.sending_enabled:
        warnings.append(
            "Outbound email is disabled (notifications_enabled=False or sendgrid_api_key missing)."
        )

    if s.max_results < 1:
        warnings.append(f"max_results={s.max_results}: no helper will ever be notified.")

    if s.notification_batch_size < 1:
        warnings.append(f"notification_batch_size={s.notification_batch_size}: scheduler ticks do nothing.")

    if s.claim_lease_seconds < s.schedule_interval_seconds:
        warnings.append(
            "claim_lease_seconds is shorter than schedule_interval_seconds: "
            "a slow tick may see its claims expire and requests processed twice."
        )

    if not s.public_base_url.startswith("https://"):
        warnings.append(f"public_base_url={s.public_base_url!r} is not https.")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    for msg in warn_on_risky_config(s):
        print(f"[WARN][config] {msg}")

settings = Settings()
validate_or_warn(settings)
