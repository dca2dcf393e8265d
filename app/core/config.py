# app/core/config.py - Consolidated

import os
from functools import lru_cache
from typing import List
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


def _parse_email_list(value):
    if value in (None, "", []):
        return []
    if isinstance(value, str):
        return [email.strip() for email in value.split(",") if email.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(email).strip() for email in value if str(email).strip()]
    return []


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = ""

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Shared token for the JSON API (x-admin-token). Empty disables the check.
    ADMIN_TOKEN: str = ""

    # Discord webhook
    DISCORD_WEBHOOK_URL: str = ""
    DISCORD_USERNAME: str = "Inventory Bot"
    DISCORD_ALERT_TIMEOUT: float = 10.0   # single product alerts
    DISCORD_REPORT_TIMEOUT: float = 15.0  # aggregate reports are larger

    # Worker ingress (stock events forwarded to an external worker)
    WORKER_INGRESS_URL: str = ""
    WORKER_SHARED_SECRET: str = ""
    WORKER_TIMEOUT: float = 5.0

    # In-memory dedup window for automatic alerts
    ALERT_DEDUPE_WINDOW_MS: int = 5000

    # Email notifications (comma separated)
    NOTIFICATION_EMAILS: str = ""

    # SMTP / Email
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    SMTP_TIMEOUT: int = 15
    SMTP_FROM_EMAIL: str = ""
    SMTP_FROM_NAME: str = ""

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def notification_emails(self) -> List[str]:
        return _parse_email_list(self.NOTIFICATION_EMAILS)


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()

