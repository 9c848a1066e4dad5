from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@dataclass(frozen=True)
class AppConfig:
    database_url: str = "sqlite:///./paycycle.db"
    frontend_origin: str = "http://localhost:3000"
    timezone: str = "UTC"
    log_level: str = "INFO"
    reminder_lead_days: int = 2
    schedule_default_count: int = 5
    upcoming_bills_days: int = 14
    resend_api_key: str | None = None
    resend_api_url: str = "https://api.resend.com/emails"
    email_from_address: str | None = None
    reminder_dispatch_token: str | None = None

    @property
    def tzinfo(self) -> tzinfo:
        if self.timezone.upper() in {"UTC", "ETC/UTC"}:
            return timezone.utc
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return timezone.utc


def load_config() -> AppConfig:
    defaults = AppConfig()
    return AppConfig(
        database_url=os.getenv("DATABASE_URL", defaults.database_url),
        frontend_origin=os.getenv("FRONTEND_ORIGIN", defaults.frontend_origin),
        timezone=os.getenv("PAYCYCLE_TIMEZONE", defaults.timezone),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
        reminder_lead_days=_int_env("REMINDER_LEAD_DAYS", defaults.reminder_lead_days),
        schedule_default_count=_int_env(
            "SCHEDULE_DEFAULT_COUNT", defaults.schedule_default_count
        ),
        upcoming_bills_days=_int_env("UPCOMING_BILLS_DAYS", defaults.upcoming_bills_days),
        resend_api_key=os.getenv("RESEND_API_KEY") or None,
        resend_api_url=os.getenv("RESEND_API_URL", defaults.resend_api_url),
        email_from_address=os.getenv("EMAIL_FROM_ADDRESS") or None,
        reminder_dispatch_token=os.getenv("REMINDER_DISPATCH_TOKEN") or None,
    )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= 0 else default
