from __future__ import annotations

import json
import os

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_NOTIFY_EVENTS = ("booking.confirmed", "booking.cancelled", "rule.deleted")


def parse_events(value: str) -> list[str]:
    if not value:
        return list(DEFAULT_NOTIFY_EVENTS)
    try:
        parsed = json.loads(value)
    except ValueError:
        parsed = None
    if isinstance(parsed, (list, tuple)):
        return [str(x).strip() for x in parsed if str(x).strip()]
    return [x.strip() for x in value.split(",") if x.strip()]


class Settings(BaseSettings):
    tz: str = Field(default=os.getenv("TZ", "Europe/Moscow"), alias="TZ")

    db_url: str = Field(
        default="sqlite+aiosqlite:///./tutorslot.sqlite3", alias="DB_URL"
    )
    db_echo: bool = Field(default=False, alias="DB_ECHO")

    # окно разворачивания правил и допустимая длина окна, в минутах
    expand_max_days: int = Field(default=90, alias="EXPAND_MAX_DAYS")
    rule_min_minutes: int = Field(default=30, alias="RULE_MIN_MINUTES")
    rule_max_minutes: int = Field(default=480, alias="RULE_MAX_MINUTES")

    notifications_enabled: bool = Field(default=True, alias="NOTIFICATIONS_ENABLED")
    notify_events_raw: str = Field(default="", alias="NOTIFY_EVENTS")

    smtp_enabled: bool = Field(default=False, alias="SMTP_ENABLED")
    smtp_host: str = Field(default="", alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_user: str = Field(default="", alias="SMTP_USER")
    smtp_password: str = Field(default="", alias="SMTP_PASSWORD")
    smtp_from: str = Field(default="", alias="SMTP_FROM")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "populate_by_name": True,
    }

    @property
    def notify_events(self) -> list[str]:
        return parse_events(self.notify_events_raw)


settings = Settings()
