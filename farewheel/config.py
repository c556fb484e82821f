from __future__ import annotations

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    db_path: str = Field("farewheel.db", alias="FAREWHEEL_DB")

    duffel_token: str = Field("", alias="DUFFEL_API_TOKEN")
    duffel_url: str = Field("https://api.duffel.com", alias="DUFFEL_API_URL")
    provider_timeout_s: float = Field(15.0, alias="PROVIDER_TIMEOUT_S")

    alert_interval_h: float = Field(2.0, alias="ALERT_INTERVAL_H")
    alert_cooldown_h: float = Field(24.0, alias="ALERT_COOLDOWN_H")
    alert_workers: int = Field(4, alias="ALERT_WORKERS")

    prune_hour: int = Field(2, alias="PRUNE_HOUR")
    prune_minute: int = Field(0, alias="PRUNE_MINUTE")
    history_retention_days: int = Field(365, alias="HISTORY_RETENTION_DAYS")
    scheduler_tz: str = Field("UTC", alias="SCHEDULER_TZ")

    fallback_airport: str = Field("BRU", alias="FALLBACK_AIRPORT")

    telegram_token: Optional[str] = Field(None, alias="TELEGRAM_BOT_TOKEN")
    telegram_chat_id: Optional[str] = Field(None, alias="TELEGRAM_CHAT_ID")
    admin_token: str = Field("", alias="ADMIN_API_TOKEN")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field("farewheel.log", alias="LOG_FILE")

    @field_validator("alert_interval_h", "provider_timeout_s")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than 0")
        return v

    @field_validator("alert_workers", "history_retention_days")
    @classmethod
    def _positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("prune_hour")
    @classmethod
    def _hour_range(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("PRUNE_HOUR must be between 0 and 23")
        return v

    @field_validator("prune_minute")
    @classmethod
    def _minute_range(cls, v: int) -> int:
        if not 0 <= v <= 59:
            raise ValueError("PRUNE_MINUTE must be between 0 and 59")
        return v

    @field_validator("fallback_airport")
    @classmethod
    def _upper_iata(cls, v: str) -> str:
        v = v.strip().upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError("FALLBACK_AIRPORT must be a 3-letter IATA code")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Return application settings loaded from the environment."""
    return Settings()  # type: ignore[call-arg]


__all__ = ["Settings", "get_settings"]
