"""
Application settings (Pydantic Settings).
"""
from pathlib import Path

import pytz
from pydantic import field_validator
from pydantic_settings import BaseSettings

# .env next to backend/ (parent of clubhouse/)
_env_path = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseSettings):
    database_url: str = "sqlite:///./clubhouse.db"
    resource_timezone: str = "America/New_York"
    log_level: str = "INFO"

    # Time grid: booking day runs from opening hour until closing_time on the next calendar day
    slot_minutes: int = 30
    weekday_opening_hour: int = 18
    weekend_opening_hour: int = 12  # Saturday and Sunday
    latest_start: str = "23:30"
    closing_time: str = "02:00"
    booking_horizon_days: int = 14

    # Bar: small parties are capped; Fri-Sun evenings bar has first claim on the shared room
    bar_small_party_size: int = 4
    bar_small_party_max_minutes: int = 120
    priority_weekdays: list[int] = [4, 5, 6]  # Monday=0
    priority_start: str = "20:00"
    priority_end: str = "23:00"

    # Poker waitlist and notification tokens
    poker_max_players: int = 9
    token_ttl_hours: int = 4
    token_bytes: int = 16
    write_retry_attempts: int = 3
    strike_limit: int = 3
    notify_channel: str = "sms"
    public_base_url: str = "http://localhost:3000"  # token links: {base}/poker/{join|confirm}/{token}

    class Config:
        env_file = _env_path
        extra = "ignore"

    @field_validator("resource_timezone", mode="after")
    @classmethod
    def known_timezone(cls, v: str) -> str:
        v = (v or "").strip()
        if v not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone {v!r}")
        return v

    @field_validator("latest_start", "closing_time", "priority_start", "priority_end", mode="after")
    @classmethod
    def hh_mm(cls, v: str) -> str:
        hours, _, minutes = (v or "").strip().partition(":")
        if not (hours.isdigit() and minutes.isdigit() and int(hours) < 24 and int(minutes) < 60):
            raise ValueError(f"Expected HH:MM, got {v!r}")
        return f"{int(hours):02d}:{int(minutes):02d}"


settings = Settings()
