# app/config.py
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    ENV: str = "dev"
    APP_NAME: str = "Connect Scheduling"
    LOG_LEVEL: str = "INFO"

    # DB URL – SQLite locally, Postgres in deployed envs
    DATABASE_URL: str = "sqlite:///./app.db"

    # Used when neither the pattern nor the host carries a timezone
    DEFAULT_HOST_TIMEZONE: str = "America/New_York"

    # Event policy defaults (an Event row can override each of these)
    DEFAULT_MIN_NOTICE_HOURS: int = 24
    DEFAULT_BOOKING_WINDOW_DAYS: int = 60
    DEFAULT_SLOT_INCREMENT_MINUTES: int = 30

    # Upper bound on the range /api/slots/available will scan
    MAX_ENUMERATION_DAYS: int = 62

    # Outbox delivery
    OUTBOX_MAX_ATTEMPTS: int = 5
    OUTBOX_BATCH_SIZE: int = 50

    # Google Calendar
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    GOOGLE_CALENDAR_API_URL: str = "https://www.googleapis.com/calendar/v3"
    GOOGLE_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
    CALENDAR_TIMEOUT_SECONDS: float = 10.0

    # Email (Resend)
    RESEND_API_KEY: Optional[str] = None
    EMAIL_FROM_ADDRESS: str = "Connect <noreply@connect.example.com>"

    # Twilio config (SMS)
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None  # our Twilio sender ID

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

_settings: Optional[Settings] = None

def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
