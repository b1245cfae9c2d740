"""
Configuration management for AdherenceHub
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "AdherenceHub"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENV: str = "development"

    # API
    API_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite:///./adherence_hub.db"
    DATABASE_ECHO: bool = False

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Reminder and adherence defaults
class ReminderConfig:
    """Defaults for adherence windows, reminders and notification feeds"""

    # Adherence Ledger
    ADHERENCE_LOOKBACK_DAYS: int = 30
    UPCOMING_DOSE_HOURS: int = 24
    DOSE_HISTORY_DAYS: int = 7

    # Refill Reminder Tracker
    REFILL_WINDOW_DAYS: int = 7

    # Notification Center
    NOTIFICATION_PAGE_SIZE: int = 50
    NOTIFICATION_MAX_PAGE_SIZE: int = 200

    # Reminder engine
    DOSE_REMINDER_LEAD_MINUTES: int = 15

    # Schedule Registry plan cache
    SCHEDULE_CACHE_TTL_SECONDS: float = 60.0
    SCHEDULE_CACHE_MAX_ENTRIES: int = 1000


# Database table names
class TableNames:
    MEDICATION_SCHEDULES = "medication_schedules"
    DOSE_RECORDS = "dose_records"
    REFILL_REMINDERS = "refill_reminders"
    NOTIFICATIONS = "notifications"


settings = get_settings()
reminder_config = ReminderConfig()
