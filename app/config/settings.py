"""
Application settings and configuration.
All secrets are loaded from environment variables.
"""

from typing import List

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # WhatsApp campaign API
    whatsapp_api_base_url: str = "https://wa.iconicsolution.co.in"
    whatsapp_api_key: str = ""
    whatsapp_timeout_seconds: float = 15.0

    # SMTP Configuration
    smtp_host: str = "localhost"
    smtp_port: int = 465
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_ssl: bool = True
    smtp_timeout_seconds: float = 20.0
    email_from_name: str = "Ineffa Support"
    internal_notification_emails: List[str] = []
    reschedule_url: str = "https://ineffa.tech/reshedule-consultaion"

    # Database - Use DATA_DIR for persistent volumes
    data_dir: str = "."
    sqlite_busy_timeout_ms: int = 5000

    @property
    def database_url(self) -> str:
        """Async database URL for application data."""
        return f"sqlite+aiosqlite:///{self.data_dir}/consultations.db"

    @property
    def jobs_database_url(self) -> str:
        """Sync database URL for the scheduler job store."""
        return f"sqlite:///{self.data_dir}/jobs.db"

    # Scheduler cadence
    reminder_poll_seconds: int = 60
    outbox_poll_seconds: int = 30
    # Intents stuck in processing longer than this are retried
    outbox_reclaim_seconds: int = 600

    # Application Settings
    debug: bool = False

    # Timezone (India Standard Time)
    timezone: str = "Asia/Kolkata"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
