"""Application configuration management."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.debug and self.log_level.upper() != "TRACE":
            self.log_level = "DEBUG"

    # Database
    database_url: str = "sqlite:///./timesync.db"
    auto_create_tables: bool = False

    # Security
    secret_key: str
    encryption_key: str  # Fernet key for stored API keys
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 1440

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Application
    debug: bool = False
    log_level: str = "INFO"
    api_v1_str: str = "/api/v1"

    # Remote time-tracking service
    clockify_base_url: str = "https://api.clockify.me/api/v1"
    remote_rate_limit_per_second: float = 50.0
    remote_admission_timeout_seconds: float = 10.0
    remote_max_waiters: int = 500
    remote_max_attempts: int = 3
    remote_backoff_base_seconds: float = 1.0
    remote_request_timeout_seconds: float = 30.0
    remote_page_size: int = 200

    # Reconciliation
    sync_run_deadline_seconds: float = 30.0
    sync_max_workers: int = 5
    sync_max_window_days: int = 92
    sync_max_pages: int = 100

    # Scheduled auto-sync
    scheduler_enabled: bool = False
    sync_schedule_minutes: int = 30
    auto_sync_window_days: int = 7
    # Connections per scheduled run, least recently synced first
    auto_sync_batch_size: int = 10

    # Audit trail
    audit_retention_days: int = 90

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]


# Global settings instance
settings = Settings()
