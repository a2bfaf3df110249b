"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "interventions_dev"

    # Authenticated actor context (tokens are issued by the auth provider)
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_audience: str = ""

    # Shared secret for the external cron trigger
    cron_secret: str = ""

    # Email provider
    email_api_url: str = ""
    email_api_key: str = ""
    email_from: str = "notifications@example.com"

    # Push gateway
    push_gateway_url: str = ""
    push_gateway_key: str = ""

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

    # Frontend URL (for email links)
    frontend_url: str = "http://localhost:3000"

    # Property timezone, used to interpret slot dates and times
    property_timezone: str = "Europe/Paris"

    # Workflow rules
    max_contest_count: int = 3

    # Scheduler
    scheduler_enabled: bool = True
    scheduler_interval_seconds: int = 10  # Drain the outbox every 10 seconds
    notification_max_retries: int = 5
    notification_lock_duration_seconds: int = 60
    stale_lock_cleanup_minutes: int = 10
    event_replay_delay_seconds: int = 60  # Events older than this are replayed
    reminder_sweep_interval_minutes: int = 60
    reminder_sweep_budget_seconds: int = 60

    # Environment
    environment: str = "development"
    debug: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def email_enabled(self) -> bool:
        return bool(self.email_api_url)

    @property
    def push_enabled(self) -> bool:
        return bool(self.push_gateway_url)

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
