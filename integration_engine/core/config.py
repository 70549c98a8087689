"""Configuration settings for the integration engine."""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Service Configuration
    service_name: str = "integration-engine"
    port: int = 8005
    environment: str = "development"
    debug: bool = False

    # Security
    encryption_key: str
    encryption_salt: str = "integration-engine-vault"
    admin_api_key: Optional[str] = None

    # Persistence
    store_backend: str = "mongodb"  # mongodb | memory
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "integration_engine"
    redis_url: str = "redis://localhost:6379"

    # Outbound HTTP
    http_timeout_seconds: float = 30.0
    user_agent: str = "Integration-Engine/1.0 Integration"

    # Scheduling
    default_sync_interval: int = 300
    scheduler_tick_seconds: float = 60.0

    # Webhooks
    rate_limit_backend: str = "memory"  # memory | redis
    webhook_base_url: str = "http://localhost:8005/webhooks"

    # Delivery
    delivery_url: Optional[str] = None
    delivery_api_key: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8080"]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
