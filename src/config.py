"""Application configuration using pydantic-settings pattern."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Connection Retry Queue"
    app_version: str = "0.1.0"
    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)

    # Retry queue
    retry_default_max_retries: int = Field(
        default=3,
        ge=1,
        description="Attempt ceiling for operations queued without max_retries",
    )
    retry_backoff_step_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Linear backoff step: delay = retry_count * step",
    )

    # Connection health
    health_probe_url: str | None = Field(default=None)
    health_probe_timeout_seconds: float = Field(default=5.0, gt=0.0)
    health_min_cooldown_seconds: float = Field(default=120.0, ge=0.0)
    health_offline_after_failures: int = Field(default=3, ge=1)
    health_safety_interval_seconds: int = Field(default=300, ge=1)
    health_silence_threshold_seconds: float = Field(default=120.0, ge=0.0)
    health_silence_check_interval_seconds: int = Field(default=180, ge=1)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
