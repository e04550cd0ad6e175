"""
Application configuration using Pydantic Settings.

This module loads configuration from environment variables and .env files,
providing type-safe access to provider credentials, polling budgets,
resilience thresholds and cost rates.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Settings are loaded from .env file if present.

    Attributes:
        environment: The deployment environment (development, staging, production)
        aws_region: AWS region for S3 and Polly
        media_bucket: S3 bucket holding every generated artifact
        runway_api_key: Runway API key for video synthesis
        video_max_wait_seconds: Upper bound on waiting for a video job
        narration_max_wait_seconds: Upper bound on waiting for a narration job
        circuit_failure_threshold: Consecutive failures before a circuit opens
        circuit_recovery_timeout_seconds: Cooldown before a half-open trial
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    app_name: str = "mediafuse"

    # Redis (Celery broker)
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection string for Celery broker",
    )

    # AWS / S3
    aws_region: str = "us-east-1"
    s3_endpoint_url: str | None = None  # None for real AWS S3
    s3_access_key: str | None = None  # None uses the default credential chain
    s3_secret_key: str | None = None
    media_bucket: str = "mediafuse-media"

    # Runway (video synthesis)
    runway_api_key: str | None = None
    runway_base_url: str = "https://api.dev.runwayml.com/v1"
    runway_model: str = "gen3a_turbo"
    runway_aspect_ratio: str = "1280:768"

    # Amazon Polly (narration synthesis)
    polly_engine: Literal["neural", "standard", "long-form", "generative"] = "neural"
    polly_sample_rate: str = "24000"
    narration_prefix: str = "audio/"

    # Request bounds
    min_duration_seconds: float = Field(default=2.0, gt=0)
    max_duration_seconds: float = Field(default=120.0, gt=0)

    # Polling budgets (video jobs take far longer than narration)
    video_poll_interval_seconds: float = Field(default=30.0, gt=0)
    video_max_wait_seconds: float = Field(default=1800.0, gt=0)
    narration_poll_interval_seconds: float = Field(default=5.0, gt=0)
    narration_max_wait_seconds: float = Field(default=300.0, gt=0)

    # Retry policy
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0)
    retry_max_delay_seconds: float = Field(default=60.0, ge=0)
    retry_jitter: float = Field(default=0.3, ge=0, le=1)

    # Circuit breaker
    circuit_failure_threshold: int = Field(default=5, ge=1)
    circuit_recovery_timeout_seconds: float = Field(default=60.0, gt=0)

    # Cost rates (USD)
    video_cost_per_minute_usd: Decimal = Decimal("0.80")
    narration_cost_per_million_chars_usd: Decimal = Decimal("4.00")

    # Muxing
    ffmpeg_binary: str = "ffmpeg"
    mux_timeout_seconds: float = Field(default=300.0, gt=0)
    mux_stderr_tail_lines: int = Field(default=30, ge=1)
    scratch_dir: Path | None = None  # None uses the system temp dir

    @computed_field
    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @computed_field
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are only loaded once
    during the worker lifecycle.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
