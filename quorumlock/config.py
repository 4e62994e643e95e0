"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

from quorumlock.constants import (
    DEFAULT_CLOCK_DRIFT_FACTOR,
    DEFAULT_DRIFT_SLACK_MS,
    DEFAULT_LOCK_TTL_MS,
    DEFAULT_RETRY_COUNT,
    DEFAULT_RETRY_DELAY_MAX_MS,
    DEFAULT_RETRY_DELAY_MIN_MS,
)


class RedisServer(BaseModel):
    """Connection descriptor for one independent lock store."""

    host: str = "localhost"
    port: int = 6379
    password: str | None = None
    database: int = 0


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Lock stores (JSON list in the environment, e.g.
    # LOCK_SERVERS='[{"host": "redis-1"}, {"host": "redis-2"}, {"host": "redis-3"}]')
    lock_servers: list[RedisServer] = [RedisServer()]
    redis_socket_timeout_seconds: float = 0.5

    # Lock Engine
    lock_default_ttl_ms: int = DEFAULT_LOCK_TTL_MS
    lock_retry_count: int = DEFAULT_RETRY_COUNT
    lock_retry_delay_min_ms: int = DEFAULT_RETRY_DELAY_MIN_MS
    lock_retry_delay_max_ms: int = DEFAULT_RETRY_DELAY_MAX_MS
    lock_clock_drift_factor: float = DEFAULT_CLOCK_DRIFT_FACTOR
    lock_drift_slack_ms: int = DEFAULT_DRIFT_SLACK_MS

    # Worker Configuration
    worker_id: str | None = None
    worker_poll_interval_seconds: float = 1.0
    scheduler_interval_seconds: float = 60.0

    # Observability
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "quorum-lock"
    prometheus_port: int = 9090
    log_level: str = "INFO"
    log_format: str = "json"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
