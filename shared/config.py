"""
Shared configuration management for the property rules platform.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="RULES_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")
    postgres_dsn: str = Field(default="postgres://localhost:5432/rules")

    # Rule storage
    rule_store_backend: str = Field(default="memory", description="memory | postgres")
    rule_cache_enabled: bool = Field(default=False)
    rule_cache_ttl_seconds: int = Field(default=300)
    rule_fetch_timeout_seconds: float = Field(default=0.5)
    rule_store_failure_threshold: int = Field(default=5)
    rule_store_recovery_timeout: float = Field(default=30.0)

    # Engine
    max_rules_per_execution: int = Field(default=50)
    enable_performance_tracking: bool = Field(default=True)
    performance_queue_size: int = Field(default=10000)
    performance_write_retries: int = Field(default=3)

    # Pricing integration fallbacks
    default_occupancy_rate: float = Field(default=50.0)
    default_demand_score: float = Field(default=50.0)

    # Side-effecting actions
    notification_webhook_url: Optional[str] = Field(default=None)
    notification_timeout_seconds: float = Field(default=5.0)

    # Observability
    enable_tracing: bool = Field(default=False)
    otel_exporter: str = Field(default="http://localhost:4318")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
