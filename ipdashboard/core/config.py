"""Configuration management for IPDashboard.

This module provides centralized configuration loading from environment
variables with validation and type safety.
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ipdashboard.core.exceptions import ConfigurationError

COMPONENT_NAMES = ("memory", "cpu", "database", "cache", "disk", "application")


class Settings(BaseSettings):
    """Application configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Service
    service_name: str = Field(
        default="IPDashboard Backend", description="Service name reported by health"
    )
    environment: str = Field(
        default="development", description="Environment (development, production)"
    )

    # PostgreSQL
    database_url: str = Field(
        default="", description="PostgreSQL connection string (empty = no pool)"
    )
    database_pool_size: int = Field(
        default=20, description="Connection pool size", ge=1, le=100
    )

    # Response cache
    cache_enabled: bool = Field(default=True, description="Enable response caching")
    cache_backend: Literal["redis", "memory"] = Field(
        default="redis", description="Cache store backend"
    )
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis URL")
    cache_namespace: str = Field(
        default="ipdashboard", description="Physical key namespace in the store"
    )
    cache_connect_timeout: float = Field(
        default=2.0, description="Store connect timeout seconds", gt=0, le=30
    )
    cache_operation_timeout: float = Field(
        default=0.5, description="Per-operation store timeout seconds", gt=0, le=10
    )
    cache_reconnect_interval: float = Field(
        default=30.0, description="Seconds between reconnect attempts", gt=0, le=3600
    )
    cache_memory_maxsize: int = Field(
        default=1024, description="Max entries in the in-memory store", ge=1
    )
    cache_key_count_limit: int = Field(
        default=100_000, description="Upper bound when counting store keys", ge=1
    )
    cache_circuit_breaker_threshold: int = Field(
        default=5, description="Failures before opening circuit", ge=1, le=50
    )
    cache_circuit_breaker_timeout: float = Field(
        default=60.0, description="Circuit breaker timeout seconds", gt=0, le=3600
    )

    # Health
    health_critical_components: str = Field(
        default="",
        description="Comma-separated components whose unhealthy status fails the service",
    )

    # API
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=3001, description="API port", ge=1, le=65535)
    slow_request_threshold_ms: int = Field(
        default=1000, description="Requests slower than this are logged", ge=1
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="", description="json or console (empty = auto)")

    # OpenTelemetry Configuration
    otel_enabled: bool = Field(
        default=False, description="Enable OpenTelemetry instrumentation"
    )
    otel_service_name: str = Field(
        default="ipdashboard-backend", description="Service name for telemetry"
    )
    otel_exporter_otlp_endpoint: str = Field(
        default="http://localhost:4317", description="OTLP gRPC endpoint"
    )
    otel_exporter_otlp_headers: str = Field(
        default="", description="OTLP headers (e.g., 'api-key=xxx')"
    )
    otel_traces_enabled: bool = Field(
        default=True, description="Enable trace collection"
    )
    otel_metrics_enabled: bool = Field(
        default=True, description="Enable metrics collection"
    )

    @field_validator("health_critical_components")
    @classmethod
    def validate_components(cls, value: str) -> str:
        """Reject unknown component names."""
        names = [item.strip() for item in value.split(",") if item.strip()]
        unknown = [name for name in names if name not in COMPONENT_NAMES]
        if unknown:
            raise ConfigurationError(
                f"Unknown health components: {unknown}. "
                f"Expected any of {list(COMPONENT_NAMES)}",
                details={"unknown": unknown},
            )
        return ",".join(names)

    @property
    def critical_components(self) -> frozenset[str]:
        """Parsed set of critical health components."""
        return frozenset(
            item for item in self.health_critical_components.split(",") if item
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "development"


settings = Settings()
