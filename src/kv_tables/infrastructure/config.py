"""Configuration management for the typed table layer."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseModel):
    """Key-value engine selection and open defaults."""

    backend: Literal["memory", "rocksdb"] = Field(
        default="memory", description="Engine adapter used when none is passed explicitly"
    )
    create_if_missing: bool = Field(
        default=True, description="Create the database if it does not exist"
    )
    create_missing_partitions: bool = Field(
        default=True, description="Create registered partitions that do not exist yet"
    )
    max_open_files: int = Field(
        default=512, ge=-1, description="RocksDB max open files (-1 for unlimited)"
    )
    lock_timeout_ms: int = Field(
        default=1000, ge=-1, description="Transaction lock timeout in milliseconds"
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    metrics_enabled: bool = Field(default=True, description="Record Prometheus metrics")
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(default="kv_tables", description="Service name for tracing")


class Settings(BaseSettings):
    """Main configuration for kv_tables."""

    model_config = SettingsConfigDict(
        env_prefix="KV_TABLES_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    engine: EngineConfig = Field(default_factory=EngineConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_settings() -> Settings:
    """Get the global settings instance."""
    return Settings()
