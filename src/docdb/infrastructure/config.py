"""Configuration management for the document database."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseModel):
    """Storage engine configuration."""

    path: Path | None = Field(
        default=None, description="Database file path (None keeps everything in memory)"
    )
    lock_timeout_seconds: float | None = Field(
        default=5.0,
        ge=0,
        description="Seconds to wait for the writer slot (None waits forever)",
    )


class QueryConfig(BaseModel):
    """Query parsing configuration."""

    dialect: str = Field(default="sqlite", description="sqlglot dialect used for parsing")


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(default="docdb", description="Service name for tracing")


class Config(BaseSettings):
    """Main configuration for the document database."""

    model_config = SettingsConfigDict(
        env_prefix="DOCDB_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    engine: EngineConfig = Field(default_factory=EngineConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    def ensure_directories(self) -> None:
        """Ensure the parent directory of the database file exists."""
        if self.engine.path is not None:
            self.engine.path.parent.mkdir(parents=True, exist_ok=True)

    def configure_observability(self) -> None:
        """Apply the observability settings to structlog and OpenTelemetry.

        Called by the embedding application; opening a database never
        changes process-wide logging or tracing.
        """
        from docdb.infrastructure.logging import configure_logging
        from docdb.infrastructure.tracing import configure_tracing

        configure_logging(self.observability)
        configure_tracing(self.observability)


@lru_cache
def get_config() -> Config:
    """Get the configuration read from the environment."""
    config = Config()
    config.ensure_directories()
    return config
