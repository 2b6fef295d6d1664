"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

import re
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: str = Field(
        description="PostgreSQL+PostGIS async connection string",
    )
    database_schema: str | None = Field(
        default=None,
        description="PostgreSQL schema for isolated environments (e.g., pr_42)",
    )

    @field_validator("database_schema")
    @classmethod
    def validate_database_schema(cls, v: str | None) -> str | None:
        if v is None:
            return None
        if not re.match(r"^[a-z_][a-z0-9_]{0,62}$", v):
            msg = "Invalid database_schema: must match ^[a-z_][a-z0-9_]{0,62}$"
            raise ValueError(msg)
        return v

    # Storage
    base_dir: str = Field(
        default=".",
        description="Project base directory; uploads/ and uploads/thumbnails/ are resolved against it",
    )
    upload_dir: str | None = Field(
        default=None,
        validation_alias=AliasChoices("upload_dir", "kmz_upload_dir"),
        description="Directory for stored KMZ uploads (defaults to <base_dir>/uploads/kmz)",
    )
    upload_max_size_mb: int = Field(
        default=100,
        description="Maximum accepted KMZ upload size in megabytes",
        gt=0,
    )

    @property
    def upload_path(self) -> Path:
        """Resolve the KMZ upload directory."""
        if self.upload_dir:
            return Path(self.upload_dir)
        return Path(self.base_dir) / "uploads" / "kmz"

    @property
    def upload_max_size_bytes(self) -> int:
        return self.upload_max_size_mb * 1024 * 1024

    # Thumbnail rendering
    render_service_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("render_service_url", "geoserver_url"),
        description="Optional base URL of a WMS-capable render service (e.g. GeoServer)",
    )
    render_timeout: float = Field(
        default=5.0,
        description="Render service request timeout in seconds",
        gt=0,
    )

    # Failure alerting
    job_alert_webhook: str | None = Field(
        default=None,
        description="Webhook URL notified when a job fails permanently",
    )
    alert_timeout: float = Field(
        default=5.0,
        description="Alert webhook request timeout in seconds",
        gt=0,
    )

    @field_validator("render_service_url", "job_alert_webhook")
    @classmethod
    def validate_optional_url(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        if not v.startswith(("http://", "https://")):
            msg = "URL must start with http:// or https://"
            raise ValueError(msg)
        return v.strip()

    # Queue
    queue_name: str = Field(
        default="kmz-processing",
        description="Name of the processing queue",
    )
    queue_max_attempts: int = Field(
        default=5,
        description="Attempts per job before it is failed permanently",
        gt=0,
    )
    queue_backoff_delay_ms: int = Field(
        default=2000,
        description="Base delay of the exponential retry backoff in milliseconds",
        ge=0,
    )

    # Worker
    worker_concurrency: int = Field(
        default=2,
        description="Number of jobs processed concurrently per worker process",
        gt=0,
    )
    worker_poll_interval: float = Field(
        default=3.0,
        description="Seconds an idle worker slot waits before polling the queue again",
        gt=0,
    )
    worker_lock_timeout: int = Field(
        default=300,
        description="Seconds after which an active job lock is considered stalled",
        gt=0,
    )
    worker_shutdown_timeout: float = Field(
        default=30.0,
        description="Seconds a stopping worker may spend finishing in-flight jobs before it is cancelled",
        gt=0,
    )
    worker_in_process: bool = Field(
        default=False,
        description="Run the worker pool inside the API process",
    )
    worker_port: int = Field(
        default=3002,
        description="Port of the worker health endpoint",
        gt=0,
    )
    counts_refresh_interval: float = Field(
        default=5.0,
        description="Seconds between queue count refreshes for the health endpoint",
        gt=0,
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables file logging with 24h rotation when set)",
    )

    # CORS
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins (must be explicitly configured)",
    )

    # API
    api_v1_prefix: str = Field(
        default="/api/v1",
        description="API version prefix",
    )

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        if not self.cors_origins.strip():
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()  # type: ignore[call-arg]
