"""Runtime settings, read from ``ORDERQ_*`` environment variables or a .env file."""

from datetime import timedelta
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Worker policy, storage backends and logging for orderq."""

    model_config = SettingsConfigDict(
        env_prefix="ORDERQ_", env_file=".env", extra="ignore"
    )

    # Worker policy
    batch_size: int = Field(default=1, ge=1)
    visibility_timeout_seconds: int = Field(default=30, ge=1)
    max_receives: int = Field(default=3, ge=1)
    wait_time_seconds: float = Field(default=1.0, ge=0)
    poll_interval_seconds: float = Field(default=0.2, gt=0)
    workers: int = Field(default=1, ge=1)
    release_on_failure: bool = False
    extend_visibility: bool = False

    # Queue and dead-letter documents
    backend: Literal["memory", "filesystem", "s3"] = "filesystem"
    data_dir: Path = Path(".orderq")
    s3_bucket: str | None = None
    s3_prefix: str = "orderq"

    # Order table
    table_backend: Literal["document", "dynamodb"] = "document"
    table_name: str = "Orders"

    # AWS
    aws_region: str | None = None
    aws_endpoint_url: str | None = None

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "json"

    @model_validator(mode="after")
    def _check_backend(self) -> "Settings":
        if self.backend == "s3" and not self.s3_bucket:
            raise ValueError("ORDERQ_S3_BUCKET is required when ORDERQ_BACKEND=s3")
        return self

    @property
    def visibility_timeout(self) -> timedelta:
        return timedelta(seconds=self.visibility_timeout_seconds)

    @property
    def wait_time(self) -> timedelta:
        return timedelta(seconds=self.wait_time_seconds)

    @property
    def poll_interval(self) -> timedelta:
        return timedelta(seconds=self.poll_interval_seconds)


def get_settings() -> Settings:
    """Return a freshly loaded settings instance."""
    return Settings()
