"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load from environment variables (CAU_ prefix)
  - Fall back to a .env file
  - Validate types and constraints at startup

Architecture: Only AppSettings is a BaseSettings instance. Sub-settings are plain
BaseModel classes populated by AppSettings via env_nested_delimiter="__", so the env
var CAU_DATABASE__HOST maps to database.host, CAU_EXPORT__CERT_DIR to export.cert_dir, etc.
Command-line options override these values per invocation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = Path.cwd() / ".env"

STANDARD_SOURCE_URL = "https://curl.se/ca/cacert.pem"


class DatabaseSettings(BaseModel):
    """
    PostgreSQL connection configuration.

    Accepts either a full connection string via CAU_DATABASE__DSN or individual
    components (HOST, PORT, NAME, USERNAME, PASSWORD). The DSN takes priority
    when both are provided. Nothing is required up front: commands that need the
    store call `get_dsn()`, which raises when neither form is configured.
    """

    dsn: SecretStr | None = Field(
        default=None,
        description="Full PostgreSQL connection string (overrides individual fields)",
    )
    host: str | None = Field(default=None, description="PostgreSQL host")
    port: int = Field(default=5432, ge=1, le=65535, description="PostgreSQL port")
    name: str | None = Field(default=None, description="PostgreSQL database name")
    username: str | None = Field(default=None, description="PostgreSQL username")
    password: SecretStr | None = Field(default=None, description="PostgreSQL password")

    @model_validator(mode="after")
    def resolve_dsn(self) -> DatabaseSettings:
        """Build `dsn` from the components when all of them are present."""
        if self.dsn is not None:
            return self
        if self.host and self.name and self.username and self.password:
            dsn_value = (
                f"postgresql://{self.username}:{self.password.get_secret_value()}"
                f"@{self.host}:{self.port}/{self.name}"
            )
            object.__setattr__(self, "dsn", SecretStr(dsn_value))
        return self

    def get_dsn(self) -> str:
        """
        Return the active database DSN as a plain string.

        Raises ValueError naming the missing settings when no DSN is available.
        """
        if self.dsn is None:
            missing = [f for f, v in [
                ("CAU_DATABASE__HOST", self.host),
                ("CAU_DATABASE__NAME", self.name),
                ("CAU_DATABASE__USERNAME", self.username),
                ("CAU_DATABASE__PASSWORD", self.password),
            ] if not v]
            raise ValueError(
                "no database configured (use option -d): set CAU_DATABASE__DSN or provide all of: "
                + ", ".join(missing)
            )
        return self.dsn.get_secret_value()


class ReconcileSettings(BaseModel):
    """Reconciliation pass behavior."""

    deletion_threshold: float = Field(
        default=0.20,
        gt=0.0,
        le=1.0,
        description="Largest share of stored certificates one pass may delete without --force",
    )
    standard_source_url: str = Field(
        default=STANDARD_SOURCE_URL,
        description="Bundle registered as the 'standard' source by `cau init --standard`",
    )


class ExportSettings(BaseModel):
    """
    Export target used by `cau sync` (and as defaults for `cau export`).

    Exactly one of cert_file / cert_dir must be set for an export to run.
    """

    cert_file: str = Field(default="", description="Bundle file ('-' for stdout)")
    cert_dir: str = Field(default="", description="Directory receiving one file per certificate")
    cert_filenames: str = Field(default="uuid", description="Filename type: uuid or dn")
    manifest_file: str = Field(default="", description="File holding the managed manifest block")
    manifest_dn: bool = Field(default=False, description="Add a '# DN:' comment per manifest entry")
    manifest_prefix: str = Field(default="", description="Path prefix for manifest entries")
    exec_command: str = Field(default="", description="Shell command to run after a successful export")

    @field_validator("cert_filenames")
    @classmethod
    def validate_cert_filenames(cls, value: str) -> str:
        if value not in ("uuid", "dn"):
            raise ValueError(f"cert_filenames must be 'uuid' or 'dn', got {value!r}")
        return value


class SchedulerSettings(BaseModel):
    """
    Scheduler configuration using a standard 5-field cron expression.

    Format: minute hour day-of-month month day-of-week
    Examples:
      "0 */6 * * *"  — every 6 hours (default)
      "0 2 * * *"    — daily at 02:00
    """

    cron: str = Field(
        default="0 */6 * * *",
        description="Cron expression (5 fields: minute hour dom month dow)",
    )

    @field_validator("cron")
    @classmethod
    def validate_cron(cls, value: str) -> str:
        """Reject expressions that don't have exactly 5 space-separated fields."""
        fields = value.strip().split()
        if len(fields) != 5:
            raise ValueError(
                f"Cron expression must have exactly 5 fields "
                f"(minute hour dom month dow), got {len(fields)}: {value!r}"
            )
        return value.strip()


class AppSettings(BaseSettings):
    """
    Root application settings — aggregates all sub-settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file in the working directory
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="CAU_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    database: DatabaseSettings = Field(default_factory=lambda: DatabaseSettings())
    reconcile: ReconcileSettings = Field(default_factory=lambda: ReconcileSettings())
    export: ExportSettings = Field(default_factory=lambda: ExportSettings())
    scheduler: SchedulerSettings = Field(default_factory=lambda: SchedulerSettings())

    http_timeout_seconds: int = Field(default=60, ge=1)
    run_on_startup: bool = Field(default=True)
    log_level: str = Field(default="INFO")
    output_format: Literal["yaml", "json"] = Field(default="yaml")
