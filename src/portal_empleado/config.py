"""
portal_empleado.config
~~~~~~~~~~~~~~~~~~~~~~
Central configuration for the receipt portal.

All values have defaults that work out of the box (remote source disabled,
cache database under ``~/.portal_empleado``). Override any field via a
``.env`` file or ``PORTAL_``-prefixed environment variables; pydantic-settings picks them
up automatically.

A ``Config`` is built once at startup (CLI, API app factory) and handed to
each component's constructor; nothing in the package reads the environment
on its own.

Usage::

    from portal_empleado.config import Config

    config = Config()
    print(config.cache_db_path)
    print(config.get_source_config())   # typed SourceConfig dataclass
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_KEY_TEMPLATE = "{period}/Personal_{cuil}_{period}.json"
DEFAULT_DB_PATH = Path.home() / ".portal_empleado" / "receipt-cache.db"
DEFAULT_MAX_MONTHS_BACK = 12


# ---------------------------------------------------------------------------
# Typed snapshot handed to the remote source adapter
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SourceConfig:
    """Immutable snapshot of the remote receipt source settings."""

    enabled:        bool
    backend:        str
    bucket:         str
    region:         str
    prefix:         str
    key_template:   str
    endpoint_url:   Optional[str] = None
    local_data_dir: Optional[Path] = None
    trace_searches: bool = False

    @property
    def is_usable(self) -> bool:
        """True when the source is switched on and has its required location."""
        if not self.enabled:
            return False
        if self.backend == "local":
            return self.local_data_dir is not None
        return bool(self.bucket.strip())

    @property
    def location(self) -> str:
        if self.backend == "local":
            return str(self.local_data_dir or "")
        return f"s3://{self.bucket}"


# ---------------------------------------------------------------------------
# Main settings class
# ---------------------------------------------------------------------------

class Config(BaseSettings):
    """
    Runtime configuration for portal_empleado.

    Reads from (in priority order):
      1. Environment variables (prefixed with ``PORTAL_``)
      2. A ``.env`` file in the working directory
      3. The defaults defined below
    """

    model_config = SettingsConfigDict(
        env_prefix="PORTAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Remote receipt source
    # ------------------------------------------------------------------

    source_enabled: bool = Field(
        default=False,
        description="Administrative switch for the remote receipt source.",
    )
    source_backend: Literal["s3", "local"] = Field(
        default="s3",
        description="'s3' for an S3-compatible bucket, 'local' for a directory tree.",
    )
    s3_bucket: str = Field(default="", description="Bucket holding payroll JSON files.")
    s3_region: str = Field(
        default="",
        description="AWS region (empty = boto3 default resolution).",
    )
    s3_prefix: str = Field(default="", description="Key prefix prepended to every candidate key.")
    s3_endpoint_url: Optional[str] = Field(
        default=None,
        description="Custom endpoint for MinIO / S3-compatible storage.",
    )
    key_template: str = Field(
        default=DEFAULT_KEY_TEMPLATE,
        description=(
            "Object key template. Tokens: {cuil}, {cuil_digits}, {period}, "
            "{period_token}, {period_id}, {period_folder}."
        ),
    )
    local_data_dir: Optional[Path] = Field(
        default=None,
        description="Root directory used when source_backend='local'.",
    )
    trace_searches: bool = Field(
        default=False,
        description="Log every candidate key at INFO instead of DEBUG.",
    )

    # ------------------------------------------------------------------
    # Local catalog cache
    # ------------------------------------------------------------------

    cache_db_path: Path = Field(
        default=DEFAULT_DB_PATH,
        description="SQLite file holding receipt snapshots.",
    )

    # ------------------------------------------------------------------
    # Listing policy
    # ------------------------------------------------------------------

    max_months_back: int = Field(
        default=DEFAULT_MAX_MONTHS_BACK,
        description="Size of the allowed period window, current month included.",
    )
    not_found_ttl_hours: float = Field(
        default=12.0,
        gt=0,
        description="How long a period confirmed missing upstream is not re-queried.",
    )
    lock_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Max wait for a period lock (None = wait indefinitely).",
    )

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("key_template")
    @classmethod
    def _default_blank_template(cls, v: str) -> str:
        return v.strip() or DEFAULT_KEY_TEMPLATE

    @field_validator("s3_prefix", "s3_bucket", "s3_region")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()

    @field_validator("max_months_back")
    @classmethod
    def _coerce_window(cls, v: int) -> int:
        return v if v >= 1 else DEFAULT_MAX_MONTHS_BACK

    @field_validator("cache_db_path", "local_data_dir")
    @classmethod
    def _expand_user(cls, v: Optional[Path]) -> Optional[Path]:
        return v.expanduser() if v is not None else None

    # ------------------------------------------------------------------
    # Helper methods
    # ------------------------------------------------------------------

    def get_source_config(self) -> SourceConfig:
        """Return an immutable, typed snapshot of the remote source settings."""
        return SourceConfig(
            enabled=self.source_enabled,
            backend=self.source_backend,
            bucket=self.s3_bucket,
            region=self.s3_region,
            prefix=self.s3_prefix,
            key_template=self.key_template,
            endpoint_url=self.s3_endpoint_url,
            local_data_dir=self.local_data_dir,
            trace_searches=self.trace_searches,
        )

    @property
    def not_found_ttl_seconds(self) -> float:
        return self.not_found_ttl_hours * 3600.0


__all__ = ["Config", "SourceConfig", "DEFAULT_KEY_TEMPLATE", "DEFAULT_DB_PATH"]
