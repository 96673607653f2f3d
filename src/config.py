"""Configuration loading and validation.

This module is responsible for:

- Loading `.env` into the process environment (without overriding existing vars).
- Converting environment variables into strongly-typed Pydantic models.
- Validating required fields and providing actionable error messages.
"""

import logging
import os

import dotenv
from pydantic import BaseModel, Field, field_validator

from tablelog.schema import TimeEncoding, is_valid_identifier


def _get_required_env(name: str) -> str:
    """Read a required env var or raise a helpful error."""
    value = os.getenv(name, "").strip()
    if not value:
        raise ValueError(f"{name} is required. Please set it in your .env file.")
    if value.startswith("your_") and value.endswith("_here"):
        raise ValueError(f"{name} is required. Please replace the placeholder value in your .env file.")
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    """Read a boolean env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    normalized = raw.strip().lower()
    if normalized in {"true", "1", "yes", "y", "on"}:
        return True
    if normalized in {"false", "0", "no", "n", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean (true/false). Got: {raw!r}")


def _get_env_list(name: str) -> list[str]:
    """Read a comma-separated env var; blanks are skipped."""
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


def _parse_level(value: int | str) -> int:
    """Accept a level number or a stdlib level name (e.g. "INFO")."""
    if isinstance(value, int):
        return value
    raw = value.strip()
    if raw.lstrip("-").isdigit():
        return int(raw)
    level = logging.getLevelName(raw.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {value!r}")
    return level


class SinkConfig(BaseModel):
    """Configuration of one table log handler."""

    table: str = Field(..., description="Log table name")
    additional_columns: list[str] = Field(default_factory=list, description="Additional columns to store")
    initialize: bool = Field(default=False, description="Reconcile the table at construction")
    skip_schema_sync: bool = Field(default=False, description="Never alter the table")
    level: int = Field(default=logging.NOTSET, description="Minimum level handled")
    bubble: bool = Field(default=True, description="Let records reach sibling handlers")
    time_encoding: TimeEncoding = Field(default=TimeEncoding.EPOCH, description="Storage encoding of `time`")

    @field_validator("table")
    def validate_table(cls, v: str) -> str:
        """Validate table name is set (not empty/placeholder)."""
        if not v or v == "your_log_table_here":
            raise ValueError("TABLELOG_TABLE is required. Please set it in your .env file.")
        if not is_valid_identifier(v):
            raise ValueError(f"TABLELOG_TABLE must be a plain identifier. Got: {v!r}")
        return v

    @field_validator("additional_columns")
    def validate_additional_columns(cls, v: list[str]) -> list[str]:
        bad = [name for name in v if not is_valid_identifier(name)]
        if bad:
            raise ValueError(f"TABLELOG_ADDITIONAL_COLUMNS contains invalid column names: {bad}")
        return v

    @field_validator("level", mode="before")
    def validate_level(cls, v: int | str) -> int:
        return _parse_level(v)


class StorageConfig(BaseModel):
    """Where the log table lives."""

    backend: str = Field(default="duckdb", description="Storage backend (duckdb or sqlite)")
    database: str = Field(default=":memory:", description="Database path, or :memory:")

    @field_validator("backend")
    def validate_backend(cls, v: str) -> str:
        normalized = v.strip().lower()
        if normalized not in {"duckdb", "sqlite"}:
            raise ValueError(f"TABLELOG_BACKEND must be one of: duckdb, sqlite. Got: {v!r}")
        return normalized


class Config(BaseModel):
    """Top-level application configuration."""

    sink: SinkConfig = Field(..., description="Handler configuration")
    storage: StorageConfig = Field(default_factory=StorageConfig, description="Storage configuration")


def load_config() -> Config:
    """Load application configuration from environment variables.

    Notes:
    - Calls `dotenv.load_dotenv()` so local `.env` values are visible to the process.
    - Raises `ValueError` with actionable messages when required configuration is
      missing or still contains placeholder values.
    """
    # Load variables from `.env` into the process environment (without overriding
    # already-set env vars).
    dotenv.load_dotenv()

    sink = SinkConfig(
        table=_get_required_env("TABLELOG_TABLE"),
        additional_columns=_get_env_list("TABLELOG_ADDITIONAL_COLUMNS"),
        initialize=_get_env_bool("TABLELOG_INITIALIZE", False),
        skip_schema_sync=_get_env_bool("TABLELOG_SKIP_SCHEMA_SYNC", False),
        level=os.getenv("TABLELOG_LEVEL", "").strip() or logging.NOTSET,
        bubble=_get_env_bool("TABLELOG_BUBBLE", True),
        time_encoding=os.getenv("TABLELOG_TIME_ENCODING", "").strip().lower() or TimeEncoding.EPOCH,
    )
    storage = StorageConfig(
        backend=os.getenv("TABLELOG_BACKEND", "").strip() or "duckdb",
        database=os.getenv("TABLELOG_DATABASE", "").strip() or ":memory:",
    )
    return Config(sink=sink, storage=storage)
