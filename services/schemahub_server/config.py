"""
Configuration for the SchemaHub registry core.

All configuration comes from environment variables (prefix SCHEMAHUB_)
through pydantic-settings, with sensible defaults for local development.

Invariants:
    - default_compatibility is always a recognized mode
    - An unset storage_path means a purely in-memory registry

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - The persisted global mode, once set, wins over default_compatibility
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from .schema.types import CompatibilityMode

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Registry configuration loaded from environment."""

    # Compatibility
    default_compatibility: str = Field(
        default="BACKWARD",
        description="Global compatibility mode used until one is set explicitly",
    )

    # Storage (unset = in-memory only)
    storage_path: Optional[str] = Field(default=None, description="SQLite database file")
    sqlite_wal_mode: bool = Field(default=True, description="Enable SQLite WAL journal mode")
    sqlite_busy_timeout_ms: int = Field(default=5000, ge=0, description="SQLite busy timeout")

    # Logging
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")
    log_format: str = Field(default="text", description="Log format: text or json")

    model_config = {"env_prefix": "SCHEMAHUB_"}

    @field_validator("default_compatibility")
    @classmethod
    def _validate_compatibility(cls, value: str) -> str:
        return CompatibilityMode.from_str(value).value

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got '{value}'")
        return value

    @property
    def compatibility_mode(self) -> CompatibilityMode:
        """default_compatibility as a CompatibilityMode."""
        return CompatibilityMode.from_str(self.default_compatibility)

    def log_config(self) -> None:
        """Log the effective configuration."""
        logger.info(
            "Registry configuration loaded",
            extra={
                "default_compatibility": self.default_compatibility,
                "storage_path": self.storage_path,
                "sqlite_wal_mode": self.sqlite_wal_mode,
                "log_level": self.log_level,
                "log_format": self.log_format,
            },
        )
