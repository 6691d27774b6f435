"""
SchemaHub - main entry point.

This module wires the registry core together:
- loads Settings from the environment
- configures logging
- builds the SchemaRegistry (SQLite-backed when SCHEMAHUB_STORAGE_PATH is set)
- hands control to the admin CLI

Usage:
    python -m services.schemahub_server.main subjects
    schemahub register --subject orders --type value --file order.avsc

Configuration is entirely via environment variables.
See config.py for all available settings.
"""

from __future__ import annotations

import logging
import sys
from typing import List, Optional

import json_log_formatter

from .config import Settings
from .registry import SchemaRegistry

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings.

    Args:
        settings: Registry settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # Logs go to stderr so CLI output on stdout stays machine-readable
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


def create_registry(settings: Optional[Settings] = None) -> SchemaRegistry:
    """Build a registry from settings (loaded from env if not provided)."""
    settings = settings or Settings()
    settings.log_config()
    return SchemaRegistry.from_settings(settings)


def main(argv: Optional[List[str]] = None) -> int:
    """Console script entry point."""
    from .tools.registry_cli import run

    return run(argv)


if __name__ == "__main__":
    sys.exit(main())
