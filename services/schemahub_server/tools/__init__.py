"""
Tools module for SchemaHub.

This module provides operational tools:
- registry_cli: Admin CLI over a local (SQLite-backed) registry
"""

from .registry_cli import RegistryCLI, build_parser, run

__all__ = [
    "RegistryCLI",
    "build_parser",
    "run",
]
