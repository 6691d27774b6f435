"""
Storage module for SchemaHub.

This module provides the registry's three stores and their persistence:
- SchemaStore: content-addressed, append-only schema log
- SubjectVersionIndex: per-scope version history with soft deletion
- ConfigStore: global and per-scope compatibility modes
- SqliteStorage: optional durable backing for all three

Invariants:
    - Stores are owned by a single SchemaRegistry facade
    - Stores reference each other only by schema id
    - Each store recovers independently from storage on construction
"""

from .config_store import ConfigStore, parse_mode
from .schema_store import SchemaStore
from .sqlite import GLOBAL_CONFIG_KEY, SqliteStorage
from .version_index import SubjectVersionIndex

__all__ = [
    "ConfigStore",
    "GLOBAL_CONFIG_KEY",
    "SchemaStore",
    "SqliteStorage",
    "SubjectVersionIndex",
    "parse_mode",
]
