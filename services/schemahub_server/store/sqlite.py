"""
SQLite persistence for the SchemaHub registry stores.

This module provides durable, append-friendly tables backing the three
in-memory stores:
- schemas: append-only schema log (id -> fingerprint, canonical, raw)
- subject_versions: per-scope version log with a soft-delete flag
- compat_config: compatibility mode per scope key, plus a global row

The in-memory stores are the read path; this storage is written through on
every mutation and read back in full on startup.

Invariants:
    - Schema rows are never updated or deleted
    - Version rows are never deleted; only the deleted flag flips 0 -> 1
    - Each table can be loaded independently of the others
    - All writes are single-statement autocommits

How to change safely:
    - Schema migrations must be backward compatible (add columns with defaults)
    - Bump SCHEMA_VERSION when the table layout changes
    - Never reuse a column name with a different meaning

Table schema:
    schemas:
        - id INTEGER PRIMARY KEY
        - fingerprint TEXT UNIQUE
        - canonical TEXT
        - raw TEXT
        - created_at INTEGER (Unix ms)

    subject_versions:
        - scope_key TEXT ('{subject}-{type}')
        - subject TEXT
        - schema_type TEXT
        - version INTEGER
        - schema_id INTEGER
        - deleted INTEGER (0/1)
        - created_at INTEGER (Unix ms)
        - PRIMARY KEY (scope_key, version)

    compat_config:
        - scope_key TEXT PRIMARY KEY ('__GLOBAL__' for the global default)
        - compatibility TEXT
        - updated_at INTEGER (Unix ms)
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List

from ..errors import InternalError
from ..schema.types import Schema, SchemaType, ScopeKey, Version

logger = logging.getLogger(__name__)

GLOBAL_CONFIG_KEY = "__GLOBAL__"


class SqliteStorage:
    """Single-file SQLite storage shared by the registry stores.

    Thread safety:
        A connection is opened per operation. Writes are serialized by an
        internal lock; SQLite WAL mode lets readers proceed concurrently.

    Example:
        >>> storage = SqliteStorage("/var/lib/schemahub/registry.db")
        >>> storage.initialize()
        >>> storage.insert_schema(schema)
        >>> storage.load_schemas()
        [Schema(id=1, ...)]
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the storage.

        Args:
            path: SQLite database file path
            wal_mode: Enable SQLite WAL journal mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.path = Path(path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._write_lock = threading.Lock()
        self._initialized = False

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection.

        Yields:
            SQLite connection

        Raises:
            InternalError: If the database cannot be opened or a statement fails
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(
                str(self.path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit
                check_same_thread=False,
            )
        except sqlite3.Error as e:
            raise InternalError(f"Cannot open registry database {self.path}", cause=e) from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        except sqlite3.Error as e:
            raise InternalError(f"Registry storage failure on {self.path}: {e}", cause=e) from e
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create tables if they don't exist. Safe to call repeatedly."""
        if self._initialized:
            return
        with self._write_lock, self._get_connection() as conn:
            conn.executescript("""
                -- Schema version tracking
                CREATE TABLE IF NOT EXISTS storage_version (
                    version INTEGER PRIMARY KEY,
                    applied_at INTEGER NOT NULL
                );

                -- Append-only schema log
                CREATE TABLE IF NOT EXISTS schemas (
                    id INTEGER PRIMARY KEY,
                    fingerprint TEXT NOT NULL UNIQUE,
                    canonical TEXT NOT NULL,
                    raw TEXT NOT NULL,
                    created_at INTEGER NOT NULL
                );

                -- Per-scope version log
                CREATE TABLE IF NOT EXISTS subject_versions (
                    scope_key TEXT NOT NULL,
                    subject TEXT NOT NULL,
                    schema_type TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    schema_id INTEGER NOT NULL,
                    deleted INTEGER NOT NULL DEFAULT 0,
                    created_at INTEGER NOT NULL,
                    PRIMARY KEY (scope_key, version)
                );

                CREATE INDEX IF NOT EXISTS idx_subject_versions_schema
                    ON subject_versions(schema_id);

                -- Compatibility configuration
                CREATE TABLE IF NOT EXISTS compat_config (
                    scope_key TEXT PRIMARY KEY,
                    compatibility TEXT NOT NULL,
                    updated_at INTEGER NOT NULL
                );

                INSERT OR IGNORE INTO storage_version (version, applied_at)
                VALUES (1, strftime('%s', 'now') * 1000);
            """)
        self._initialized = True
        logger.info(f"Initialized registry storage: {self.path}")

    # -- schemas -----------------------------------------------------------

    def insert_schema(self, schema: Schema) -> None:
        """Append a schema row."""
        with self._write_lock, self._get_connection() as conn:
            conn.execute(
                "INSERT INTO schemas (id, fingerprint, canonical, raw, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    schema.id,
                    schema.fingerprint,
                    schema.canonical_body,
                    schema.raw_body,
                    int(time.time() * 1000),
                ),
            )

    def load_schemas(self) -> List[Schema]:
        """Load every schema row ordered by id."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT id, fingerprint, canonical, raw FROM schemas ORDER BY id"
            ).fetchall()
        return [
            Schema(
                id=row["id"],
                fingerprint=row["fingerprint"],
                canonical_body=row["canonical"],
                raw_body=row["raw"],
            )
            for row in rows
        ]

    # -- subject versions --------------------------------------------------

    def insert_version(self, version: Version) -> None:
        """Append a version row."""
        with self._write_lock, self._get_connection() as conn:
            conn.execute(
                "INSERT INTO subject_versions "
                "(scope_key, subject, schema_type, version, schema_id, deleted, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    version.scope.render(),
                    version.scope.subject,
                    version.scope.schema_type.value,
                    version.version,
                    version.schema_id,
                    int(version.deleted),
                    int(time.time() * 1000),
                ),
            )

    def mark_versions_deleted(self, scope: ScopeKey, versions: List[int]) -> None:
        """Flip the deleted flag for the given versions of a scope."""
        if not versions:
            return
        with self._write_lock, self._get_connection() as conn:
            conn.executemany(
                "UPDATE subject_versions SET deleted = 1 WHERE scope_key = ? AND version = ?",
                [(scope.render(), v) for v in versions],
            )

    def load_versions(self) -> List[Version]:
        """Load every version row ordered by scope then version."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT subject, schema_type, version, schema_id, deleted "
                "FROM subject_versions ORDER BY scope_key, version"
            ).fetchall()
        return [
            Version(
                scope=ScopeKey(row["subject"], SchemaType.from_str(row["schema_type"])),
                version=row["version"],
                schema_id=row["schema_id"],
                deleted=bool(row["deleted"]),
            )
            for row in rows
        ]

    # -- compatibility config ----------------------------------------------

    def upsert_config(self, scope_key: str, compatibility: str) -> None:
        """Set the mode for a scope key (or GLOBAL_CONFIG_KEY)."""
        with self._write_lock, self._get_connection() as conn:
            conn.execute(
                "INSERT INTO compat_config (scope_key, compatibility, updated_at) "
                "VALUES (?, ?, ?) "
                "ON CONFLICT(scope_key) DO UPDATE SET "
                "compatibility = excluded.compatibility, updated_at = excluded.updated_at",
                (scope_key, compatibility, int(time.time() * 1000)),
            )

    def delete_config(self, scope_key: str) -> None:
        """Remove the mode row for a scope key."""
        with self._write_lock, self._get_connection() as conn:
            conn.execute("DELETE FROM compat_config WHERE scope_key = ?", (scope_key,))

    def load_config(self) -> Dict[str, str]:
        """Load every config row as {scope_key: compatibility}."""
        with self._get_connection() as conn:
            rows = conn.execute("SELECT scope_key, compatibility FROM compat_config").fetchall()
        return {row["scope_key"]: row["compatibility"] for row in rows}
