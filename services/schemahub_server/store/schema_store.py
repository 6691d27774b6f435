"""
Content-addressed schema store for SchemaHub.

The schema store maps global schema ids and fingerprints to schema bodies.
It behaves like a write-ahead log: entries are only ever appended.

Invariants:
    - Ids come from one process-wide counter guarded by one mutex
    - An id is never reassigned or reused, even if no version references it
    - One fingerprint maps to exactly one id
    - Entries are immutable once stored

How to change safely:
    - Never derive ids from collection size; always advance the counter
    - Keep persistence write-through inside the id lock so the persisted
      log never has gaps caused by a reordered write
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from ..errors import InternalError, SchemaIdNotFoundError
from ..schema.canonical import generate_fingerprint
from ..schema.types import Schema
from .sqlite import SqliteStorage

logger = logging.getLogger(__name__)


class SchemaStore:
    """Append-only table of schemas keyed by id and fingerprint.

    Thread safety:
        All mutations hold a single lock, which makes id assignment atomic
        process-wide. Lookups are plain dict reads.

    Example:
        >>> store = SchemaStore()
        >>> schema_id = store.put('"string"', '{"type": "string"}')
        >>> store.put('"string"', '"string"') == schema_id
        True
    """

    def __init__(self, storage: Optional[SqliteStorage] = None) -> None:
        """Initialize the store, recovering persisted entries if storage is given.

        Args:
            storage: Optional SQLite storage for durability
        """
        self._by_id: Dict[int, Schema] = {}
        self._by_fingerprint: Dict[str, int] = {}
        self._last_id = 0
        self._lock = threading.Lock()
        self._storage = storage

        if storage is not None:
            self._recover(storage)

    def _recover(self, storage: SqliteStorage) -> None:
        storage.initialize()
        for schema in storage.load_schemas():
            if schema.fingerprint in self._by_fingerprint:
                raise InternalError(
                    f"Duplicate fingerprint {schema.fingerprint} in schema log "
                    f"(ids {self._by_fingerprint[schema.fingerprint]} and {schema.id})"
                )
            self._by_id[schema.id] = schema
            self._by_fingerprint[schema.fingerprint] = schema.id
            self._last_id = max(self._last_id, schema.id)
        logger.info(f"Recovered {len(self._by_id)} schemas, last id {self._last_id}")

    def __len__(self) -> int:
        return len(self._by_id)

    @property
    def last_id(self) -> int:
        """Highest id assigned so far (0 when empty)."""
        return self._last_id

    def put(
        self,
        canonical_body: str,
        raw_body: str,
        fingerprint: Optional[str] = None,
    ) -> int:
        """Store a schema, deduplicating by fingerprint.

        Args:
            canonical_body: Canonical JSON text
            raw_body: Schema text as submitted
            fingerprint: Precomputed fingerprint of canonical_body

        Returns:
            The id of the new or already-stored schema
        """
        fingerprint = fingerprint or generate_fingerprint(canonical_body)

        with self._lock:
            existing = self._by_fingerprint.get(fingerprint)
            if existing is not None:
                logger.debug(f"Schema {fingerprint} already stored as id {existing}")
                return existing

            schema = Schema(
                id=self._last_id + 1,
                fingerprint=fingerprint,
                canonical_body=canonical_body,
                raw_body=raw_body,
            )
            if self._storage is not None:
                self._storage.insert_schema(schema)

            self._last_id = schema.id
            self._by_id[schema.id] = schema
            self._by_fingerprint[fingerprint] = schema.id

        logger.info(f"Stored schema id {schema.id} ({fingerprint})")
        return schema.id

    def get_by_id(self, schema_id: int) -> Schema:
        """Get a schema by id.

        Raises:
            SchemaIdNotFoundError: If no schema has that id
        """
        schema = self._by_id.get(schema_id)
        if schema is None:
            raise SchemaIdNotFoundError(schema_id)
        return schema

    def find_by_fingerprint(self, fingerprint: str) -> Optional[Schema]:
        """Get a schema by fingerprint, or None if it was never stored."""
        schema_id = self._by_fingerprint.get(fingerprint)
        if schema_id is None:
            return None
        return self._by_id[schema_id]
