"""
Subject-version index for SchemaHub.

The index keeps, for every scope, an ordered map of version number to
schema id with a soft-delete flag. Rows are never physically removed, which
keeps version numbers stable and lets the historical maximum survive a full
subject deletion.

Invariants:
    - Version numbers start at 1 and strictly increase per scope
    - A version number is never reused, even after the subject is deleted
    - At most one live version per scope points at a given schema id
    - "latest" is the highest live version number

How to change safely:
    - Append rows in increasing version order only; iteration order of the
      per-scope map is the version order
    - Persist before mutating memory so a storage failure leaves both unchanged
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Dict, List, Optional, Set

from ..errors import (
    AlreadyExistsError,
    InternalError,
    SubjectNotFoundError,
    VersionNotFoundError,
)
from ..schema.types import LATEST, ScopeKey, Version, VersionSelector
from .sqlite import SqliteStorage

logger = logging.getLogger(__name__)


class SubjectVersionIndex:
    """Ordered per-scope version history with soft deletion.

    Thread safety:
        Structural reads and writes hold an internal lock for their
        (short) duration. Multi-step read-check-write sequences must be
        serialized per scope by the caller.

    Example:
        >>> index = SubjectVersionIndex()
        >>> scope = ScopeKey("orders", SchemaType.VALUE)
        >>> index.append_version(scope, 7)
        1
        >>> index.list_versions(scope)
        [1]
    """

    def __init__(self, storage: Optional[SqliteStorage] = None) -> None:
        """Initialize the index, recovering persisted rows if storage is given."""
        self._versions: Dict[ScopeKey, Dict[int, Version]] = {}
        self._max_version: Dict[ScopeKey, int] = {}
        self._lock = threading.RLock()
        self._storage = storage

        if storage is not None:
            self._recover(storage)

    def _recover(self, storage: SqliteStorage) -> None:
        storage.initialize()
        count = 0
        for version in storage.load_versions():
            rows = self._versions.setdefault(version.scope, {})
            if version.version <= self._max_version.get(version.scope, 0):
                raise InternalError(
                    f"Version log out of order for '{version.scope}' at version {version.version}"
                )
            rows[version.version] = version
            self._max_version[version.scope] = version.version
            count += 1
        logger.info(f"Recovered {count} versions across {len(self._versions)} scopes")

    def append_version(self, scope: ScopeKey, schema_id: int) -> int:
        """Append a new version pointing at schema_id.

        Args:
            scope: Target scope
            schema_id: Schema store id

        Returns:
            The newly assigned version number

        Raises:
            AlreadyExistsError: If a live version already points at schema_id
        """
        with self._lock:
            existing = self.find_version_by_schema_id(scope, schema_id)
            if existing is not None:
                raise AlreadyExistsError(existing)

            version = Version(
                scope=scope,
                version=self._max_version.get(scope, 0) + 1,
                schema_id=schema_id,
            )
            if self._storage is not None:
                self._storage.insert_version(version)

            self._versions.setdefault(scope, {})[version.version] = version
            self._max_version[scope] = version.version

        logger.info(
            f"Registered version {version.version} of '{scope}' -> schema id {schema_id}",
            extra={"subject": scope.render(), "version": version.version, "schema_id": schema_id},
        )
        return version.version

    def history(self, scope: ScopeKey) -> List[Version]:
        """Live versions of a scope, oldest first (empty if none)."""
        with self._lock:
            rows = self._versions.get(scope, {})
            return [v for v in rows.values() if not v.deleted]

    def list_versions(self, scope: ScopeKey) -> List[int]:
        """Ascending live version numbers of a scope.

        Raises:
            SubjectNotFoundError: If the scope has no live versions
        """
        versions = [v.version for v in self.history(scope)]
        if not versions:
            raise SubjectNotFoundError(scope.render())
        return versions

    def get_version(self, scope: ScopeKey, version: VersionSelector) -> Version:
        """Get a live version by number or LATEST.

        Raises:
            VersionNotFoundError: If the version is absent or deleted
        """
        with self._lock:
            if version == LATEST:
                live = self.history(scope)
                if not live:
                    raise VersionNotFoundError(scope.render(), LATEST)
                return live[-1]

            row = self._versions.get(scope, {}).get(version)
            if row is None or row.deleted:
                raise VersionNotFoundError(scope.render(), version)
            return row

    def find_version_by_schema_id(self, scope: ScopeKey, schema_id: int) -> Optional[Version]:
        """The live version of a scope pointing at schema_id, if any."""
        with self._lock:
            for row in self._versions.get(scope, {}).values():
                if row.schema_id == schema_id and not row.deleted:
                    return row
            return None

    def soft_delete_version(self, scope: ScopeKey, version: VersionSelector) -> int:
        """Mark a live version deleted.

        Returns:
            The deleted version number

        Raises:
            VersionNotFoundError: If the version is absent or already deleted
        """
        with self._lock:
            row = self.get_version(scope, version)
            if self._storage is not None:
                self._storage.mark_versions_deleted(scope, [row.version])
            self._versions[scope][row.version] = replace(row, deleted=True)

        logger.info(f"Soft-deleted version {row.version} of '{scope}'")
        return row.version

    def delete_subject(self, scope: ScopeKey) -> List[int]:
        """Soft-delete every live version of a scope.

        Returns:
            Ascending version numbers that were deleted (empty if none were live)
        """
        with self._lock:
            live = [v.version for v in self.history(scope)]
            if not live:
                return []
            if self._storage is not None:
                self._storage.mark_versions_deleted(scope, live)
            rows = self._versions[scope]
            for number in live:
                rows[number] = replace(rows[number], deleted=True)

        logger.info(f"Deleted subject '{scope}' (versions {live})")
        return live

    def list_subjects(self) -> Set[ScopeKey]:
        """Scopes with at least one live version."""
        with self._lock:
            return {
                scope
                for scope, rows in self._versions.items()
                if any(not v.deleted for v in rows.values())
            }

    def max_version(self, scope: ScopeKey) -> int:
        """Highest version number ever assigned in a scope (0 if none)."""
        with self._lock:
            return self._max_version.get(scope, 0)
