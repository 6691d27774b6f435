"""
Schema Registry facade for SchemaHub.

The SchemaRegistry is the public operation surface of the registry core.
It composes the canonicalizer, the schema store, the subject-version index,
the config store and the compatibility engine:
- register / check_schema / test_compatibility
- get_schema_by_id / get_schema / list_versions / list_subjects
- delete_version / delete_subject
- global and per-subject compatibility configuration

Invariants:
    - Parameters are validated and schemas canonicalized before any mutation
    - Writers serialize per scope; schema id assignment is atomic process-wide
    - A failed compatibility check mutates nothing
    - Registering a schema already live in the scope returns its existing id
    - Every failure is a distinct RegistryError; nothing returns None for errors

How to change safely:
    - Keep expensive work (canonicalization) outside the per-scope lock
    - Anything that reads "latest" and then writes must hold the scope lock
    - New operations validate parameters with the _scope/_version helpers

Example:
    >>> registry = SchemaRegistry()
    >>> schema_id = registry.register("orders", "value", '{"type": "string"}')
    >>> registry.list_versions("orders", "value")
    [1]
    >>> registry.get_schema("orders", "value").schema.id == schema_id
    True
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Set

from .config import Settings
from .errors import (
    AlreadyExistsError,
    InternalError,
    InvalidArgumentError,
    SchemaIdNotFoundError,
    SchemaNotFoundError,
    SubjectNotFoundError,
    VersionNotFoundError,
)
from .schema.canonical import AvroCanonicalizer, CanonicalSchema, SchemaCanonicalizer
from .schema.compat import check_compatibility, validate_compatibility
from .schema.types import (
    LATEST,
    Schema,
    SchemaInfo,
    SchemaType,
    ScopeKey,
    Version,
    VersionSelector,
)
from .store.config_store import ConfigStore
from .store.schema_store import SchemaStore
from .store.sqlite import SqliteStorage
from .store.version_index import SubjectVersionIndex

logger = logging.getLogger(__name__)


class SchemaRegistry:
    """Versioned, compatibility-checked schema registry.

    Thread-safety:
        - Any number of concurrent readers
        - register/delete serialize per scope through a lock table; the table
          keeps one lock per scope ever written and is never pruned
        - Schema id assignment is guarded by the schema store's own mutex

    Attributes:
        schemas: Content-addressed schema store
        versions: Subject-version index
        config: Compatibility config store
        canonicalizer: Schema text parser
    """

    def __init__(
        self,
        schema_store: Optional[SchemaStore] = None,
        version_index: Optional[SubjectVersionIndex] = None,
        config_store: Optional[ConfigStore] = None,
        canonicalizer: Optional[SchemaCanonicalizer] = None,
    ) -> None:
        """Initialize the facade, creating in-memory stores for any not given."""
        # Stores define __len__, so an empty store is falsy: compare with None
        self.schemas = schema_store if schema_store is not None else SchemaStore()
        self.versions = version_index if version_index is not None else SubjectVersionIndex()
        self.config = config_store if config_store is not None else ConfigStore()
        self.canonicalizer = canonicalizer if canonicalizer is not None else AvroCanonicalizer()
        self._scope_locks: Dict[ScopeKey, threading.Lock] = {}
        self._scope_locks_guard = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> SchemaRegistry:
        """Build a registry from settings, backed by SQLite if storage_path is set."""
        storage: Optional[SqliteStorage] = None
        if settings.storage_path:
            storage = SqliteStorage(
                settings.storage_path,
                wal_mode=settings.sqlite_wal_mode,
                busy_timeout_ms=settings.sqlite_busy_timeout_ms,
            )
        return cls(
            schema_store=SchemaStore(storage),
            version_index=SubjectVersionIndex(storage),
            config_store=ConfigStore(settings.compatibility_mode, storage),
        )

    # -- registration --------------------------------------------------------

    def register(self, subject: str, schema_type: Any, schema: Any) -> int:
        """Register a schema under a subject scope.

        Args:
            subject: Subject name
            schema_type: "key" or "value"
            schema: Schema text or decoded JSON

        Returns:
            Global schema id (existing id if the schema was already stored)

        Raises:
            InvalidArgumentError: If subject or type is malformed
            SchemaParseError: If the schema is invalid
            CompatibilityError: If the schema violates the effective mode
        """
        scope = self._scope(subject, schema_type)
        canonical = self._canonicalize(schema)

        with self._scope_lock(scope):
            existing = self._find_live(scope, canonical)
            if existing is not None:
                logger.debug(
                    f"Schema already registered as version {existing.version} of '{scope}'"
                )
                return existing.schema.id

            mode = self.config.get_effective_mode(scope)
            history = self.versions.history(scope)
            references = history if mode.is_transitive else history[-1:]
            validate_compatibility(
                canonical.canonical,
                [self._schema_for(v).parsed() for v in references],
                mode,
                scope=scope.render(),
            )

            schema_id = self.schemas.put(
                canonical.canonical_text,
                canonical.raw_body,
                fingerprint=canonical.fingerprint,
            )
            try:
                version = self.versions.append_version(scope, schema_id)
            except AlreadyExistsError as e:
                version = e.existing.version

        logger.info(
            f"Registered schema id {schema_id} as version {version} of '{scope}' "
            f"under {mode.value}",
            extra={"subject": scope.render(), "version": version, "schema_id": schema_id},
        )
        return schema_id

    def check_schema(self, subject: str, schema_type: Any, schema: Any) -> SchemaInfo:
        """Look up whether a schema is registered under a subject.

        This is register() without side effects: nothing is stored and no
        compatibility check runs.

        Returns:
            SchemaInfo of the live version holding the schema

        Raises:
            InvalidArgumentError: If subject or type is malformed
            SchemaParseError: If the schema is invalid
            SubjectNotFoundError: If the subject has no live versions
            SchemaNotFoundError: If the schema is not registered under the subject
        """
        scope = self._scope(subject, schema_type)
        canonical = self._canonicalize(schema)

        if not self.versions.history(scope):
            raise SubjectNotFoundError(scope.render())
        info = self._find_live(scope, canonical)
        if info is None:
            raise SchemaNotFoundError(scope.render(), canonical.fingerprint)
        return info

    def test_compatibility(
        self,
        subject: str,
        schema_type: Any,
        schema: Any,
        version: VersionSelector = LATEST,
    ) -> bool:
        """Test a schema against the subject without registering it.

        With an explicit version only that version is checked. With "latest"
        the effective mode decides: the latest version, or every live version
        for transitive modes.

        Returns:
            True if the schema satisfies the effective compatibility mode

        Raises:
            InvalidArgumentError: If subject, type or version is malformed
            SchemaParseError: If the schema is invalid
            VersionNotFoundError: If the version (or any version) does not exist
        """
        scope = self._scope(subject, schema_type)
        selector = self._version(version)
        canonical = self._canonicalize(schema)
        mode = self.config.get_effective_mode(scope)

        if selector == LATEST:
            history = self.versions.history(scope)
            if not history:
                raise VersionNotFoundError(scope.render(), LATEST)
            references = history if mode.is_transitive else history[-1:]
        else:
            references = [self.versions.get_version(scope, selector)]

        violations = check_compatibility(
            canonical.canonical,
            [self._schema_for(v).parsed() for v in references],
            mode,
        )
        if violations:
            logger.info(
                f"Schema is incompatible with '{scope}' under {mode.value}: "
                + "; ".join(str(v) for v in violations)
            )
        return not violations

    # -- lookups -------------------------------------------------------------

    def list_subjects(self) -> Set[str]:
        """Rendered scope keys ('{subject}-{type}') with at least one live version."""
        return {scope.render() for scope in self.versions.list_subjects()}

    def list_versions(self, subject: str, schema_type: Any) -> List[int]:
        """Ascending live version numbers of a subject.

        Raises:
            InvalidArgumentError: If subject or type is malformed
            SubjectNotFoundError: If the subject has no live versions
        """
        return self.versions.list_versions(self._scope(subject, schema_type))

    def get_schema_by_id(self, schema_id: Any) -> Schema:
        """Fetch a schema by global id, regardless of subject deletions.

        Raises:
            InvalidArgumentError: If schema_id is not a positive integer
            SchemaIdNotFoundError: If no schema has that id
        """
        return self.schemas.get_by_id(self._schema_id(schema_id))

    def get_schema(
        self,
        subject: str,
        schema_type: Any,
        version: VersionSelector = LATEST,
    ) -> SchemaInfo:
        """Fetch a subject version (default: latest).

        Raises:
            InvalidArgumentError: If subject, type or version is malformed
            VersionNotFoundError: If the version is absent or deleted
        """
        scope = self._scope(subject, schema_type)
        row = self.versions.get_version(scope, self._version(version))
        return SchemaInfo(scope=scope, version=row.version, schema=self._schema_for(row))

    # -- deletion ------------------------------------------------------------

    def delete_version(self, subject: str, schema_type: Any, version: VersionSelector) -> int:
        """Soft-delete one version of a subject.

        Returns:
            The deleted version number

        Raises:
            InvalidArgumentError: If subject, type or version is malformed
            VersionNotFoundError: If the version is absent or already deleted
        """
        scope = self._scope(subject, schema_type)
        selector = self._version(version)
        with self._scope_lock(scope):
            return self.versions.soft_delete_version(scope, selector)

    def delete_subject(self, subject: str, schema_type: Any) -> List[int]:
        """Delete every live version of a subject.

        Schemas stay retrievable by id. Version numbers are not reused if the
        subject is registered again.

        Returns:
            Ascending deleted version numbers (empty if none were live)

        Raises:
            InvalidArgumentError: If subject or type is malformed
        """
        scope = self._scope(subject, schema_type)
        with self._scope_lock(scope):
            return self.versions.delete_subject(scope)

    # -- configuration -------------------------------------------------------

    def get_global_config(self) -> str:
        return self.config.get_global_default().value

    def set_global_config(self, compatibility: Any) -> str:
        """Set the global default mode.

        Raises:
            InvalidModeError: If the mode is not recognized
        """
        return self.config.set_global_default(compatibility).value

    def get_subject_config(self, subject: str, schema_type: Any) -> str:
        """Effective mode of a subject (its override or the global default)."""
        return self.config.get_effective_mode(self._scope(subject, schema_type)).value

    def set_subject_config(self, subject: str, schema_type: Any, compatibility: Any) -> str:
        """Set a per-subject override.

        Raises:
            InvalidArgumentError: If subject or type is malformed
            InvalidModeError: If the mode is not recognized
        """
        scope = self._scope(subject, schema_type)
        return self.config.set_override(scope, compatibility).value

    def delete_subject_config(self, subject: str, schema_type: Any) -> str:
        """Clear a per-subject override.

        Returns:
            The mode now in effect for the subject (the global default)
        """
        scope = self._scope(subject, schema_type)
        self.config.clear_override(scope)
        return self.config.get_effective_mode(scope).value

    # -- helpers -------------------------------------------------------------

    def _scope_lock(self, scope: ScopeKey) -> threading.Lock:
        with self._scope_locks_guard:
            lock = self._scope_locks.get(scope)
            if lock is None:
                lock = self._scope_locks[scope] = threading.Lock()
            return lock

    def _canonicalize(self, schema: Any) -> CanonicalSchema:
        if not isinstance(schema, (str, Mapping, list)):
            raise InvalidArgumentError(
                f"Schema must be text or a decoded JSON object, got {type(schema).__name__}",
                parameter="schema",
                value=schema,
            )
        return self.canonicalizer.canonicalize(schema)

    def _find_live(self, scope: ScopeKey, canonical: CanonicalSchema) -> Optional[SchemaInfo]:
        stored = self.schemas.find_by_fingerprint(canonical.fingerprint)
        if stored is None:
            return None
        row = self.versions.find_version_by_schema_id(scope, stored.id)
        if row is None:
            return None
        return SchemaInfo(scope=scope, version=row.version, schema=stored)

    def _schema_for(self, row: Version) -> Schema:
        try:
            return self.schemas.get_by_id(row.schema_id)
        except SchemaIdNotFoundError as e:
            raise InternalError(
                f"Version {row.version} of '{row.scope}' references missing schema id "
                f"{row.schema_id}",
                cause=e,
            ) from e

    @staticmethod
    def _scope(subject: Any, schema_type: Any) -> ScopeKey:
        if not isinstance(subject, str) or not subject.strip():
            raise InvalidArgumentError(
                "Subject name must be a non-empty string",
                parameter="subject",
                value=subject,
            )
        if isinstance(schema_type, SchemaType):
            return ScopeKey(subject, schema_type)
        try:
            return ScopeKey(subject, SchemaType.from_str(schema_type))
        except ValueError as e:
            raise InvalidArgumentError(
                f"Schema type must be 'key' or 'value', got {schema_type!r}",
                parameter="type",
                value=schema_type,
            ) from e

    @staticmethod
    def _version(version: Any) -> VersionSelector:
        if version == LATEST:
            return LATEST
        number = _positive_int(version)
        if number is None:
            raise InvalidArgumentError(
                f"Version must be a positive integer or '{LATEST}', got {version!r}",
                parameter="version",
                value=version,
            )
        return number

    @staticmethod
    def _schema_id(schema_id: Any) -> int:
        number = _positive_int(schema_id)
        if number is None:
            raise InvalidArgumentError(
                f"Schema id must be a positive integer, got {schema_id!r}",
                parameter="schema_id",
                value=schema_id,
            )
        return number


def _positive_int(value: Any) -> Optional[int]:
    """Parse a positive int from an int or a decimal digit string."""
    if isinstance(value, bool):
        return None
    # isdigit() alone accepts non-ASCII digits such as '²' that int() rejects
    if isinstance(value, str) and value.isascii() and value.isdigit():
        value = int(value)
    if isinstance(value, int) and value > 0:
        return value
    return None
