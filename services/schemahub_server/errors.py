"""
Error types for the SchemaHub registry core.

Every failure raised by the stores and the facade is one of these types,
so callers never have to interpret an absent value:
- InvalidArgumentError: malformed subject, type, version, id or mode
- SchemaParseError: schema text failed canonicalization
- CompatibilityError: candidate violates the effective compatibility mode
- NotFoundError family: subject, version, schema id or schema missing
- AlreadyExistsError: duplicate registration (a success signal to the facade)
- InternalError: store corruption or storage failure

Invariants:
    - All errors inherit from RegistryError
    - Every error names the parameter or rule that caused it
    - Errors raised before a mutation leave every store untouched
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from .schema.compat import Incompatibility
    from .schema.types import CompatibilityMode, Version


class RegistryError(Exception):
    """Base exception for all registry errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "REGISTRY_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for a transport layer to serialize."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class InvalidArgumentError(RegistryError):
    """A caller-supplied parameter is malformed.

    Never retried: the same input always fails the same way.
    """

    def __init__(
        self,
        message: str,
        parameter: Optional[str] = None,
        value: Any = None,
        code: str = "INVALID_ARGUMENT",
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"parameter": parameter, "value": repr(value)},
        )
        self.parameter = parameter
        self.value = value


class InvalidModeError(InvalidArgumentError):
    """The compatibility mode is not one of the recognized values."""

    def __init__(self, value: Any) -> None:
        from .schema.types import CompatibilityMode

        valid = [m.value for m in CompatibilityMode]
        super().__init__(
            f"Invalid compatibility mode {value!r}. Valid modes: {valid}",
            parameter="compatibility",
            value=value,
            code="INVALID_MODE",
        )


class SchemaParseError(RegistryError):
    """The schema text could not be canonicalized.

    Attributes:
        diagnostic: Parser message explaining the failure
    """

    def __init__(self, diagnostic: str) -> None:
        super().__init__(
            f"Invalid schema: {diagnostic}",
            code="SCHEMA_PARSE_ERROR",
            details={"diagnostic": diagnostic},
        )
        self.diagnostic = diagnostic


class CompatibilityError(RegistryError):
    """The candidate schema violates the effective compatibility mode.

    Attributes:
        incompatibilities: Every rule violation found
        mode: The mode that was enforced
    """

    def __init__(
        self,
        incompatibilities: List[Incompatibility],
        mode: CompatibilityMode,
        scope: Optional[str] = None,
    ) -> None:
        self.incompatibilities = incompatibilities
        self.mode = mode
        messages = [str(i) for i in incompatibilities]
        target = f" for subject '{scope}'" if scope else ""
        super().__init__(
            f"Schema is incompatible{target} under {mode.value} with "
            f"{len(incompatibilities)} violation(s):\n" + "\n".join(messages),
            code="INCOMPATIBLE_SCHEMA",
            details={
                "mode": mode.value,
                "scope": scope,
                "violations": [i.to_dict() for i in incompatibilities],
            },
        )


class NotFoundError(RegistryError):
    """Base class for lookups that found nothing."""


class SubjectNotFoundError(NotFoundError):
    """The scope has no live versions."""

    def __init__(self, scope: str) -> None:
        super().__init__(
            f"Subject '{scope}' not found",
            code="SUBJECT_NOT_FOUND",
            details={"subject": scope},
        )
        self.scope = scope


class VersionNotFoundError(NotFoundError):
    """The requested version is absent or soft-deleted."""

    def __init__(self, scope: str, version: Any) -> None:
        super().__init__(
            f"Version {version} not found for subject '{scope}'",
            code="VERSION_NOT_FOUND",
            details={"subject": scope, "version": version},
        )
        self.scope = scope
        self.version = version


class SchemaIdNotFoundError(NotFoundError):
    """No schema was ever stored under the id."""

    def __init__(self, schema_id: int) -> None:
        super().__init__(
            f"Schema id {schema_id} not found",
            code="SCHEMA_ID_NOT_FOUND",
            details={"schema_id": schema_id},
        )
        self.schema_id = schema_id


class SchemaNotFoundError(NotFoundError):
    """The schema is not registered under the scope."""

    def __init__(self, scope: str, fingerprint: str) -> None:
        super().__init__(
            f"Schema {fingerprint} is not registered under subject '{scope}'",
            code="SCHEMA_NOT_FOUND",
            details={"subject": scope, "fingerprint": fingerprint},
        )
        self.scope = scope
        self.fingerprint = fingerprint


class AlreadyExistsError(RegistryError):
    """A live version already points at the schema.

    The facade resolves this to the existing identity; it is not
    propagated to callers.

    Attributes:
        existing: The live version holding the schema
    """

    def __init__(self, existing: Version) -> None:
        super().__init__(
            f"Schema id {existing.schema_id} already registered as version "
            f"{existing.version} of subject '{existing.scope}'",
            code="ALREADY_EXISTS",
            details={
                "subject": existing.scope.render(),
                "version": existing.version,
                "schema_id": existing.schema_id,
            },
        )
        self.existing = existing


class InternalError(RegistryError):
    """A store invariant was violated or the storage backend failed."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(
            message,
            code="INTERNAL_ERROR",
            details={"cause": repr(cause) if cause else None},
        )
        self.cause = cause
