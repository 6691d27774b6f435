"""
Core type definitions for the SchemaHub registry.

This module defines the value types shared by every store and the facade:
- SchemaType / ScopeKey: the (subject, key|value) scope a version lives in
- CompatibilityMode: the evolution policy applied on registration
- Schema: an immutable, content-addressed schema record
- Version: a subject-scoped pointer to a schema
- SchemaInfo: the lookup result returned to callers

Invariants:
    - Schema ids are positive and never reused
    - Version numbers are positive and strictly increasing per scope
    - A ScopeKey always has a non-blank subject and a valid SchemaType
    - Schema records are immutable once created

How to change safely:
    - Add new CompatibilityMode members at the end, never rename existing ones
    - Keep ScopeKey.render() stable: it is the persisted scope key

Example:
    >>> from services.schemahub_server.schema.types import ScopeKey, SchemaType
    >>> scope = ScopeKey("orders", SchemaType.VALUE)
    >>> scope.render()
    'orders-value'
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

# Symbolic version selector resolving to the highest live version
LATEST = "latest"

VersionSelector = Union[int, str]


class SchemaType(Enum):
    """Which half of a message a subject describes."""

    KEY = "key"
    VALUE = "value"

    @classmethod
    def from_str(cls, value: str) -> SchemaType:
        """Convert string representation to SchemaType.

        Raises:
            ValueError: If value is not 'key' or 'value'
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid schema type '{value}'. Valid types: {valid}")


class CompatibilityMode(Enum):
    """Compatibility policies enforced between versions of a subject."""

    NONE = "NONE"
    BACKWARD = "BACKWARD"
    BACKWARD_TRANSITIVE = "BACKWARD_TRANSITIVE"
    FORWARD = "FORWARD"
    FORWARD_TRANSITIVE = "FORWARD_TRANSITIVE"
    FULL = "FULL"
    FULL_TRANSITIVE = "FULL_TRANSITIVE"

    @classmethod
    def from_str(cls, value: str) -> CompatibilityMode:
        """Parse a mode name, case-insensitively.

        Args:
            value: Mode name such as "backward" or "FULL_TRANSITIVE"

        Returns:
            Corresponding CompatibilityMode

        Raises:
            ValueError: If value does not name a mode
        """
        if isinstance(value, CompatibilityMode):
            return value
        if isinstance(value, str):
            normalized = value.strip().upper()
            for mode in cls:
                if mode.value == normalized:
                    return mode
        valid = [m.value for m in cls]
        raise ValueError(f"Invalid compatibility mode {value!r}. Valid modes: {valid}")

    @property
    def is_transitive(self) -> bool:
        """Whether the mode checks every prior version instead of the latest."""
        return self.value.endswith("_TRANSITIVE")

    @property
    def checks_backward(self) -> bool:
        """Whether the new schema must be able to read data written with the old one."""
        return self.value.startswith(("BACKWARD", "FULL"))

    @property
    def checks_forward(self) -> bool:
        """Whether the old schema must be able to read data written with the new one."""
        return self.value.startswith(("FORWARD", "FULL"))


@dataclass(frozen=True)
class ScopeKey:
    """Unique scope of a version history: a subject name plus its schema type.

    Attributes:
        subject: Logical subject name (usually a topic name)
        schema_type: Whether the subject describes message keys or values
    """

    subject: str
    schema_type: SchemaType

    def __post_init__(self) -> None:
        if not isinstance(self.subject, str) or not self.subject.strip():
            raise ValueError("Subject name cannot be empty")
        if not isinstance(self.schema_type, SchemaType):
            raise ValueError(f"schema_type must be a SchemaType, got {self.schema_type!r}")

    def render(self) -> str:
        """Render the conventional '{subject}-{type}' form."""
        return f"{self.subject}-{self.schema_type.value}"

    def __str__(self) -> str:
        return self.render()

    @classmethod
    def parse(cls, rendered: str) -> ScopeKey:
        """Parse a rendered scope key back into its parts.

        The type is the suffix after the last '-', so subject names may
        themselves contain dashes.
        """
        subject, sep, type_str = rendered.rpartition("-")
        if not sep:
            raise ValueError(f"Invalid scope key '{rendered}': missing type suffix")
        return cls(subject=subject, schema_type=SchemaType.from_str(type_str))


@dataclass(frozen=True)
class Schema:
    """Immutable schema record held by the schema store.

    Attributes:
        id: Global schema id (monotonic, never reused)
        fingerprint: Hash of the canonical form ('sha256:<hex>')
        canonical_body: Canonical JSON text
        raw_body: Schema text exactly as first registered
    """

    id: int
    fingerprint: str
    canonical_body: str
    raw_body: str

    def parsed(self) -> Any:
        """Decode the canonical body into its structural form."""
        return json.loads(self.canonical_body)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "fingerprint": self.fingerprint,
            "schema": self.raw_body,
        }


@dataclass(frozen=True)
class Version:
    """A subject-scoped pointer to a schema.

    Attributes:
        scope: Owning scope
        version: Version number within the scope (starts at 1)
        schema_id: Referenced schema id
        deleted: Soft-delete marker
    """

    scope: ScopeKey
    version: int
    schema_id: int
    deleted: bool = False


@dataclass(frozen=True)
class SchemaInfo:
    """A schema as seen through a subject version."""

    scope: ScopeKey
    version: int
    schema: Schema

    @property
    def subject(self) -> str:
        return self.scope.subject

    @property
    def schema_type(self) -> SchemaType:
        return self.scope.schema_type

    @property
    def schema_id(self) -> int:
        return self.schema.id

    def to_dict(self) -> dict[str, Any]:
        """Convert to the conventional schema-info dictionary."""
        return {
            "subject": self.scope.render(),
            "version": self.version,
            "id": self.schema.id,
            "schema": self.schema.raw_body,
        }
