"""
Schema compatibility checking for the SchemaHub registry.

This module decides whether a candidate schema may follow the existing
versions of a subject, using Avro schema-resolution rules:
- BACKWARD: a reader using the new schema can read data written with the old
- FORWARD: a reader using the old schema can read data written with the new
- FULL: both directions
- *_TRANSITIVE: the rule holds against every prior version, not just the latest

On top of plain Avro resolution, a writer field without a default may not be
missing from the reader: under BACKWARD a required field cannot be removed,
and under FORWARD a field cannot be added without a default.

Invariants:
    - Inputs are canonical schemas (see canonical.py); nothing here parses text
    - An empty reference list is always compatible (first registration)
    - Checks never mutate their inputs

How to change safely:
    - New rule violations need a new IncompatibilityKind member
    - Keep promotion rules aligned with the Avro specification
    - Add a test for every new rule in tests/unit/test_compat.py

Example:
    >>> from services.schemahub_server.schema.compat import check_compatibility
    >>> violations = check_compatibility(new, [v1, v2], CompatibilityMode.BACKWARD)
    >>> if violations:
    ...     raise CompatibilityError(violations, CompatibilityMode.BACKWARD)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from ..errors import CompatibilityError
from .canonical import NAMED_TYPES, PRIMITIVE_TYPES
from .types import CompatibilityMode

logger = logging.getLogger(__name__)

# (writer type, reader type) pairs allowed by Avro type promotion
PROMOTIONS = frozenset(
    {
        ("int", "long"),
        ("int", "float"),
        ("int", "double"),
        ("long", "float"),
        ("long", "double"),
        ("float", "double"),
        ("string", "bytes"),
        ("bytes", "string"),
    }
)


class IncompatibilityKind(Enum):
    """Ways a reader schema can fail to read writer data."""

    NAME_MISMATCH = auto()
    FIXED_SIZE_MISMATCH = auto()
    MISSING_ENUM_SYMBOLS = auto()
    READER_FIELD_MISSING_DEFAULT_VALUE = auto()
    WRITER_FIELD_REMOVED_WITHOUT_DEFAULT = auto()
    TYPE_MISMATCH = auto()
    MISSING_UNION_BRANCH = auto()


@dataclass(frozen=True)
class Incompatibility:
    """A single rule violation between a reader and a writer schema.

    Attributes:
        kind: The rule that was violated
        path: Location in the reader schema (e.g. "/fields/email/type")
        message: Human-readable description
        direction: "BACKWARD" or "FORWARD" once attributed to a mode
        reference_index: Index of the reference schema it failed against
    """

    kind: IncompatibilityKind
    path: str
    message: str
    direction: str = ""
    reference_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.name,
            "path": self.path or "/",
            "message": self.message,
            "direction": self.direction,
            "reference_index": self.reference_index,
        }

    def __str__(self) -> str:
        prefix = f"[{self.direction}] " if self.direction else ""
        return f"{prefix}{self.kind.name}: {self.path or '/'} - {self.message}"


def check_reader_writer(reader: Any, writer: Any) -> List[Incompatibility]:
    """Check whether data written with `writer` can be read with `reader`.

    Args:
        reader: Canonical reader schema
        writer: Canonical writer schema

    Returns:
        List of violations (empty when the reader can read the writer)
    """
    return _Resolver(reader, writer).check(reader, writer, "")


def check_compatibility(
    candidate: Any,
    references: Sequence[Any],
    mode: CompatibilityMode,
) -> List[Incompatibility]:
    """Check a candidate schema against existing versions.

    Args:
        candidate: Canonical form of the schema being registered
        references: Canonical forms of existing versions, oldest first
        mode: Compatibility mode to enforce

    Returns:
        List of violations, each tagged with its direction and reference index
    """
    if mode is CompatibilityMode.NONE or not references:
        return []

    if mode.is_transitive:
        targets = list(enumerate(references))
    else:
        targets = [(len(references) - 1, references[-1])]

    violations: List[Incompatibility] = []
    for index, reference in targets:
        if mode.checks_backward:
            violations.extend(
                replace(v, direction="BACKWARD", reference_index=index)
                for v in check_reader_writer(reader=candidate, writer=reference)
            )
        if mode.checks_forward:
            violations.extend(
                replace(v, direction="FORWARD", reference_index=index)
                for v in check_reader_writer(reader=reference, writer=candidate)
            )

    logger.debug(
        f"Compatibility check under {mode.value} against {len(targets)} "
        f"reference(s): {len(violations)} violation(s)"
    )
    return violations


def is_compatible(
    candidate: Any,
    references: Sequence[Any],
    mode: CompatibilityMode,
) -> bool:
    """Whether the candidate satisfies `mode` against the references."""
    return not check_compatibility(candidate, references, mode)


def validate_compatibility(
    candidate: Any,
    references: Sequence[Any],
    mode: CompatibilityMode,
    scope: Optional[str] = None,
) -> None:
    """Raise if the candidate violates the mode.

    Raises:
        CompatibilityError: If any violation is found
    """
    violations = check_compatibility(candidate, references, mode)
    if violations:
        raise CompatibilityError(violations, mode, scope=scope)


def _collect_names(node: Any, names: Dict[str, Any]) -> Dict[str, Any]:
    """Index named type definitions of a canonical schema by full name."""
    if isinstance(node, list):
        for branch in node:
            _collect_names(branch, names)
    elif isinstance(node, dict):
        kind = node.get("type")
        if kind in NAMED_TYPES:
            names.setdefault(node["name"], node)
            for f in node.get("fields", []):
                _collect_names(f["type"], names)
        elif kind == "array":
            _collect_names(node["items"], names)
        elif kind == "map":
            _collect_names(node["values"], names)
    return names


def _type_name(node: Any) -> str:
    if isinstance(node, list):
        return "union"
    if isinstance(node, dict):
        kind = node["type"]
        return "record" if kind == "error" else kind
    return node


def _unqualified(name: str) -> str:
    return name.rpartition(".")[2]


def _describe(node: Any) -> str:
    if isinstance(node, dict) and "name" in node:
        return f"{_type_name(node)} {node['name']}"
    return _type_name(node)


class _Resolver:
    """Applies Avro resolution rules to one reader/writer pair."""

    def __init__(self, reader: Any, writer: Any) -> None:
        self.reader_names = _collect_names(reader, {})
        self.writer_names = _collect_names(writer, {})
        self._seen: Set[Tuple[str, str]] = set()

    def _resolve(self, node: Any, names: Dict[str, Any]) -> Any:
        if isinstance(node, str) and node not in PRIMITIVE_TYPES:
            return names.get(node, node)
        return node

    def check(self, reader: Any, writer: Any, path: str) -> List[Incompatibility]:
        reader = self._resolve(reader, self.reader_names)
        writer = self._resolve(writer, self.writer_names)
        reader_type = _type_name(reader)
        writer_type = _type_name(writer)

        if writer_type == "union":
            violations: List[Incompatibility] = []
            for branch in writer:
                violations.extend(self.check(reader, branch, path))
            return violations

        if reader_type == "union":
            for branch in reader:
                seen = set(self._seen)
                if not self.check(branch, writer, path):
                    return []
                # a failed branch must not mark its records as already checked
                self._seen = seen
            return [
                Incompatibility(
                    kind=IncompatibilityKind.MISSING_UNION_BRANCH,
                    path=path,
                    message=f"Reader union has no branch for writer type '{_describe(writer)}'",
                )
            ]

        if reader_type == writer_type:
            if reader_type in PRIMITIVE_TYPES:
                return []
            if reader_type == "array":
                return self.check(reader["items"], writer["items"], f"{path}/items")
            if reader_type == "map":
                return self.check(reader["values"], writer["values"], f"{path}/values")
            if reader_type == "record":
                return self._check_record(reader, writer, path)
            if reader_type == "enum":
                return self._check_enum(reader, writer, path)
            if reader_type == "fixed":
                return self._check_fixed(reader, writer, path)

        if (writer_type, reader_type) in PROMOTIONS:
            return []

        return [
            Incompatibility(
                kind=IncompatibilityKind.TYPE_MISMATCH,
                path=path,
                message=f"Reader type '{_describe(reader)}' cannot read writer type '{_describe(writer)}'",
            )
        ]

    def _name_mismatch(self, reader: dict, writer: dict, path: str) -> List[Incompatibility]:
        reader_name = reader["name"]
        writer_name = writer["name"]
        aliases = reader.get("aliases", [])
        if (
            _unqualified(reader_name) == _unqualified(writer_name)
            or writer_name in aliases
            or _unqualified(writer_name) in {_unqualified(a) for a in aliases}
        ):
            return []
        return [
            Incompatibility(
                kind=IncompatibilityKind.NAME_MISMATCH,
                path=f"{path}/name",
                message=f"Expected name '{writer_name}', found '{reader_name}'",
            )
        ]

    def _check_record(self, reader: dict, writer: dict, path: str) -> List[Incompatibility]:
        violations = self._name_mismatch(reader, writer, path)
        if violations:
            return violations

        key = (reader["name"], writer["name"])
        if key in self._seen:
            return []
        self._seen.add(key)

        writer_fields = {f["name"]: f for f in writer["fields"]}
        matched: Set[str] = set()
        for reader_field in reader["fields"]:
            field_path = f"{path}/fields/{reader_field['name']}"
            writer_field = writer_fields.get(reader_field["name"])
            if writer_field is None:
                for alias in reader_field.get("aliases", []):
                    if alias in writer_fields:
                        writer_field = writer_fields[alias]
                        break

            if writer_field is not None:
                matched.add(writer_field["name"])
                violations.extend(
                    self.check(reader_field["type"], writer_field["type"], f"{field_path}/type")
                )
            elif "default" not in reader_field:
                violations.append(
                    Incompatibility(
                        kind=IncompatibilityKind.READER_FIELD_MISSING_DEFAULT_VALUE,
                        path=field_path,
                        message=(
                            f"Field '{reader_field['name']}' is missing from the writer "
                            "and has no default value"
                        ),
                    )
                )

        # Required writer fields may not be dropped by the reader
        for name, writer_field in writer_fields.items():
            if name not in matched and "default" not in writer_field:
                violations.append(
                    Incompatibility(
                        kind=IncompatibilityKind.WRITER_FIELD_REMOVED_WITHOUT_DEFAULT,
                        path=f"{path}/fields/{name}",
                        message=f"Required field '{name}' was removed",
                    )
                )
        return violations

    def _check_enum(self, reader: dict, writer: dict, path: str) -> List[Incompatibility]:
        violations = self._name_mismatch(reader, writer, path)
        if violations:
            return violations

        reader_symbols = set(reader["symbols"])
        missing = [s for s in writer["symbols"] if s not in reader_symbols]
        if missing and "default" not in reader:
            return [
                Incompatibility(
                    kind=IncompatibilityKind.MISSING_ENUM_SYMBOLS,
                    path=f"{path}/symbols",
                    message=f"Reader enum '{reader['name']}' is missing symbols {missing}",
                )
            ]
        return []

    def _check_fixed(self, reader: dict, writer: dict, path: str) -> List[Incompatibility]:
        violations = self._name_mismatch(reader, writer, path)
        if violations:
            return violations

        if reader["size"] != writer["size"]:
            return [
                Incompatibility(
                    kind=IncompatibilityKind.FIXED_SIZE_MISMATCH,
                    path=f"{path}/size",
                    message=f"Expected size {writer['size']}, found {reader['size']}",
                )
            ]
        return []
