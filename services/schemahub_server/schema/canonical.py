"""
Schema canonicalization for the SchemaHub registry.

The canonicalizer is the only component that understands schema syntax.
It turns raw schema text into:
- a canonical structural form used for compatibility checks
- canonical JSON text (sorted keys, no whitespace) used for storage
- a fingerprint used for content-addressed deduplication

Invariants:
    - Semantically identical schemas produce identical canonical text
    - The fingerprint depends only on the canonical text
    - Invalid or degenerate schemas never leave this module (SchemaParseError)

How to change safely:
    - Any change to normalization changes fingerprints; existing stored
      schemas keep their recorded fingerprint, so only add normalization
      steps that cannot merge previously distinct schemas
    - Keep attributes that affect schema resolution (defaults, aliases,
      symbols, sizes); drop only documentation

Example:
    >>> canonicalizer = AvroCanonicalizer()
    >>> result = canonicalizer.canonicalize('{"type": "string"}')
    >>> result.canonical_text
    '"string"'
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Set, Union

import fastavro
from fastavro.schema import SchemaParseException, UnknownType

from ..errors import SchemaParseError

logger = logging.getLogger(__name__)

PRIMITIVE_TYPES = frozenset(
    {"null", "boolean", "int", "long", "float", "double", "bytes", "string"}
)
NAMED_TYPES = frozenset({"record", "error", "enum", "fixed"})

SchemaInput = Union[str, Mapping, List[Any]]


@dataclass(frozen=True)
class CanonicalSchema:
    """Result of canonicalizing one schema.

    Attributes:
        canonical: Normalized structural form (decoded JSON)
        canonical_text: Canonical JSON text
        fingerprint: 'sha256:<hex>' of canonical_text
        raw_body: The schema text as submitted
    """

    canonical: Any = field(compare=False, hash=False)
    canonical_text: str
    fingerprint: str
    raw_body: str


class SchemaCanonicalizer(Protocol):
    """Capability that parses schema text into canonical form."""

    schema_format: str

    def canonicalize(self, schema: SchemaInput) -> CanonicalSchema:
        """Parse and normalize a schema.

        Raises:
            SchemaParseError: If the schema is invalid
        """
        ...


def to_canonical_text(canonical: Any) -> str:
    """Serialize a canonical form deterministically."""
    return json.dumps(canonical, sort_keys=True, separators=(",", ":"))


def generate_fingerprint(canonical_text: str) -> str:
    """Generate the fingerprint of canonical schema text.

    Returns:
        Fingerprint string in format 'sha256:<hash>'
    """
    hash_bytes = hashlib.sha256(canonical_text.encode("utf-8")).hexdigest()
    return f"sha256:{hash_bytes}"


class AvroCanonicalizer:
    """Canonicalizer for Apache Avro schemas.

    Validation is delegated to fastavro; normalization is done here so the
    canonical form keeps the attributes that schema resolution depends on.

    Example:
        >>> c = AvroCanonicalizer()
        >>> a = c.canonicalize('{"type":"record","name":"A","fields":[{"name":"x","type":"int"}]}')
        >>> b = c.canonicalize({"name": "A", "type": "record", "doc": "x",
        ...                     "fields": [{"type": "int", "name": "x"}]})
        >>> a.fingerprint == b.fingerprint
        True
    """

    schema_format = "AVRO"

    def canonicalize(self, schema: SchemaInput) -> CanonicalSchema:
        raw_body, decoded = self._decode(schema)

        try:
            fastavro.parse_schema(copy.deepcopy(decoded))
        except (SchemaParseException, UnknownType) as e:
            raise SchemaParseError(str(e)) from e
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise SchemaParseError(f"Malformed Avro schema: {e!r}") from e

        canonical = _Normalizer().normalize(decoded, namespace="")
        canonical_text = to_canonical_text(canonical)
        fingerprint = generate_fingerprint(canonical_text)
        logger.debug(f"Canonicalized Avro schema to {fingerprint}")
        return CanonicalSchema(
            canonical=canonical,
            canonical_text=canonical_text,
            fingerprint=fingerprint,
            raw_body=raw_body,
        )

    @staticmethod
    def _decode(schema: SchemaInput) -> tuple[str, Any]:
        """Return (raw text, decoded JSON) for text or pre-decoded input."""
        if isinstance(schema, str):
            if not schema.strip():
                raise SchemaParseError("Schema text is empty")
            try:
                return schema, json.loads(schema)
            except json.JSONDecodeError as e:
                raise SchemaParseError(f"Schema is not valid JSON: {e}") from e
        if isinstance(schema, (Mapping, list)):
            if not schema:
                raise SchemaParseError("Schema is empty")
            try:
                return json.dumps(schema), json.loads(json.dumps(schema))
            except (TypeError, ValueError) as e:
                raise SchemaParseError(f"Schema is not JSON-serializable: {e}") from e
        raise SchemaParseError(
            f"Schema must be JSON text or a decoded JSON object, got {type(schema).__name__}"
        )


class _Normalizer:
    """Walks a decoded Avro schema producing its canonical form."""

    def __init__(self) -> None:
        self.defined: Dict[str, Any] = {}

    def normalize(self, node: Any, namespace: str) -> Any:
        if isinstance(node, str):
            return self._reference(node, namespace)
        if isinstance(node, list):
            if not node:
                raise SchemaParseError("Union has no branches")
            return [self.normalize(branch, namespace) for branch in node]
        if not isinstance(node, Mapping):
            raise SchemaParseError(f"Unexpected schema element {node!r}")

        type_name = node.get("type")
        if type_name is None:
            raise SchemaParseError(f"Schema object is missing 'type': {dict(node)!r}")

        if type_name in ("record", "error"):
            return self._record(node, namespace)
        if type_name == "enum":
            return self._enum(node, namespace)
        if type_name == "fixed":
            return self._fixed(node, namespace)
        if type_name == "array":
            return {"type": "array", "items": self.normalize(node["items"], namespace)}
        if type_name == "map":
            return {"type": "map", "values": self.normalize(node["values"], namespace)}
        if type_name in PRIMITIVE_TYPES:
            extra = {k: v for k, v in node.items() if k not in ("type", "doc")}
            if not extra:
                return type_name
            return {"type": type_name, **extra}

        # {"type": <nested schema or named reference>}
        return self.normalize(type_name, namespace)

    def _reference(self, name: str, namespace: str) -> str:
        if name in PRIMITIVE_TYPES:
            return name
        qualified = _full_name(name, namespace)
        if qualified in self.defined:
            return qualified
        if name in self.defined:
            return name
        raise SchemaParseError(f"Unknown type '{name}'")

    def _named(self, node: Mapping, namespace: str) -> tuple[str, str, Dict[str, Any]]:
        name = node.get("name")
        if not isinstance(name, str) or not name:
            raise SchemaParseError(f"Named type '{node.get('type')}' is missing a name")
        enclosing = node.get("namespace", namespace) or ""
        full = _full_name(name, enclosing)
        result: Dict[str, Any] = {"type": node["type"], "name": full}
        if node.get("aliases"):
            child_ns = full.rpartition(".")[0]
            result["aliases"] = sorted(_full_name(a, child_ns) for a in node["aliases"])
        self.defined[full] = result
        return full, full.rpartition(".")[0], result

    def _record(self, node: Mapping, namespace: str) -> Dict[str, Any]:
        full, child_ns, result = self._named(node, namespace)
        fields = node.get("fields") or []
        if not fields:
            raise SchemaParseError(f"Record '{full}' has no fields")

        normalized: List[Dict[str, Any]] = []
        seen: Set[str] = set()
        for f in fields:
            if f["name"] in seen:
                raise SchemaParseError(f"Record '{full}' has duplicate field '{f['name']}'")
            seen.add(f["name"])
            entry: Dict[str, Any] = {
                "name": f["name"],
                "type": self.normalize(f["type"], child_ns),
            }
            if "default" in f:
                entry["default"] = f["default"]
            if f.get("aliases"):
                entry["aliases"] = sorted(f["aliases"])
            if f.get("order", "ascending") != "ascending":
                entry["order"] = f["order"]
            normalized.append(entry)
        result["fields"] = normalized
        return result

    def _enum(self, node: Mapping, namespace: str) -> Dict[str, Any]:
        full, _, result = self._named(node, namespace)
        symbols = list(node["symbols"])
        if len(set(symbols)) != len(symbols):
            raise SchemaParseError(f"Enum '{full}' has duplicate symbols")
        result["symbols"] = symbols
        if "default" in node:
            result["default"] = node["default"]
        return result

    def _fixed(self, node: Mapping, namespace: str) -> Dict[str, Any]:
        _, _, result = self._named(node, namespace)
        result["size"] = node["size"]
        for key in ("logicalType", "precision", "scale"):
            if key in node:
                result[key] = node[key]
        return result


def _full_name(name: str, namespace: Optional[str]) -> str:
    if "." in name or not namespace:
        return name
    return f"{namespace}.{name}"
