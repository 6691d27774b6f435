"""
Schema module for SchemaHub.

This module provides the schema-level building blocks of the registry:
- Value types (ScopeKey, SchemaType, CompatibilityMode, Schema, Version)
- Canonicalization of Avro schema text into a fingerprinted canonical form
- Compatibility checking between a candidate and existing versions

Invariants:
    - Schema ids and version numbers are never reused
    - Identical canonical forms share one fingerprint
    - Compatibility checks only ever see canonical schemas

How to change safely:
    - Changing canonicalization changes fingerprints; see canonical.py
    - Add compatibility rules together with tests
"""

from .canonical import (
    AvroCanonicalizer,
    CanonicalSchema,
    SchemaCanonicalizer,
    generate_fingerprint,
)
from .compat import (
    Incompatibility,
    IncompatibilityKind,
    check_compatibility,
    check_reader_writer,
    is_compatible,
    validate_compatibility,
)
from .types import (
    LATEST,
    CompatibilityMode,
    Schema,
    SchemaInfo,
    SchemaType,
    ScopeKey,
    Version,
)

__all__ = [
    # Types
    "LATEST",
    "CompatibilityMode",
    "Schema",
    "SchemaInfo",
    "SchemaType",
    "ScopeKey",
    "Version",
    # Canonicalization
    "AvroCanonicalizer",
    "CanonicalSchema",
    "SchemaCanonicalizer",
    "generate_fingerprint",
    # Compatibility
    "Incompatibility",
    "IncompatibilityKind",
    "check_compatibility",
    "check_reader_writer",
    "is_compatible",
    "validate_compatibility",
]
