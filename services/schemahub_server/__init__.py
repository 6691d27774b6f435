"""
SchemaHub Server - storage, versioning and compatibility core of a schema registry.

This package implements the in-process core of a schema registry:
- Avro schemas canonicalized and stored once, under a global id
- Subjects scoped by (name, key|value), each owning an ordered version history
- Compatibility modes (NONE, BACKWARD, FORWARD, FULL and transitive variants)
  enforced on registration
- Optional SQLite durability for the schema log, version log and config

Architecture:
    ┌─────────────┐     ┌──────────────────┐     ┌───────────────────┐
    │   Caller    │────▶│  SchemaRegistry  │────▶│ AvroCanonicalizer │
    │ (API / CLI) │     │     (facade)     │     └───────────────────┘
    └─────────────┘     └────────┬─────────┘
                                 │
          ┌──────────────────────┼───────────────────────┬───────────────┐
          ▼                      ▼                       ▼               ▼
    ┌────────────┐     ┌────────────────────┐     ┌─────────────┐  ┌──────────┐
    │SchemaStore │     │SubjectVersionIndex │     │ ConfigStore │  │  compat  │
    └─────┬──────┘     └─────────┬──────────┘     └──────┬──────┘  └──────────┘
          │                      │                       │
          └──────────────────────┼───────────────────────┘
                                 ▼
                        ┌─────────────────┐
                        │ SqliteStorage   │
                        │   (optional)    │
                        └─────────────────┘

Invariants:
    - Schema ids are global, monotonic and never reused
    - Identical canonical schemas share one id
    - Version numbers strictly increase per subject and are never reused
    - Failed validation, parsing or compatibility checks never mutate state

How to change safely:
    - Transport layers (HTTP, gRPC) wrap SchemaRegistry; they do not reach
      into the stores
    - Keep canonicalization stable: it defines schema identity

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
