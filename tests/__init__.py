"""
SchemaHub Test Suite.

This package contains:
- unit/: Unit tests (in-memory stores, CLI against a temp SQLite file)
- integration/: Integration tests (full registry facade, SQLite recovery)
"""
