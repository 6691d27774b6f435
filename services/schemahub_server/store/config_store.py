"""
Compatibility configuration store for SchemaHub.

Holds the global default compatibility mode and per-scope overrides.

Invariants:
    - The global default always has a value
    - A scope without an override inherits the global default at lookup time
      (changing the default changes every non-overridden scope)
    - Only recognized CompatibilityMode values are ever stored
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

from ..errors import InvalidModeError
from ..schema.types import CompatibilityMode, ScopeKey
from .sqlite import GLOBAL_CONFIG_KEY, SqliteStorage

logger = logging.getLogger(__name__)


def parse_mode(value: Any) -> CompatibilityMode:
    """Parse a mode from a CompatibilityMode or its name.

    Raises:
        InvalidModeError: If value is not a recognized mode
    """
    try:
        return CompatibilityMode.from_str(value)
    except ValueError as e:
        raise InvalidModeError(value) from e


class ConfigStore:
    """Global default plus per-scope compatibility overrides.

    Example:
        >>> config = ConfigStore(CompatibilityMode.BACKWARD)
        >>> config.set_override(scope, "full")
        <CompatibilityMode.FULL: 'FULL'>
        >>> config.get_effective_mode(scope)
        <CompatibilityMode.FULL: 'FULL'>
    """

    def __init__(
        self,
        default_mode: Any = CompatibilityMode.BACKWARD,
        storage: Optional[SqliteStorage] = None,
    ) -> None:
        """Initialize the store.

        Args:
            default_mode: Global default used unless storage holds one
            storage: Optional SQLite storage for durability

        Raises:
            InvalidModeError: If default_mode is not a recognized mode
        """
        self._global = parse_mode(default_mode)
        self._overrides: Dict[ScopeKey, CompatibilityMode] = {}
        self._lock = threading.Lock()
        self._storage = storage

        if storage is not None:
            self._recover(storage)

    def _recover(self, storage: SqliteStorage) -> None:
        storage.initialize()
        for key, value in storage.load_config().items():
            mode = parse_mode(value)
            if key == GLOBAL_CONFIG_KEY:
                self._global = mode
            else:
                self._overrides[ScopeKey.parse(key)] = mode
        logger.info(
            f"Recovered compatibility config: global={self._global.value}, "
            f"{len(self._overrides)} override(s)"
        )

    def get_global_default(self) -> CompatibilityMode:
        return self._global

    def set_global_default(self, mode: Any) -> CompatibilityMode:
        """Set the global default mode.

        Raises:
            InvalidModeError: If mode is not recognized
        """
        parsed = parse_mode(mode)
        with self._lock:
            if self._storage is not None:
                self._storage.upsert_config(GLOBAL_CONFIG_KEY, parsed.value)
            self._global = parsed
        logger.info(f"Global compatibility set to {parsed.value}")
        return parsed

    def get_override(self, scope: ScopeKey) -> Optional[CompatibilityMode]:
        """The scope's explicit override, or None when it inherits the default."""
        return self._overrides.get(scope)

    def set_override(self, scope: ScopeKey, mode: Any) -> CompatibilityMode:
        """Set a per-scope override.

        Raises:
            InvalidModeError: If mode is not recognized
        """
        parsed = parse_mode(mode)
        with self._lock:
            if self._storage is not None:
                self._storage.upsert_config(scope.render(), parsed.value)
            self._overrides[scope] = parsed
        logger.info(f"Compatibility for '{scope}' set to {parsed.value}")
        return parsed

    def clear_override(self, scope: ScopeKey) -> None:
        """Remove a per-scope override (no-op if none is set)."""
        with self._lock:
            if scope not in self._overrides:
                return
            if self._storage is not None:
                self._storage.delete_config(scope.render())
            del self._overrides[scope]
        logger.info(f"Compatibility override for '{scope}' cleared")

    def get_effective_mode(self, scope: ScopeKey) -> CompatibilityMode:
        """Override if set, else the global default."""
        return self._overrides.get(scope, self._global)
