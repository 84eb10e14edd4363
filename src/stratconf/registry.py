"""
stratconf — published configuration registry.

File: src/stratconf/registry.py

Purpose
- Let independent components fetch the sub-configuration matching their own
  schema type without being handed the full configuration tree.

What should be included in this file
- ``ConfigRegistry`` with ``publish``/``lookup`` over an immutable snapshot
  that is swapped atomically on publish.
- One process-wide default registry and module-level helpers.

Functional requirements
- Lookups for unknown types, or before any publish, raise ``NotFoundError``.
- A published snapshot is never mutated; a new publish replaces it whole.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, TypeVar

from stratconf.errors import NotFoundError

T = TypeVar("T")


class ConfigRegistry:
    """Schema type -> resolved instance index for the last published config."""

    __slots__ = ("_lock", "_snapshot", "_root")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot: Mapping[type, Any] = MappingProxyType({})
        self._root: Any = None

    def publish(self, index: Mapping[type, tuple[str, ...]], instance: Any) -> None:
        """Replace the published state with ``instance`` and its indexed sub-schemas."""

        resolved: dict[type, Any] = {}
        for schema_type, path in index.items():
            resolved[schema_type] = _follow(instance, path)
        snapshot = MappingProxyType(resolved)
        with self._lock:
            self._snapshot = snapshot
            self._root = instance

    def lookup(self, schema_type: type[T]) -> T:
        """Return the published instance of ``schema_type``."""

        with self._lock:
            snapshot = self._snapshot
        try:
            return snapshot[schema_type]
        except KeyError:
            raise NotFoundError(schema_type) from None

    @property
    def published(self) -> bool:
        with self._lock:
            return self._root is not None

    def root(self) -> Any:
        with self._lock:
            root = self._root
        if root is None:
            raise NotFoundError("<root configuration>")
        return root

    def clear(self) -> None:
        with self._lock:
            self._snapshot = MappingProxyType({})
            self._root = None


def _follow(instance: Any, path: tuple[str, ...]) -> Any:
    cursor = instance
    for attribute in path:
        cursor = getattr(cursor, attribute)
    return cursor


_DEFAULT_REGISTRY = ConfigRegistry()


def default_registry() -> ConfigRegistry:
    return _DEFAULT_REGISTRY


def publish(index: Mapping[type, tuple[str, ...]], instance: Any) -> None:
    _DEFAULT_REGISTRY.publish(index, instance)


def get(schema_type: type[T]) -> T:
    """Return the published instance of ``schema_type`` from the process-wide registry."""

    return _DEFAULT_REGISTRY.lookup(schema_type)


__all__ = ["ConfigRegistry", "default_registry", "get", "publish"]
