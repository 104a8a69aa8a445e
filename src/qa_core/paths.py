"""
Dot-path resolution and typed coercion helpers shared by the config layer.

Paths look like ``"environments.test.baseUrl"``. Traversal only descends
through mapping nodes; a list or scalar in the middle of a path means the
path does not resolve.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Any, Dict, List, Mapping

from .exceptions import TypeCoercionError


class _Absent:
    """Marker for "no value at this path" (distinct from None and empty values)."""

    _instance: "_Absent | None" = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()

_TRUE_STRINGS = {"true", "yes", "on", "1"}
_FALSE_STRINGS = {"false", "no", "off", "0"}


def split_path(path: str) -> List[str]:
    """Split a dot-path into segments, rejecting empty segments."""
    if not isinstance(path, str) or not path:
        raise ValueError(f"Invalid configuration path: {path!r}")
    segments = path.split(".")
    if any(not segment for segment in segments):
        raise ValueError(f"Invalid configuration path: {path!r}")
    return segments


def resolve_path(tree: Mapping[str, Any], path: str) -> Any:
    """Return the node at ``path`` or ``ABSENT``."""
    node: Any = tree
    for segment in split_path(path):
        if not isinstance(node, Mapping) or segment not in node:
            return ABSENT
        node = node[segment]
    return node


# ---- read-only trees ---------------------------------------------------------

def freeze(node: Any) -> Any:
    """Recursively convert dicts to read-only mappings and lists to tuples."""
    if isinstance(node, Mapping):
        return MappingProxyType({str(key): freeze(value) for key, value in node.items()})
    if isinstance(node, (list, tuple)):
        return tuple(freeze(item) for item in node)
    return node


def thaw(node: Any) -> Any:
    """Inverse of freeze(): plain, mutable dicts and lists."""
    if isinstance(node, Mapping):
        return {key: thaw(value) for key, value in node.items()}
    if isinstance(node, (list, tuple)):
        return [thaw(item) for item in node]
    return node


# ---- coercion ----------------------------------------------------------------

def to_string(value: Any, path: str | None = None) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise TypeCoercionError(path, "string", value)


def to_int(value: Any, path: str | None = None) -> int:
    # bool is an int subclass; a YAML `true` is not a number
    if isinstance(value, bool):
        raise TypeCoercionError(path, "int", value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise TypeCoercionError(path, "int", value)


def to_bool(value: Any, path: str | None = None) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise TypeCoercionError(path, "bool", value)


def to_list(value: Any, path: str | None = None) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return thaw(value)
    raise TypeCoercionError(path, "list", value)


def to_map(value: Any, path: str | None = None) -> Dict[str, Any]:
    if isinstance(value, Mapping):
        return thaw(value)
    raise TypeCoercionError(path, "map", value)
