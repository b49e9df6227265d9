"""Structural snapshots and JSON text for instance state.

serialize() copies the raw stored fields into plain containers: callables are
dropped, nested instances are serialized in place, and a container that
contains itself is cut with "<recursive>". Listener, observer, job and child
tables are never part of the result because they are not stored fields.
"""

from __future__ import annotations

from typing import Any

import pydantic_core
from pydantic import TypeAdapter, ValidationError

from propfx import _anchor
from propfx.errors import DecodeError

RECURSIVE = "<recursive>"

_state_adapter = TypeAdapter(dict[str, Any])


def _convert(value: Any, seen: set[int]) -> Any:
    if hasattr(value, "_fields") and hasattr(value, "__descriptor__"):
        if id(value) in seen:
            return RECURSIVE
        seen = seen | {id(value)}
        return {k: _convert(v, seen) for k, v in value._fields.items() if not callable(v)}
    if isinstance(value, (dict, list, tuple, set, frozenset)):
        if id(value) in seen:
            return RECURSIVE
        seen = seen | {id(value)}
        if isinstance(value, dict):
            return {k: _convert(v, seen) for k, v in value.items() if not callable(v)}
        items = [_convert(v, seen) for v in value if not callable(v)]
        if isinstance(value, list):
            return items
        if isinstance(value, tuple):
            return tuple(items)
        return frozenset(items) if isinstance(value, frozenset) else set(items)
    return value


def serialize(instance: Any) -> dict[str, Any]:
    return _convert(instance, set())


def deserialize(instance: Any, data: dict[str, Any]) -> None:
    """Raw-assign every non-callable value in data; no change notifications."""
    for key, value in data.items():
        if not callable(value):
            instance._fields[key] = value
    instance._updated_at = _anchor.now()


def to_text(instance: Any) -> str:
    return pydantic_core.to_json(serialize(instance), serialize_unknown=True).decode()


def from_text(text: str | bytes) -> dict[str, Any]:
    """Decode text produced by to_text() back to its structural form."""
    try:
        return _state_adapter.validate_json(text)
    except ValidationError as exc:
        raise DecodeError(f"Cannot decode instance state: {exc.errors()[0]['msg']}") from exc
