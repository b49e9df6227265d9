"""Property resolution — the single read/write path for instance properties.

Reads and writes dispatch on the PropertyDescriptor kind of the instance's
class; names without a descriptor fall back to raw stored fields and class
statics. Every accepted write is handed to the change notifier.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from propfx import _anchor
from propfx._tracking import isolated
from propfx.classes import descriptor_of
from propfx.descriptors import MISSING, PropertyDescriptor, PropertyKind
from propfx.errors import ConstructionError, DestroyedError, ReadonlyPropertyError

logger = logging.getLogger("propfx.resolver")


def _ensure_readable(instance: Any) -> None:
    if instance._destroyed:
        raise DestroyedError(f"Instance '{instance}' is destroyed")


def _descriptor(instance: Any, name: str) -> PropertyDescriptor | None:
    return descriptor_of(type(instance)).properties.get(name)


def raw_get(instance: Any, name: str, default: Any = None) -> Any:
    return instance._fields.get(name, default)


def raw_set(instance: Any, name: str, value: Any) -> None:
    instance._fields[name] = value


def has_value(instance: Any, name: str) -> bool:
    return name in instance._fields


def read(instance: Any, name: str) -> Any:
    _ensure_readable(instance)
    desc = _descriptor(instance, name)
    fields = instance._fields
    if desc is not None:
        if desc.getter is not None:
            return desc.getter(instance)
        if desc.compute is not None:
            return desc.compute(instance)
        if name in fields:
            return fields[name]
        if desc.initializer is not None:
            value = desc.initializer(instance)
            fields[name] = value
            instance._notifier.notify(name, value, None)
            return value
        return None
    if name in fields:
        return fields[name]
    statics = descriptor_of(type(instance)).statics
    if name in statics:
        return statics[name]
    raise AttributeError(f"'{type(instance).__name__}' object has no attribute '{name}'")


def _current(instance: Any, name: str, desc: PropertyDescriptor | None) -> Any:
    """Value before a write, without triggering lazy initialisation."""
    if desc is not None and desc.getter is not None:
        return desc.getter(instance)
    return instance._fields.get(name)


def _computed_values(instance: Any, names: tuple[str, ...]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for computed_name in names:
        desc = _descriptor(instance, computed_name)

        def _evaluate(d=desc, key=computed_name):
            out[key] = d.compute(instance)

        isolated(logger, f"computed '{computed_name}' of {instance}", _evaluate)
    return out


def write(instance: Any, name: str, value: Any) -> None:
    if instance._destroyed:
        raise DestroyedError(f"Instance '{instance}' is destroyed")
    desc = _descriptor(instance, name)
    if desc is not None and desc.readonly:
        raise ReadonlyPropertyError(name, str(instance))

    dependents = descriptor_of(type(instance)).dependents.get(name, ())
    before = _computed_values(instance, dependents) if dependents else {}

    old = _current(instance, name, desc)
    if desc is not None and desc.setter is not None:
        desc.setter(instance, value)
        new = read(instance, name)
    else:
        instance._fields[name] = value
        new = value
    instance._updated_at = _anchor.now()
    instance._notifier.notify(name, new, old)

    if dependents:
        after = _computed_values(instance, dependents)
        for computed_name, new_computed in after.items():
            old_computed = before.get(computed_name, MISSING)
            if old_computed is MISSING or old_computed != new_computed:
                instance._notifier.notify(
                    computed_name, new_computed, None if old_computed is MISSING else old_computed
                )


def initialize(instance: Any, name: str, value: Any) -> None:
    """Construction-time assignment: no notification, readonly stored allowed."""
    desc = _descriptor(instance, name)
    if desc is not None:
        if desc.kind is PropertyKind.COMPUTED:
            raise ReadonlyPropertyError(name, str(instance))
        if desc.setter is not None:
            desc.setter(instance, value)
            return
    instance._fields[name] = value


def _produce_default(default: Any) -> Any:
    if callable(default):
        return default()
    return copy.deepcopy(default)


def apply_defaults(instance: Any) -> None:
    """Give every plain descriptor with a default its own per-instance value."""
    for name, desc in descriptor_of(type(instance)).properties.items():
        if not desc.has_default or desc.getter is not None or desc.compute is not None:
            continue
        if name in instance._fields:
            continue
        try:
            instance._fields[name] = _produce_default(desc.default)
        except Exception as exc:
            raise ConstructionError(f"Default for '{name}' failed: {exc}") from exc
