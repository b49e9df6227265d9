"""Bindings — one-way and two-way property links, watch helpers.

Built entirely on ChangeNotifier observers and the "changed" event. A binding
write goes back through the normal property path on the target, so the
target notifies its own observers in turn. Two guards stop cycles:
- a value equal to the target's current value is not written;
- a target property already being written by a binding in this context is
  not written again.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable

from propfx._tracking import is_propagating, propagating
from propfx.descriptors import MISSING

Disposer = Callable[[], None]


def _current(target: Any, name: str) -> Any:
    try:
        return getattr(target, name)
    except AttributeError:
        return MISSING


def _same(a: Any, b: Any) -> bool:
    if a is b:
        return True
    try:
        return bool(a == b)
    except Exception:
        return False


def push(target: Any, name: str, value: Any) -> bool:
    """Write value into target.name unless it is already there. Returns True if written."""
    if is_propagating(target, name):
        return False
    current = _current(target, name)
    if current is not MISSING and _same(current, value):
        return False
    with propagating(target, name):
        setattr(target, name, value)
    return True


def bind_to(source: Any, target: Any, target_prop: str, source_prop: str | None = None) -> Disposer:
    """Mirror source.source_prop into target.target_prop. Returns an unbind function."""
    source_prop = source_prop or target_prop

    def _on_change(new_value: Any, old_value: Any) -> None:
        push(target, target_prop, new_value)

    unbind = source.bind_property(source_prop, _on_change)
    if _holds_value(source, source_prop):
        push(target, target_prop, getattr(source, source_prop))
    return unbind


def _holds_value(source: Any, name: str) -> bool:
    """True when reading source.name yields a real value, without forcing lazy init."""
    descriptor = getattr(type(source), "__descriptor__", None)
    if descriptor is None:
        return _current(source, name) is not MISSING
    desc = descriptor.properties.get(name)
    if desc is not None and (desc.getter is not None or desc.compute is not None):
        return True
    return source.has_value(name)


def link_two_way(a: Any, b: Any, prop_a: str, prop_b: str) -> Disposer:
    """Keep a.prop_a and b.prop_b in sync in both directions. a wins the initial sync."""
    unbind_ab = bind_to(a, b, prop_b, prop_a)
    if hasattr(b, "bind_property"):
        unbind_ba = bind_to(b, a, prop_a, prop_b)
    else:
        unbind_ba = lambda: None  # noqa: E731 (plain objects cannot notify)

    def _unlink() -> None:
        unbind_ab()
        unbind_ba()

    return _unlink


def watch(
    instance: Any, props: Iterable[str], callback: Callable[[str, Any, Any], None]
) -> Disposer:
    """callback(prop, new, old) for each listed property. Returns one unsubscribe."""
    unbinders = []
    for name in props:

        def _on_change(new_value: Any, old_value: Any, _name: str = name) -> None:
            callback(_name, new_value, old_value)

        unbinders.append(instance.bind_property(name, _on_change))

    def _unwatch() -> None:
        for unbind in unbinders:
            unbind()
        unbinders.clear()

    return _unwatch


def watch_all(
    instance: Any,
    predicate: Callable[[str, Any, Any], bool] | None,
    callback: Callable[[str, Any, Any], None],
) -> Disposer:
    """callback(prop, new, old) for every change that passes predicate (None = all)."""

    def _on_changed(prop: str, new_value: Any, old_value: Any) -> None:
        if predicate is None or predicate(prop, new_value, old_value):
            callback(prop, new_value, old_value)

    conn = instance.on("changed", _on_changed)
    return conn.disconnect
