"""Change notification — fans a property mutation out to observers and the bus.

Two channels:
- per-property observers registered with bind_property(), cheap for bindings;
- "changed" (key, new, old) and "changed:<key>" (new, old) events on the
  owner's EventBus, for generic tooling.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from propfx._tracking import isolated

logger = logging.getLogger("propfx.notify")

Observer = Callable[[Any, Any], None]
Disposer = Callable[[], None]


class ChangeNotifier:
    """Observer table for one instance."""

    __slots__ = ("_owner", "_observers")

    def __init__(self, owner: Any) -> None:
        self._owner = owner
        self._observers: dict[str, list[Observer]] = {}

    def bind_property(self, name: str, callback: Observer) -> Disposer:
        """Register callback(new, old) for writes to name. Returns an unbind function."""
        self._observers.setdefault(name, []).append(callback)

        def _unbind() -> None:
            self.unbind_property(name, callback)

        return _unbind

    def unbind_property(self, name: str, callback: Observer) -> None:
        observers = self._observers.get(name)
        if not observers:
            return
        for i, cb in enumerate(observers):
            if cb is callback or cb == callback:
                del observers[i]
                break
        if not observers:
            del self._observers[name]

    def observer_count(self, name: str | None = None) -> int:
        if name is None:
            return sum(len(v) for v in self._observers.values())
        return len(self._observers.get(name, ()))

    def notify(self, key: str, new_value: Any, old_value: Any) -> None:
        for callback in list(self._observers.get(key, ())):
            isolated(logger, f"observer of '{key}' on {self._owner}", callback, new_value, old_value)
        bus = self._owner._bus
        bus.dispatch("changed", key, new_value, old_value)
        bus.dispatch(f"changed:{key}", new_value, old_value)

    def clear(self) -> None:
        self._observers.clear()
