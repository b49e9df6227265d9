"""Instance — the reactive object that owns properties, events, jobs and history.

Usage:
    class Unit(Instance):
        hp = prop(default=100)

        @computed("hp")
        def is_alive(self):
            return self.hp > 0

    unit = Unit()
    unit.on("changed:hp", lambda new, old: print(old, "->", new))
    unit.hp = 0
    unit.is_alive  # False

Private attributes (leading underscore) are ordinary Python attributes.
Every other attribute assignment goes through the property resolver and
is observable.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Iterable

from propfx import _anchor, bindings, resolver, serialization
from propfx.classes import InstanceMeta, _run_hook, descriptor_of, super_call
from propfx.errors import DestroyedError
from propfx.events import LIFECYCLE_EVENTS, Connection, EventBus
from propfx.history import Change, HistoryManager
from propfx.notify import ChangeNotifier
from propfx.scheduler import Job, Scheduler

logger = logging.getLogger("propfx.instance")


def _defined_on_class(cls: type, name: str) -> bool:
    return any(name in vars(klass) for klass in cls.__mro__)


class Instance(metaclass=InstanceMeta):
    """Base class for reactive objects.

    Lifecycle hooks, all optional: on_init (before __init__), post_init
    (after __init__), pre_destroy and on_destroy. Hook failures are logged;
    a failing __init__ propagates to the caller.
    """

    def _setup(self) -> None:
        object.__setattr__(self, "_fields", {})
        self._id = _anchor.new_id()
        self._created_at = _anchor.now()
        self._updated_at = self._created_at
        self._destroyed = False
        self._destroying = False
        self._bus = EventBus(self)
        self._notifier = ChangeNotifier(self)
        self._scheduler = Scheduler(self)
        self._history = HistoryManager(self)
        self._children: list[Instance] = []
        self._parent: Instance | None = None
        self._tags: set[str] = set()
        resolver.apply_defaults(self)

    def __init__(self, **values: Any) -> None:
        for name, value in values.items():
            resolver.initialize(self, name, value)

    # --- attribute routing ---

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup fails: dynamic fields and statics.
        if name.startswith("_"):
            raise AttributeError(name)
        if name in descriptor_of(type(self)).properties:
            # the descriptor already ran and its function raised AttributeError
            raise AttributeError(
                f"property '{name}' of '{type(self).__name__}' raised AttributeError"
            )
        return resolver.read(self, name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_") or _defined_on_class(type(self), name):
            object.__setattr__(self, name, value)
        else:
            resolver.write(self, name, value)

    def raw_get(self, name: str, default: Any = None) -> Any:
        """Stored value without resolution; for use inside accessors."""
        return resolver.raw_get(self, name, default)

    def raw_set(self, name: str, value: Any) -> None:
        """Store value without notification; for use inside setters."""
        resolver.raw_set(self, name, value)

    def has_value(self, name: str) -> bool:
        return resolver.has_value(self, name)

    # --- identity ---

    @property
    def id(self) -> int:
        return self._id

    @property
    def created_at(self) -> float:
        return self._created_at

    @property
    def updated_at(self) -> float:
        return self._updated_at

    @property
    def class_name(self) -> str:
        return descriptor_of(type(self)).name

    def is_a(self, cls: type) -> bool:
        return isinstance(self, cls)

    def __str__(self) -> str:
        return f"{type(self).__name__} #{self._id}"

    def __repr__(self) -> str:
        state = " destroyed" if self._destroyed else ""
        return f"<{self}{state}>"

    def _ensure_alive(self) -> None:
        if self._destroyed or self._destroying:
            raise DestroyedError(f"Instance '{self}' is destroyed")

    def ensure_not_destroyed(self) -> None:
        if self._destroyed:
            raise DestroyedError(f"Instance '{self}' is destroyed")

    def is_destroyed(self) -> bool:
        return self._destroyed

    def super_call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        self.ensure_not_destroyed()
        return super_call(self, method, *args, **kwargs)

    # --- events ---

    def on(self, event: str, callback: Callable[..., Any], priority: int = 0) -> Connection:
        self._ensure_alive()
        return self._bus.on(event, callback, priority)

    def once(self, event: str, callback: Callable[..., Any], priority: int = 0) -> Connection:
        self._ensure_alive()
        return self._bus.once(event, callback, priority)

    def off(self, event: str, callback: Callable[..., Any]) -> None:
        self._bus.off(event, callback)

    def off_all(self, event: str | None = None) -> None:
        self._bus.off_all(event)

    def emit(self, event: str, *args: Any) -> None:
        """Deliver event to its listeners now. A destroyed instance has none."""
        if self._destroyed:
            logger.debug("Dropped %r emitted on destroyed %s", event, self)
            return
        self._bus.dispatch(event, *args)

    def emit_async(self, event: str, *args: Any) -> Job:
        self._ensure_alive()
        return self._bus.emit_async(event, *args)

    def once_with_timeout(
        self, event: str, timeout: float, callback: Callable[..., Any]
    ) -> Connection:
        self._ensure_alive()
        return self._bus.once_with_timeout(event, timeout, callback)

    def wait_for(self, event: str):
        """Awaitable resolving to the args tuple of the next event emit."""
        self._ensure_alive()
        return self._bus.wait_for(event)

    def wait_for_with_timeout(self, event: str, timeout: float):
        """Awaitable resolving to (True, args) or (False, ()) after timeout seconds."""
        self._ensure_alive()
        return self._bus.wait_for_with_timeout(event, timeout)

    def wait_for_any(self, events: Iterable[str]):
        """Awaitable resolving to (event, args) for the first of events to fire."""
        self._ensure_alive()
        return self._bus.wait_for_any(events)

    def listener_count(self, event: str | None = None) -> int:
        return self._bus.listener_count(event)

    # --- observers and bindings ---

    def bind_property(self, name: str, callback: Callable[[Any, Any], None]) -> Callable[[], None]:
        self._ensure_alive()
        return self._notifier.bind_property(name, callback)

    def unbind_property(self, name: str, callback: Callable[[Any, Any], None]) -> None:
        self._notifier.unbind_property(name, callback)

    def watch(self, props: Iterable[str], callback: Callable[[str, Any, Any], None]):
        self._ensure_alive()
        return bindings.watch(self, props, callback)

    def watch_all(self, predicate, callback: Callable[[str, Any, Any], None]):
        self._ensure_alive()
        return bindings.watch_all(self, predicate, callback)

    def bind_to(self, target: Any, target_prop: str, source_prop: str | None = None):
        self._ensure_alive()
        return bindings.bind_to(self, target, target_prop, source_prop)

    def link_two_way(self, other: Any, prop_a: str, prop_b: str):
        self._ensure_alive()
        return bindings.link_two_way(self, other, prop_a, prop_b)

    # --- scheduling ---

    def defer(self, callback: Callable[[], Any]) -> Job:
        return self._scheduler.defer(callback)

    def delay(self, seconds: float, callback: Callable[[], Any]) -> Job:
        return self._scheduler.delay(seconds, callback)

    def interval(self, seconds: float, callback: Callable[[], Any]) -> Job:
        return self._scheduler.interval(seconds, callback)

    def debounce(self, fn: Callable[..., Any], seconds: float) -> Callable[..., None]:
        self._ensure_alive()
        return self._scheduler.debounce(fn, seconds)

    def throttle(self, fn: Callable[..., Any], seconds: float) -> Callable[..., None]:
        self._ensure_alive()
        return self._scheduler.throttle(fn, seconds)

    def cancel_all_jobs(self) -> None:
        self._scheduler.cancel_all()

    @property
    def jobs(self) -> tuple[Job, ...]:
        return self._scheduler.jobs

    # --- children ---

    @property
    def parent(self) -> Instance | None:
        return self._parent

    @property
    def children(self) -> tuple[Instance, ...]:
        return tuple(self._children)

    def add_child(self, child: Instance) -> None:
        self._ensure_alive()
        child.ensure_not_destroyed()
        if child._parent is self:
            return
        if child._parent is not None:
            child._parent.remove_child(child)
        self._children.append(child)
        child._parent = self
        self.emit("childAdded", child)

    def remove_child(self, child: Instance) -> None:
        for i, item in enumerate(self._children):
            if item is child:
                del self._children[i]
                child._parent = None
                self.emit("childRemoved", child)
                return

    def destroy_children(self) -> None:
        for child in reversed(self._children):
            child._parent = None
            child.destroy()
        self._children.clear()

    # --- tags ---

    def add_tag(self, tag: str) -> None:
        self.ensure_not_destroyed()
        self._tags.add(tag)

    def has_tag(self, tag: str) -> bool:
        return tag in self._tags

    def remove_tag(self, tag: str) -> None:
        self._tags.discard(tag)

    @property
    def tags(self) -> frozenset[str]:
        return frozenset(self._tags)

    # --- state ---

    def serialize(self) -> dict[str, Any]:
        self.ensure_not_destroyed()
        return serialization.serialize(self)

    def deserialize(self, data: dict[str, Any]) -> None:
        self.ensure_not_destroyed()
        serialization.deserialize(self, data)

    def to_text(self) -> str:
        self.ensure_not_destroyed()
        return serialization.to_text(self)

    def from_text(self, text: str | bytes) -> None:
        self.ensure_not_destroyed()
        serialization.deserialize(self, serialization.from_text(text))

    def snapshot(self) -> dict[str, Any]:
        self.ensure_not_destroyed()
        return self._history.snapshot()

    def diff(self, other: Any) -> dict[str, Change]:
        self.ensure_not_destroyed()
        return self._history.diff(other)

    def commit(self) -> None:
        self._ensure_alive()
        self._history.commit()

    def undo(self) -> bool:
        self._ensure_alive()
        return self._history.undo()

    def redo(self) -> bool:
        self._ensure_alive()
        return self._history.redo()

    def clear_history(self) -> None:
        self._history.clear()

    @property
    def history(self) -> HistoryManager:
        return self._history

    def clone(self, deep: bool = False) -> Instance:
        """New instance of the same class with copied fields and a fresh identity.

        Listeners, observers, jobs, children and history are not copied, and
        neither __init__ nor the init hooks run.
        """
        self.ensure_not_destroyed()
        cls = type(self)
        twin = cls.__new__(cls)
        twin._setup()
        twin._fields.clear()
        twin._fields.update(copy.deepcopy(self._fields) if deep else dict(self._fields))
        twin._tags = set(self._tags)
        return twin

    # --- teardown ---

    def destroy(self) -> None:
        """Tear the instance down. Safe to call more than once."""
        if self._destroyed or self._destroying:
            return
        self._destroying = True
        _run_hook(self, "pre_destroy")
        self.destroy_children()
        self._scheduler.cancel_all()
        self._bus.fail_waiters(f"Instance '{self}' was destroyed while awaited")
        self._bus.disconnect_all(keep=LIFECYCLE_EVENTS)
        self._bus.dispatch("destroying")
        _run_hook(self, "on_destroy")
        self._bus.dispatch("destroyed")
        self._bus.clear()
        self._notifier.clear()
        parent = self._parent
        if parent is not None and not (parent._destroyed or parent._destroying):
            parent.remove_child(self)
        self._parent = None
        self._destroyed = True
        self._destroying = False
        logger.debug("Destroyed %s", self)
