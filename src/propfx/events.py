"""Event bus — priority-ordered listeners with disconnectable handles.

Each instance owns one EventBus. Listeners for an event are kept sorted by
descending priority; equal priorities keep registration order. emit() runs
against a snapshot of that list, so listeners added or removed while an
emit is in flight do not change who receives it. The one exception is
once-listeners: they are consumed before they run, and a consumed listener
never runs again, not even from an outer in-flight snapshot.

Suspension is modelled with asyncio futures: wait_for() and friends return a
single-shot future that the bus resolves from a dispatch or a timer.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from typing import Any, Callable, Iterable

from propfx._tracking import isolated
from propfx.errors import DestroyedError, UsageContextError

logger = logging.getLogger("propfx.events")

Callback = Callable[..., Any]

LIFECYCLE_EVENTS = ("destroying", "destroyed")


class Listener:
    __slots__ = ("event", "callback", "priority", "once", "active")

    def __init__(self, event: str, callback: Callback, priority: int = 0, once: bool = False) -> None:
        self.event = event
        self.callback = callback
        self.priority = priority
        self.once = once
        self.active = True

    def __repr__(self) -> str:
        kind = "once" if self.once else "on"
        state = "active" if self.active else "inactive"
        return f"Listener({self.event!r}, {kind}, priority={self.priority}, {state})"


class Connection:
    """Handle for one subscription. Holding it does not keep the owner alive."""

    __slots__ = ("_bus_ref", "_listener", "__weakref__")

    def __init__(self, bus: EventBus, listener: Listener) -> None:
        self._bus_ref = weakref.ref(bus)
        self._listener = listener

    @property
    def connected(self) -> bool:
        return self._listener.active

    @property
    def event(self) -> str:
        return self._listener.event

    def disconnect(self) -> None:
        """Remove the listener. Idempotent; a no-op once the owner is gone."""
        if not self._listener.active:
            return
        bus = self._bus_ref()
        if bus is None:
            self._listener.active = False
            return
        bus._detach(self._listener)

    def __repr__(self) -> str:
        state = "connected" if self.connected else "disconnected"
        return f"Connection({self._listener.event!r}, {state})"


def _running_loop(what: str) -> asyncio.AbstractEventLoop:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        raise UsageContextError(f"{what} must be called from a running asyncio event loop") from None


class EventBus:
    """Listener registry for one owner instance."""

    __slots__ = ("_owner_ref", "_events", "_connections", "_waiters", "__weakref__")

    def __init__(self, owner: Any) -> None:
        self._owner_ref = weakref.ref(owner)
        self._events: dict[str, list[Listener]] = {}
        self._connections: dict[Listener, Connection] = {}
        # pending wait_for* futures
        self._waiters: set[asyncio.Future] = set()

    @property
    def _owner(self) -> Any:
        return self._owner_ref()

    # --- registration ---

    def on(self, event: str, callback: Callback, priority: int = 0) -> Connection:
        return self._register(event, callback, priority, once=False)

    def once(self, event: str, callback: Callback, priority: int = 0) -> Connection:
        return self._register(event, callback, priority, once=True)

    def _register(self, event: str, callback: Callback, priority: int, once: bool) -> Connection:
        if not callable(callback):
            raise TypeError(f"Listener for {event!r} must be callable, got {callback!r}")
        listeners = self._events.setdefault(event, [])
        listener = Listener(event, callback, int(priority), once)
        listeners.append(listener)
        # list.sort is stable: equal priorities keep registration order
        listeners.sort(key=lambda item: -item.priority)
        conn = Connection(self, listener)
        self._connections[listener] = conn
        return conn

    def _detach(self, listener: Listener) -> None:
        listener.active = False
        self._connections.pop(listener, None)
        listeners = self._events.get(listener.event)
        if listeners is None:
            return
        for i, item in enumerate(listeners):
            if item is listener:
                del listeners[i]
                break

    def off(self, event: str, callback: Callback) -> None:
        """Remove every listener for event whose callback matches."""
        for listener in list(self._events.get(event, ())):
            if listener.callback is callback or listener.callback == callback:
                self._detach(listener)

    def off_all(self, event: str | None = None) -> None:
        events = [event] if event is not None else list(self._events)
        for name in events:
            for listener in self._events.get(name, ()):
                listener.active = False
                self._connections.pop(listener, None)
            self._events[name] = []

    def listener_count(self, event: str | None = None) -> int:
        if event is None:
            return sum(len(v) for v in self._events.values())
        return len(self._events.get(event, ()))

    def has_listeners(self, event: str) -> bool:
        return bool(self._events.get(event))

    # --- dispatch ---

    def dispatch(self, event: str, *args: Any) -> None:
        """Synchronous delivery; each listener is isolated from the others."""
        listeners = self._events.get(event)
        if not listeners:
            return
        for listener in list(listeners):
            if listener.once:
                if not listener.active:
                    continue
                self._detach(listener)
            isolated(
                logger, f"listener for {event!r} on {self._owner}", listener.callback, *args
            )

    def emit_async(self, event: str, *args: Any):
        """Dispatch on the next tick with the arguments captured now."""
        captured = tuple(args)
        return self._owner._scheduler.defer(lambda: self._owner.emit(event, *captured))

    def once_with_timeout(
        self, event: str, timeout: float, callback: Callable[..., Any]
    ) -> Connection:
        """Race a once-listener against a timer; callback(timed_out, *args) runs once."""
        settled = False
        job = None

        def _fired(*args: Any) -> None:
            nonlocal settled
            if settled:
                return
            settled = True
            if job is not None:
                job.cancel()
            callback(False, *args)

        def _expired() -> None:
            nonlocal settled
            if settled:
                return
            settled = True
            conn.disconnect()
            callback(True)

        conn = self.once(event, _fired)
        job = self._owner._scheduler.delay(timeout, _expired)
        return conn

    # --- suspension ---

    def _track(self, future: asyncio.Future) -> asyncio.Future:
        self._waiters.add(future)
        future.add_done_callback(self._waiters.discard)
        return future

    def wait_for(self, event: str) -> asyncio.Future:
        """Future resolved with the args tuple of the next matching emit."""
        future = _running_loop("wait_for").create_future()
        conn = None

        def _resolve(*args: Any) -> None:
            conn.disconnect()
            if not future.done():
                future.set_result(args)

        conn = self.on(event, _resolve)
        future.add_done_callback(lambda _: conn.disconnect())
        return self._track(future)

    def wait_for_with_timeout(self, event: str, timeout: float) -> asyncio.Future:
        """Future resolved with (True, args) on the event or (False, ()) on timeout."""
        future = _running_loop("wait_for_with_timeout").create_future()
        conn = None
        job = None

        def _resolve(*args: Any) -> None:
            conn.disconnect()
            if job is not None:
                job.cancel()
            if not future.done():
                future.set_result((True, args))

        def _expire() -> None:
            conn.disconnect()
            if not future.done():
                future.set_result((False, ()))

        conn = self.on(event, _resolve)
        job = self._owner._scheduler.delay(timeout, _expire)

        def _cleanup(_: asyncio.Future) -> None:
            conn.disconnect()
            job.cancel()

        future.add_done_callback(_cleanup)
        return self._track(future)

    def wait_for_any(self, events: Iterable[str]) -> asyncio.Future:
        """Future resolved with (event, args) for whichever event fires first."""
        names = list(events)
        if not names:
            raise ValueError("wait_for_any needs at least one event name")
        future = _running_loop("wait_for_any").create_future()
        conns: list[Connection] = []

        def _disconnect_all() -> None:
            for c in conns:
                c.disconnect()

        def _make(name: str) -> Callback:
            def _resolve(*args: Any) -> None:
                _disconnect_all()
                if not future.done():
                    future.set_result((name, args))

            return _resolve

        for name in dict.fromkeys(names):
            conns.append(self.on(name, _make(name)))
        future.add_done_callback(lambda _: _disconnect_all())
        return self._track(future)

    # --- teardown ---

    def disconnect_all(self, keep: tuple[str, ...] = ()) -> None:
        """Disconnect every connection except listeners of the events in keep."""
        for conn in list(self._connections.values()):
            if conn.event not in keep:
                conn.disconnect()

    def fail_waiters(self, reason: str) -> None:
        """Settle every pending wait_for* future with DestroyedError(reason)."""
        waiters, self._waiters = self._waiters, set()
        for future in waiters:
            if future.done() or future.get_loop().is_closed():
                continue
            future.set_exception(DestroyedError(reason))
        if waiters:
            logger.debug("Failed %d pending wait(s) on %s", len(waiters), self._owner)

    def clear(self) -> None:
        self.disconnect_all()
        self.off_all()
        self._events.clear()
