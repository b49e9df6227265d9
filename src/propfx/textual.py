"""Textual integration for propfx. Opt-in — requires textual.

TextualLoop runs scheduled jobs on a Textual app's message loop.
bind_widget() pushes property values into widgets safely: it skips while
the app is not running, holds updates during pause() and replays the latest
value afterwards, marshals background-thread triggers with call_from_thread,
and ignores NoMatches from widget queries.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable

from textual.css.query import NoMatches

logger = logging.getLogger("propfx.textual")

# Pause state lives here, keyed by id(app), never on the app object.
_pause_depth: dict[int, int] = {}
# id(app) -> refresh callbacks of bindings that skipped an update while paused
_missed: dict[int, dict[int, Callable[[], None]]] = {}


class _TimerHandle:
    __slots__ = ("_timer",)

    def __init__(self, timer):
        self._timer = timer

    def cancel(self):
        if self._timer is not None:
            self._timer.stop()
            self._timer = None


class _SoonHandle:
    """call_later() cannot be revoked; the Job's own cancel flag covers it."""

    __slots__ = ()

    def cancel(self):
        pass


class TextualLoop:
    """Task loop backed by App.call_later / App.set_timer."""

    def __init__(self, app):
        self.app = app

    def call_soon(self, callback):
        self.app.call_later(callback)
        return _SoonHandle()

    def call_later(self, delay, callback):
        return _TimerHandle(self.app.set_timer(delay, callback))


@contextmanager
def pause(app):
    """Hold widget bindings while the widget tree is rebuilt.

    Pauses nest. When the outermost one exits, every binding that skipped an
    update catches up with its property's current value.
    """
    key = id(app)
    _pause_depth[key] = _pause_depth.get(key, 0) + 1
    try:
        yield
    finally:
        depth = _pause_depth.pop(key) - 1
        if depth:
            _pause_depth[key] = depth
        else:
            _resume(app)


def _resume(app):
    missed = _missed.pop(id(app), {})
    if not app.is_running:
        return
    for refresh in list(missed.values()):
        refresh()


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _pause_depth


def bind_widget(app, instance, prop, effect, *, fire_immediately=True):
    """Run effect(value) whenever instance.prop changes, while the app is safe.

    Updates that arrive during pause(app) are collapsed into one call with the
    latest value when the pause ends. Returns an unbind function.
    """
    _main = threading.get_ident()

    def _safe(value):
        try:
            effect(value)
        except NoMatches:
            logger.debug("No widget for %s.%s yet", instance, prop)

    def _refresh():
        if not instance.is_destroyed():
            _guarded(getattr(instance, prop))

    def _guarded(value):
        if not is_safe(app):
            if app.is_running:
                _missed.setdefault(id(app), {})[id(_refresh)] = _refresh
            return
        if threading.get_ident() != _main:
            app.call_from_thread(_safe, value)
        else:
            _safe(value)

    unbind_observer = instance.bind_property(prop, lambda new, old: _guarded(new))

    def _unbind():
        unbind_observer()
        _missed.get(id(app), {}).pop(id(_refresh), None)

    if fire_immediately:
        _guarded(getattr(instance, prop))
    return _unbind
