"""Tests for propfx.textual — Textual integration layer."""

import threading

import pytest
from textual.css.query import NoMatches

import propfx.scheduler as _sched_mod
from propfx import Instance, prop, set_task_loop
from propfx import textual as ptx


class _MockTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.stopped = False

    def stop(self):
        self.stopped = True


class _MockApp:
    """Minimal mock matching the Textual App interface ptx needs."""

    def __init__(self, *, is_running=True):
        self.is_running = is_running
        self._call_from_thread_log = []
        self.soon = []
        self.timers = []

    def call_from_thread(self, fn, *args):
        self._call_from_thread_log.append((fn, args))
        fn(*args)

    def call_later(self, callback):
        self.soon.append(callback)

    def set_timer(self, delay, callback):
        timer = _MockTimer(delay, callback)
        self.timers.append(timer)
        return timer


class Status(Instance):
    text = prop(default="idle")


class TestBindWidget:
    def test_fires_immediately(self):
        app = _MockApp()
        s = Status()
        effects = []
        ptx.bind_widget(app, s, "text", effects.append)
        assert effects == ["idle"]

    def test_fires_when_safe(self):
        app = _MockApp()
        s = Status()
        effects = []
        ptx.bind_widget(app, s, "text", effects.append, fire_immediately=False)
        s.text = "busy"
        assert effects == ["busy"]

    def test_skips_when_not_running(self):
        app = _MockApp(is_running=False)
        s = Status()
        effects = []
        ptx.bind_widget(app, s, "text", effects.append)
        s.text = "busy"
        assert effects == []

    def test_skips_during_pause(self):
        app = _MockApp()
        s = Status()
        effects = []
        ptx.bind_widget(app, s, "text", effects.append, fire_immediately=False)
        with ptx.pause(app):
            s.text = "busy"
            assert effects == []

    def test_catches_nomatch(self):
        """NoMatches from widget queries are swallowed."""
        app = _MockApp()
        s = Status()

        def _raise_nomatch(v):
            raise NoMatches("StatusFooter")

        unbind = ptx.bind_widget(app, s, "text", _raise_nomatch)
        s.text = "busy"  # should not raise
        unbind()

    def test_unbind_stops_updates(self):
        app = _MockApp()
        s = Status()
        effects = []
        unbind = ptx.bind_widget(app, s, "text", effects.append, fire_immediately=False)
        s.text = "a"
        unbind()
        s.text = "b"
        assert effects == ["a"]

    def test_thread_marshal(self):
        """Writes from a background thread use call_from_thread."""
        app = _MockApp()
        s = Status()
        effects = []
        ptx.bind_widget(app, s, "text", effects.append, fire_immediately=False)

        def _bg():
            s.text = "from thread"

        t = threading.Thread(target=_bg)
        t.start()
        t.join()

        assert effects == ["from thread"]
        assert len(app._call_from_thread_log) == 1


class TestTextualLoop:
    @pytest.fixture
    def app(self):
        app = _MockApp()
        old = _sched_mod._task_loop
        set_task_loop(ptx.TextualLoop(app))
        try:
            yield app
        finally:
            set_task_loop(old)

    def test_defer_uses_call_later(self, app):
        s = Status()
        log = []
        s.defer(lambda: log.append("ran"))
        assert log == []
        app.soon.pop()()
        assert log == ["ran"]

    def test_delay_uses_timer(self, app):
        s = Status()
        log = []
        s.delay(2.0, lambda: log.append("ran"))
        timer = app.timers[-1]
        assert timer.delay == 2.0
        timer.callback()
        assert log == ["ran"]

    def test_cancel_stops_timer(self, app):
        s = Status()
        job = s.delay(2.0, lambda: None)
        job.cancel()
        assert app.timers[-1].stopped

    def test_cancelled_defer_does_not_run(self, app):
        s = Status()
        log = []
        job = s.defer(lambda: log.append("ran"))
        job.cancel()
        app.soon.pop()()
        assert log == []


class TestPause:
    def test_paused_updates_replay_latest_value(self):
        app = _MockApp()
        s = Status()
        effects = []
        ptx.bind_widget(app, s, "text", effects.append, fire_immediately=False)
        with ptx.pause(app):
            assert not ptx.is_safe(app)
            s.text = "loading"
            s.text = "ready"
            assert effects == []
        assert effects == ["ready"]

    def test_untouched_bindings_stay_quiet(self):
        app = _MockApp()
        s = Status()
        effects = []
        ptx.bind_widget(app, s, "text", effects.append, fire_immediately=False)
        with ptx.pause(app):
            pass
        assert effects == []

    def test_nested_pause_replays_once_at_outermost_exit(self):
        app = _MockApp()
        s = Status()
        effects = []
        ptx.bind_widget(app, s, "text", effects.append, fire_immediately=False)
        with ptx.pause(app):
            with ptx.pause(app):
                s.text = "inner"
            assert effects == []
            assert not ptx.is_safe(app)
        assert effects == ["inner"]
        assert ptx.is_safe(app)

    def test_replay_after_exception(self):
        app = _MockApp()
        s = Status()
        effects = []
        ptx.bind_widget(app, s, "text", effects.append, fire_immediately=False)
        with pytest.raises(RuntimeError):
            with ptx.pause(app):
                s.text = "half-built"
                raise RuntimeError("oops")
        assert ptx.is_safe(app)
        assert effects == ["half-built"]

    def test_unbound_during_pause_is_not_replayed(self):
        app = _MockApp()
        s = Status()
        effects = []
        unbind = ptx.bind_widget(app, s, "text", effects.append, fire_immediately=False)
        with ptx.pause(app):
            s.text = "gone"
            unbind()
        assert effects == []

    def test_destroyed_instance_is_not_replayed(self):
        app = _MockApp()
        s = Status()
        effects = []
        ptx.bind_widget(app, s, "text", effects.append, fire_immediately=False)
        with ptx.pause(app):
            s.text = "last words"
            s.destroy()
        assert effects == []

    def test_pause_on_one_app_leaves_another_live(self):
        app_a, app_b = _MockApp(), _MockApp()
        attrs_before = set(vars(app_a))
        s = Status()
        seen_a, seen_b = [], []
        ptx.bind_widget(app_a, s, "text", seen_a.append, fire_immediately=False)
        ptx.bind_widget(app_b, s, "text", seen_b.append, fire_immediately=False)
        with ptx.pause(app_a):
            s.text = "busy"
            assert seen_b == ["busy"]
            assert seen_a == []
        assert seen_a == ["busy"]
        assert set(vars(app_a)) == attrs_before
