"""Cooperative scheduling — deferred calls, timers, intervals, rate limiters.

Jobs run on a host task loop: anything with call_soon(cb) and
call_later(delay, cb) returning a handle with cancel(). asyncio's loop has
exactly that shape; ManualLoop is a virtual-clock host for tick-driven
programs and tests.

Call set_task_loop() once to choose the host:
    propfx.set_task_loop(ManualLoop())

Without it, the kind named by settings.task_loop is created on first use.
Every Job checks its cancel flag right before it runs, so a cancelled timer
or interval never fires, even if the host already queued it.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from typing import Any, Callable, Protocol

from propfx._tracking import isolated
from propfx.errors import DestroyedError, UsageContextError
from propfx.settings import get_settings

logger = logging.getLogger("propfx.scheduler")


class Handle(Protocol):
    def cancel(self) -> None: ...


class TaskLoop(Protocol):
    def call_soon(self, callback: Callable[[], Any]) -> Handle: ...

    def call_later(self, delay: float, callback: Callable[[], Any]) -> Handle: ...


# ─── Host loops ──────────────────────────────────────────────────────────────


class AsyncioLoop:
    """Schedules onto the running asyncio event loop."""

    def _loop(self) -> asyncio.AbstractEventLoop:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            raise UsageContextError(
                "scheduling needs a running asyncio event loop; "
                "call propfx.set_task_loop() to use another host"
            ) from None

    def call_soon(self, callback: Callable[[], Any]) -> asyncio.Handle:
        return self._loop().call_soon(callback)

    def call_later(self, delay: float, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        return self._loop().call_later(max(0.0, delay), callback)

    def __repr__(self) -> str:
        return "AsyncioLoop()"


class _ManualHandle:
    __slots__ = ("when", "seq", "callback", "cancelled")

    def __init__(self, when: float, seq: int, callback: Callable[[], Any]) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __lt__(self, other: _ManualHandle) -> bool:
        return (self.when, self.seq) < (other.when, other.seq)


class ManualLoop:
    """Virtual-clock host: nothing runs until advance() or run_pending().

    Callbacks due at the same time run in scheduling order.
    """

    def __init__(self) -> None:
        self._now = 0.0
        self._queue: list[_ManualHandle] = []
        self._seq = itertools.count()

    def time(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        return sum(1 for h in self._queue if not h.cancelled)

    def call_soon(self, callback: Callable[[], Any]) -> _ManualHandle:
        return self.call_later(0.0, callback)

    def call_later(self, delay: float, callback: Callable[[], Any]) -> _ManualHandle:
        handle = _ManualHandle(self._now + max(0.0, delay), next(self._seq), callback)
        heapq.heappush(self._queue, handle)
        return handle

    def advance(self, seconds: float = 0.0) -> int:
        """Move the clock forward, running everything that falls due. Returns the count run."""
        if seconds < 0:
            raise ValueError("cannot move the clock backwards")
        target = self._now + seconds
        ran = 0
        while self._queue and self._queue[0].when <= target:
            handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = max(self._now, handle.when)
            handle.callback()
            ran += 1
        self._now = target
        return ran

    def run_pending(self) -> int:
        """Run everything already due without moving the clock."""
        return self.advance(0.0)

    def __repr__(self) -> str:
        return f"ManualLoop(time={self._now}, pending={self.pending})"


_task_loop: TaskLoop | None = None


def set_task_loop(loop: TaskLoop | None) -> None:
    """Set the process-wide host loop. None restores the settings default."""
    global _task_loop
    _task_loop = loop


def get_task_loop() -> TaskLoop:
    global _task_loop
    if _task_loop is None:
        _task_loop = ManualLoop() if get_settings().task_loop == "manual" else AsyncioLoop()
    return _task_loop


# ─── Jobs ────────────────────────────────────────────────────────────────────


class Job:
    """Cancellable unit of scheduled work."""

    __slots__ = ("kind", "_cancelled", "_handle", "_release")

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._cancelled = False
        self._handle: Handle | None = None
        # drops the job from its scheduler's registry
        self._release: Callable[[], None] | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop the job. Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._release is not None:
            release, self._release = self._release, None
            release()

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"Job({self.kind}, {state})"


class Scheduler:
    """Job registry and rate limiters for one owner instance."""

    __slots__ = ("_owner", "_jobs")

    def __init__(self, owner: Any) -> None:
        self._owner = owner
        self._jobs: list[Job] = []

    @property
    def jobs(self) -> tuple[Job, ...]:
        return tuple(self._jobs)

    def _check_alive(self) -> None:
        if self._owner._destroyed or self._owner._destroying:
            raise DestroyedError(f"Instance '{self._owner}' is destroyed")

    def _finish(self, job: Job) -> None:
        try:
            self._jobs.remove(job)
        except ValueError:
            pass  # already cleared by cancel_all

    def _run(self, job: Job, callback: Callable[[], Any]) -> None:
        isolated(logger, f"{job.kind} job of {self._owner}", callback)

    def defer(self, callback: Callable[[], Any]) -> Job:
        """Run callback on the next tick of the host loop."""
        return self.delay(0.0, callback, kind="defer")

    def delay(self, seconds: float, callback: Callable[[], Any], *, kind: str = "timer") -> Job:
        self._check_alive()
        job = Job(kind)

        def _fire() -> None:
            self._finish(job)
            if job.cancelled:
                return
            job._handle = None
            self._run(job, callback)

        loop = get_task_loop()
        job._handle = loop.call_soon(_fire) if kind == "defer" else loop.call_later(seconds, _fire)
        job._release = lambda: self._finish(job)
        self._jobs.append(job)
        return job

    def interval(self, seconds: float, callback: Callable[[], Any]) -> Job:
        """Call callback every `seconds` until the job is cancelled."""
        if seconds <= 0:
            raise ValueError("interval needs a positive period")
        self._check_alive()
        job = Job("interval")
        loop = get_task_loop()

        def _arm() -> None:
            if job.cancelled:
                self._finish(job)
                return
            job._handle = loop.call_later(seconds, _tick)

        def _tick() -> None:
            if job.cancelled:
                self._finish(job)
                return
            self._run(job, callback)
            _arm()

        job._release = lambda: self._finish(job)
        _arm()
        self._jobs.append(job)
        return job

    def debounce(self, fn: Callable[..., Any], seconds: float) -> Callable[..., None]:
        """Wrapper that runs fn once calls stop for `seconds`, with the last call's arguments."""
        pending: list[Job | None] = [None]
        owner = self._owner

        def _debounced(*args: Any, **kwargs: Any) -> None:
            if owner._destroyed:
                return
            if pending[0] is not None:
                pending[0].cancel()
            job = Job("debounce")

            def _fire() -> None:
                if job.cancelled or owner._destroyed:
                    return
                pending[0] = None
                isolated(logger, f"debounced {fn!r} of {owner}", fn, *args, **kwargs)

            job._handle = get_task_loop().call_later(seconds, _fire)
            pending[0] = job

        return _debounced

    def throttle(self, fn: Callable[..., Any], seconds: float) -> Callable[..., None]:
        """Wrapper that runs fn at most once per window.

        The first call of a window runs immediately; later calls in the same
        window replace one queued call, flushed when the window closes.
        """
        state: dict[str, Any] = {"open": True, "queued": None}
        owner = self._owner

        def _open_window() -> None:
            state["open"] = False
            get_task_loop().call_later(seconds, _close_window)

        def _close_window() -> None:
            queued = state["queued"]
            state["queued"] = None
            state["open"] = True
            if queued is None or owner._destroyed:
                return
            _open_window()
            args, kwargs = queued
            isolated(logger, f"throttled {fn!r} of {owner}", fn, *args, **kwargs)

        def _throttled(*args: Any, **kwargs: Any) -> None:
            if owner._destroyed:
                return
            if state["open"]:
                _open_window()
                fn(*args, **kwargs)
            else:
                state["queued"] = (args, kwargs)

        return _throttled

    def cancel_all(self) -> None:
        """Cancel every registered timer/interval/defer job.

        Debounce and throttle wrappers keep their own state; they go quiet
        once the owner is destroyed.
        """
        jobs, self._jobs = self._jobs, []
        for job in jobs:
            job.cancel()
        if jobs:
            logger.debug("Cancelled %d job(s) of %s", len(jobs), self._owner)
