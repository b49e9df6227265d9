"""Shared fixtures."""

import pytest

import propfx.scheduler as _sched_mod
from propfx import ManualLoop, set_task_loop
from propfx.settings import get_settings


@pytest.fixture
def manual_loop():
    """Install a ManualLoop as the task loop, restore the previous one afterwards."""
    old = _sched_mod._task_loop
    loop = ManualLoop()
    set_task_loop(loop)
    try:
        yield loop
    finally:
        set_task_loop(old)


@pytest.fixture
def asyncio_loop():
    """Schedule onto the running asyncio loop (the default host)."""
    old = _sched_mod._task_loop
    set_task_loop(_sched_mod.AsyncioLoop())
    try:
        yield
    finally:
        set_task_loop(old)


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
