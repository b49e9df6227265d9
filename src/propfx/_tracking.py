"""Propagation tracking and the callback isolation boundary.

Uses contextvars to remember which (object, property) pairs are currently
being written by a binding, so that a two-way link cannot echo a value back
into the property it came from. The same mechanism records how far up the
ancestor chain a super_call has climbed.

isolated() is the single place where user callbacks are allowed to fail:
listeners, observers, lifecycle hooks and scheduled jobs all run through it.
"""

from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from typing import Any, Callable

from propfx.settings import get_settings

# (id(target), property name) pairs with a binding write in progress.
_propagating: contextvars.ContextVar[frozenset[tuple[int, str]]] = contextvars.ContextVar(
    "propagating", default=frozenset()
)


def is_propagating(target: object, name: str) -> bool:
    return (id(target), name) in _propagating.get()


@contextmanager
def propagating(target: object, name: str):
    """Mark target.name as being written by a binding for the duration."""
    token = _propagating.set(_propagating.get() | {(id(target), name)})
    try:
        yield
    finally:
        _propagating.reset(token)


def isolated(
    logger: logging.Logger, what: str, fn: Callable[..., Any], *args: Any, **kwargs: Any
) -> bool:
    """Call fn(*args, **kwargs); log and swallow any exception.

    Returns True when the call completed normally.
    """
    try:
        fn(*args, **kwargs)
    except Exception:
        level = logging.getLevelName(get_settings().isolated_error_level)
        logger.log(level, "%s failed", what, exc_info=True)
        return False
    return True


# (id(instance), method name) -> index into the ancestor chain of the
# super_call currently executing, so nested super_calls keep climbing.
_super_positions: contextvars.ContextVar[dict[tuple[int, str], int]] = contextvars.ContextVar(
    "super_positions", default={}
)


def super_position(instance: object, method: str) -> int:
    return _super_positions.get().get((id(instance), method), -1)


@contextmanager
def climbing(instance: object, method: str, index: int):
    positions = dict(_super_positions.get())
    positions[(id(instance), method)] = index
    token = _super_positions.set(positions)
    try:
        yield
    finally:
        _super_positions.reset(token)
