"""Undo/redo history — bounded stacks of full-state snapshots.

commit() records the current stored fields. undo()/redo() swap the current
state with the nearest snapshot on the other stack. A snapshot identical to
the current state is skipped when an older one exists, so an undo always
changes something if it can.
"""

from __future__ import annotations

import copy
import logging
from collections import deque
from typing import Any, NamedTuple

from propfx import _anchor
from propfx.classes import descriptor_of
from propfx.serialization import serialize
from propfx.settings import get_settings

logger = logging.getLogger("propfx.history")


class Change(NamedTuple):
    old: Any
    new: Any


class HistoryManager:
    """Past/future snapshot stacks for one instance."""

    __slots__ = ("_owner", "_past", "_future", "limit")

    def __init__(self, owner: Any, limit: int | None = None) -> None:
        self._owner = owner
        if limit is None:
            limit = descriptor_of(type(owner)).history_limit or get_settings().history_limit
        self.limit = limit
        self._past: deque[dict[str, Any]] = deque(maxlen=limit)
        self._future: deque[dict[str, Any]] = deque(maxlen=limit)

    @property
    def past(self) -> tuple[dict[str, Any], ...]:
        return tuple(self._past)

    @property
    def future(self) -> tuple[dict[str, Any], ...]:
        return tuple(self._future)

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(serialize(self._owner))

    def commit(self) -> None:
        # deque(maxlen) drops the oldest entry on overflow
        self._past.append(self.snapshot())
        self._future.clear()
        logger.debug("Committed %s (%d in history)", self._owner, len(self._past))

    def undo(self) -> bool:
        return self._step(self._past, self._future, "undo")

    def redo(self) -> bool:
        return self._step(self._future, self._past, "redo")

    def _step(self, source: deque, target: deque, what: str) -> bool:
        if not source:
            return False
        current = self.snapshot()
        snap = source.pop()
        while snap == current and source:
            snap = source.pop()
        target.append(current)
        self._apply(snap)
        logger.debug("%s of %s", what, self._owner)
        return True

    def _apply(self, snap: dict[str, Any]) -> None:
        # keys the snapshot lacks (callables, later fields) keep their value
        self._owner._fields.update(copy.deepcopy(snap))
        self._owner._updated_at = _anchor.now()
        self._owner._bus.dispatch("restored")

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()

    def diff(self, other: Any) -> dict[str, Change]:
        """Per-key differences between the owner's state and other (instance or mapping)."""
        mine = serialize(self._owner)
        if hasattr(other, "_fields") and hasattr(other, "__descriptor__"):
            theirs = serialize(other)
        else:
            theirs = dict(other or {})
        out: dict[str, Change] = {}
        for key in mine.keys() | theirs.keys():
            old = mine.get(key)
            new = theirs.get(key)
            if key not in mine or key not in theirs or old != new:
                out[key] = Change(old, new)
        return out
