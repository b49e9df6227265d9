"""propfx: per-object reactive state — properties, events, bindings, jobs and undo."""

from importlib.metadata import version as _version

__version__ = _version("propfx")

from propfx.descriptors import MISSING, PropertyDescriptor, PropertyKind, accessor, computed, lazy, prop
from propfx.classes import ClassDescriptor, descriptor_of
from propfx.errors import (
    ConstructionError,
    DecodeError,
    DestroyedError,
    PropfxError,
    ReadonlyPropertyError,
    SuperMethodNotFoundError,
    UsageContextError,
)
from propfx.events import Connection
from propfx.scheduler import AsyncioLoop, Job, ManualLoop, get_task_loop, set_task_loop
from propfx.history import Change
from propfx.instance import Instance
from propfx.settings import Settings, get_settings
# textual NOT auto-imported — opt-in only

__all__ = [
    "Instance",
    "prop",
    "accessor",
    "lazy",
    "computed",
    "MISSING",
    "PropertyDescriptor",
    "PropertyKind",
    "ClassDescriptor",
    "descriptor_of",
    "Connection",
    "Job",
    "AsyncioLoop",
    "ManualLoop",
    "set_task_loop",
    "get_task_loop",
    "Change",
    "Settings",
    "get_settings",
    "PropfxError",
    "ConstructionError",
    "ReadonlyPropertyError",
    "DestroyedError",
    "SuperMethodNotFoundError",
    "UsageContextError",
    "DecodeError",
]
