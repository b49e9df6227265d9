"""Property descriptors — declarative metadata for reactive properties.

A PropertyDescriptor is a tagged variant (stored, accessor, lazy or
computed). It is also a Python data descriptor, but its __get__/__set__ do
nothing except hand over to the resolver, which dispatches on the kind.

Usage:
    class Unit(Instance):
        hp = prop(default=100)
        tags = prop(default=list)          # factory, called per instance
        name = prop(default="unit", readonly=True)

        @computed("hp")
        def is_alive(self):
            return self.hp > 0

        @lazy
        def inventory(self):
            return load_inventory(self.id)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from propfx.errors import ConstructionError


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


class PropertyKind(enum.Enum):
    STORED = "stored"
    ACCESSOR = "accessor"
    LAZY = "lazy"
    COMPUTED = "computed"


@dataclass(frozen=True, eq=False)
class PropertyDescriptor:
    kind: PropertyKind
    default: Any = MISSING
    getter: Callable[[Any], Any] | None = None
    setter: Callable[[Any, Any], None] | None = None
    initializer: Callable[[Any], Any] | None = None
    compute: Callable[[Any], Any] | None = None
    depends_on: tuple[str, ...] = ()
    readonly: bool = False
    name: str | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.setter is not None and (self.compute is not None or self.initializer is not None):
            raise ConstructionError("compute and lazy properties cannot have a setter")
        if self.compute is not None and self.initializer is not None:
            raise ConstructionError("a property cannot be both computed and lazy")
        if self.kind is PropertyKind.COMPUTED:
            if self.compute is None:
                raise ConstructionError("computed property needs a compute function")
            if not self.readonly:
                object.__setattr__(self, "readonly", True)
        if self.kind is PropertyKind.LAZY and self.initializer is None:
            raise ConstructionError("lazy property needs an initializer")
        if self.kind is PropertyKind.ACCESSOR and self.getter is None and self.setter is None:
            raise ConstructionError("accessor property needs a getter or a setter")

    def named(self, name: str) -> PropertyDescriptor:
        """Return a copy bound to name (descriptors may be shared between classes)."""
        return self if self.name == name else replace(self, name=name)

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING

    # --- Python descriptor protocol: delegate to the resolver ---

    def __set_name__(self, owner: type, name: str) -> None:
        if self.name is None:
            object.__setattr__(self, "name", name)

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        from propfx import resolver

        return resolver.read(instance, self.name)

    def __set__(self, instance: Any, value: Any) -> None:
        from propfx import resolver

        resolver.write(instance, self.name, value)

    def __repr__(self) -> str:
        flags = " readonly" if self.readonly else ""
        return f"PropertyDescriptor({self.name!r}, {self.kind.value}{flags})"


def prop(default: Any = MISSING, *, readonly: bool = False) -> PropertyDescriptor:
    """A plain stored property.

    A zero-argument callable default is a factory and runs once per instance;
    any other default is deep-copied per instance.
    """
    return PropertyDescriptor(PropertyKind.STORED, default=default, readonly=readonly)


def accessor(
    getter: Callable[[Any], Any] | None = None,
    setter: Callable[[Any, Any], None] | None = None,
    *,
    default: Any = MISSING,
    readonly: bool = False,
) -> PropertyDescriptor:
    """A getter/setter pair.

    The setter owns the storage: use instance.raw_set(name, value) inside it.
    Without a getter, reads return the raw stored value.
    """
    return PropertyDescriptor(
        PropertyKind.ACCESSOR, getter=getter, setter=setter, default=default, readonly=readonly
    )


def lazy(initializer: Callable[[Any], Any]) -> PropertyDescriptor:
    """Decorator/factory: value computed on first read, then stored."""
    return PropertyDescriptor(PropertyKind.LAZY, initializer=initializer)


def computed(*depends_on: str) -> Callable[[Callable[[Any], Any]], PropertyDescriptor]:
    """Decorator: readonly value recomputed on every read.

    depends_on names the properties the function reads; changes to them are
    reported as changes of the computed property too.
    """
    for dep in depends_on:
        if not isinstance(dep, str):
            raise ConstructionError(
                "computed() takes dependency names; use @computed() with no arguments for none"
            )

    def decorator(fn: Callable[[Any], Any]) -> PropertyDescriptor:
        return PropertyDescriptor(
            PropertyKind.COMPUTED, compute=fn, depends_on=tuple(depends_on), readonly=True
        )

    return decorator
