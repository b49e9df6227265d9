"""Class descriptors — the per-class property table and ancestor chain.

InstanceMeta builds one frozen ClassDescriptor per class at class-creation
time and drives instance construction (constraint checks, identity,
defaults, lifecycle hooks). Nothing here is mutated after the class exists;
define_property() and friends swap in a rebuilt descriptor instead.
"""

from __future__ import annotations

import logging
from collections import ChainMap
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping

from propfx._tracking import climbing, isolated, super_position
from propfx.descriptors import PropertyDescriptor, PropertyKind, prop
from propfx.errors import ConstructionError, SuperMethodNotFoundError

logger = logging.getLogger("propfx.instance")

def _empty() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True, eq=False)
class ClassDescriptor:
    name: str
    owner: type
    properties: Mapping[str, PropertyDescriptor] = field(default_factory=_empty)
    ancestors: tuple[ClassDescriptor, ...] = ()
    own_statics: Mapping[str, Any] = field(default_factory=_empty)
    abstract: bool = False
    sealed: bool = False
    required: tuple[str, ...] = ()
    history_limit: int | None = None
    # dependency name -> computed properties that read it
    dependents: Mapping[str, tuple[str, ...]] = field(default_factory=_empty)

    @property
    def statics(self) -> ChainMap:
        """Static values, most-derived class first."""
        return ChainMap(dict(self.own_statics), *(dict(a.own_statics) for a in self.ancestors))

    def __repr__(self) -> str:
        return f"ClassDescriptor({self.name}, props={sorted(self.properties)})"


def descriptor_of(cls: type) -> ClassDescriptor:
    return cls.__dict__["__descriptor__"]


def _dependents(properties: Mapping[str, PropertyDescriptor]) -> Mapping[str, tuple[str, ...]]:
    out: dict[str, list[str]] = {}
    for name, desc in properties.items():
        if desc.kind is PropertyKind.COMPUTED:
            for dep in desc.depends_on:
                out.setdefault(dep, []).append(name)
    return MappingProxyType({k: tuple(v) for k, v in out.items()})


def _is_field_literal(name: str, value: Any) -> bool:
    """Plain public data attributes become stored properties; CONSTANTS stay static."""
    if name.startswith("_") or name.isupper():
        return False
    if callable(value) or isinstance(value, (classmethod, staticmethod, property)):
        return False
    return not hasattr(value, "__get__")


class InstanceMeta(type):
    """Metaclass for Instance: builds the ClassDescriptor and runs construction."""

    def __new__(
        mcls,
        name: str,
        bases: tuple[type, ...],
        namespace: dict[str, Any],
        *,
        abstract: bool = False,
        sealed: bool = False,
        required: tuple[str, ...] | list[str] = (),
        history_limit: int | None = None,
        **kwargs: Any,
    ):
        for base in bases:
            base_desc = base.__dict__.get("__descriptor__")
            if base_desc is not None and base_desc.sealed:
                raise ConstructionError(f"Class '{base_desc.name}' is sealed and cannot be extended")

        own: dict[str, PropertyDescriptor] = {}
        for attr, value in list(namespace.items()):
            if isinstance(value, PropertyDescriptor):
                own[attr] = value.named(attr)
                namespace[attr] = own[attr]
            elif _is_field_literal(attr, value):
                own[attr] = prop(default=value).named(attr)
                namespace[attr] = own[attr]

        cls = super().__new__(mcls, name, bases, namespace, **kwargs)

        ancestors = tuple(
            klass.__dict__["__descriptor__"]
            for klass in cls.__mro__[1:]
            if "__descriptor__" in klass.__dict__
        )
        properties: dict[str, PropertyDescriptor] = {}
        for ancestor in reversed(ancestors):
            properties.update(ancestor.properties)
        properties.update(own)

        inherited_required = tuple(r for a in ancestors for r in a.required)
        limit = history_limit
        if limit is None:
            limit = next((a.history_limit for a in ancestors if a.history_limit is not None), None)

        cls.__descriptor__ = ClassDescriptor(
            name=name,
            owner=cls,
            properties=MappingProxyType(properties),
            ancestors=ancestors,
            abstract=abstract,
            sealed=sealed,
            required=tuple(dict.fromkeys(inherited_required + tuple(required))),
            history_limit=limit,
            dependents=_dependents(properties),
        )
        return cls

    def __init__(cls, name, bases, namespace, **kwargs):
        for key in ("abstract", "sealed", "required", "history_limit"):
            kwargs.pop(key, None)
        super().__init__(name, bases, namespace, **kwargs)

    def __call__(cls, *args: Any, **kwargs: Any):
        desc = descriptor_of(cls)
        if desc.abstract:
            raise ConstructionError(f"Cannot instantiate abstract class '{desc.name}'")
        for method in desc.required:
            if not callable(getattr(cls, method, None)):
                raise ConstructionError(f"Class '{desc.name}' is missing required method '{method}'")

        instance = cls.__new__(cls)
        instance._setup()
        _run_hook(instance, "on_init")
        instance.__init__(*args, **kwargs)
        _run_hook(instance, "post_init")
        logger.debug("Constructed %s", instance)
        return instance

    # --- class-level definitions ---

    def define_property(cls, name: str, descriptor: PropertyDescriptor) -> None:
        """Add or replace a property on this class.

        Subclasses created before the call keep their own table.
        """
        named = descriptor.named(name)
        type.__setattr__(cls, name, named)
        desc = descriptor_of(cls)
        properties = dict(desc.properties)
        properties[name] = named
        _replace_descriptor(cls, properties=MappingProxyType(properties))

    def define_computed(cls, name: str, depends_on: tuple[str, ...] | list[str], compute) -> None:
        cls.define_property(
            name,
            PropertyDescriptor(PropertyKind.COMPUTED, compute=compute, depends_on=tuple(depends_on)),
        )

    def remove_property(cls, name: str) -> None:
        desc = descriptor_of(cls)
        if name not in desc.properties:
            return
        properties = dict(desc.properties)
        del properties[name]
        if isinstance(cls.__dict__.get(name), PropertyDescriptor):
            type.__delattr__(cls, name)
        _replace_descriptor(cls, properties=MappingProxyType(properties))

    def define_static(cls, name: str, value: Any) -> None:
        desc = descriptor_of(cls)
        statics = dict(desc.own_statics)
        statics[name] = value
        _replace_descriptor(cls, own_statics=MappingProxyType(statics))

    def get_static(cls, name: str, default: Any = None) -> Any:
        return descriptor_of(cls).statics.get(name, default)


def _replace_descriptor(cls: type, **changes: Any) -> None:
    desc = replace(descriptor_of(cls), **changes)
    if "properties" in changes:
        desc = replace(desc, dependents=_dependents(desc.properties))
    type.__setattr__(cls, "__descriptor__", desc)


def _run_hook(instance: Any, hook: str) -> None:
    fn = getattr(instance, hook, None)
    if callable(fn):
        isolated(logger, f"{hook} hook of {instance}", fn)


def _resolved(cls: type, name: str) -> Any:
    for klass in cls.__mro__:
        if name in vars(klass):
            return vars(klass)[name]
    return None


def super_call(instance: Any, method: str, *args: Any, **kwargs: Any) -> Any:
    """Call the next ancestor implementation of method on instance.

    Nested super_calls made from inside that implementation keep climbing
    the ancestor chain instead of re-entering it.
    """
    cls = type(instance)
    desc = descriptor_of(cls)
    start = super_position(instance, method)
    running = _resolved(cls, method) if start < 0 else None
    for index in range(start + 1, len(desc.ancestors)):
        fn = vars(desc.ancestors[index].owner).get(method)
        if fn is None or fn is running:
            continue
        if hasattr(fn, "__get__"):
            fn = fn.__get__(instance, cls)
        with climbing(instance, method, index):
            return fn(*args, **kwargs)
    raise SuperMethodNotFoundError(method, desc.name)
