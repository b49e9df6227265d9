"""Error taxonomy.

Callback failures (listeners, observers, hooks, jobs) never surface here:
they are caught at the dispatch boundary and logged. The exceptions below are
raised synchronously to whoever called the failing operation.
"""

from __future__ import annotations


class PropfxError(Exception):
    """Root of every error raised by propfx."""


class ConstructionError(PropfxError, TypeError):
    """Class or instance construction violated a declared constraint.

    Raised for abstract-class instantiation, a missing required method,
    extending a sealed class, or an invalid property descriptor.
    """


class ReadonlyPropertyError(PropfxError, AttributeError):
    """Write to a readonly or computed property."""

    def __init__(self, name: str, owner: str | None = None) -> None:
        where = f" on {owner}" if owner else ""
        # AttributeError.__init__ resets .name, so pass it through
        super().__init__(f"Property '{name}' is readonly{where}", name=name)
        self.owner = owner


class DestroyedError(PropfxError, RuntimeError):
    """Operation attempted on a destroyed instance."""


class SuperMethodNotFoundError(PropfxError, AttributeError):
    """super_call() walked the ancestor chain without finding the method."""

    def __init__(self, method: str, owner: str) -> None:
        self.method = method
        super().__init__(f"Method '{method}' not found in superclass chain of {owner}")


class UsageContextError(PropfxError, RuntimeError):
    """A suspending or scheduling call was made outside a context that supports it."""


class DecodeError(PropfxError, ValueError):
    """Serialized input could not be decoded into instance state."""
