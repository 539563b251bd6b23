"""Lazy-loading stand-ins for related entities."""

import inspect
from typing import Any, Callable, Optional


class LazyReference:
    """
    Placeholder for a related entity that has not been loaded yet.

    Carries the declared entity type and identity so callers can reason about
    the reference without triggering a load. Attribute access loads the
    target through ``loader`` once and delegates to it.
    """

    __slots__ = ("_entity_type", "_identity", "_loader", "_target", "_loaded")

    def __init__(self, entity_type: type, identity: Any, loader: Callable[[Any], Optional[Any]]):
        object.__setattr__(self, "_entity_type", entity_type)
        object.__setattr__(self, "_identity", identity)
        object.__setattr__(self, "_loader", loader)
        object.__setattr__(self, "_target", None)
        object.__setattr__(self, "_loaded", False)

    @property
    def entity_type(self) -> type:
        return self._entity_type

    @property
    def identity(self) -> Any:
        return self._identity

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def resolve(self) -> Optional[Any]:
        if not self._loaded:
            object.__setattr__(self, "_target", self._loader(self._identity))
            object.__setattr__(self, "_loaded", True)
        return self._target

    def __getattr__(self, name: str) -> Any:
        target = self.resolve()
        if target is None:
            raise AttributeError(
                f"{self._entity_type.__name__} {self._identity!r} could not be loaded"
            )
        return getattr(target, name)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("LazyReference is read-only")

    def __repr__(self) -> str:
        state = "loaded" if self._loaded else "unloaded"
        return f"<LazyReference {self._entity_type.__name__}#{self._identity!r} ({state})>"


def unwrap(value: Any) -> Any:
    """Return the real object behind a lazy stand-in (loading it if needed)."""
    seen = 0
    while seen < 16:
        if isinstance(value, LazyReference):
            value = value.resolve()
        elif _has_wrapped(value):
            value = value.__wrapped__
        else:
            return value
        seen += 1
    return value


def true_type(value: Any) -> type:
    """Declared type of ``value``, without loading lazy references."""
    if isinstance(value, LazyReference):
        return value.entity_type
    return type(unwrap(value))


def _has_wrapped(value: Any) -> bool:
    if value is None or inspect.isclass(value) or inspect.isroutine(value):
        return False
    try:
        return "__wrapped__" in vars(value)
    except TypeError:
        return False
