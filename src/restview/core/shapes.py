"""Shape declarations: the ``@shape`` marker, field discovery and ShapeView.

A shape describes the output fields a view should contain. Two flavours:

* open shapes are ``typing.Protocol`` classes. They declare fields as
  annotations or as zero-argument ``get_*`` accessors and are materialized as
  :class:`ShapeView` objects.
* concrete shapes are instantiable classes (pydantic models, dataclasses or
  plain classes) that the projection engine constructs and populates.

Usage::

    @shape(default_for=Order, sources={"customer_name": "customer.name"})
    class OrderSummary(Protocol):
        id: int
        status: str
        customer_name: str
"""

import dataclasses
import inspect
import typing
from dataclasses import dataclass, field
from types import FunctionType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel

from restview.core.conversion import own_annotations

SHAPE_MARKER = "__restview_shape__"
ACCESSOR_PREFIX = "get"


@dataclass(frozen=True)
class ShapeMeta:
    name: str
    default_for: Tuple[type, ...] = ()
    sources: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ShapeField:
    """One output field of a shape."""

    name: str
    source: str  # attribute name or dotted path on the entity
    declared_type: Any = None
    accessor: Optional[str] = None  # getter name for open shapes


def shape(
    cls: Optional[type] = None,
    *,
    name: Optional[str] = None,
    default_for: Union[type, Iterable[type], None] = None,
    sources: Optional[Mapping[str, str]] = None,
) -> Union[type, Callable[[type], type]]:
    """
    Mark a class as a shape.

    Args:
        name: Logical name; defaults to the class name
        default_for: Entity type(s) this shape is the default view for
        sources: Target field -> source attribute or dotted path overrides
    """

    def decorate(target: type) -> type:
        if default_for is None:
            defaults: Tuple[type, ...] = ()
        elif inspect.isclass(default_for):
            defaults = (default_for,)
        else:
            defaults = tuple(default_for)
        meta = ShapeMeta(
            name=name or target.__name__,
            default_for=defaults,
            sources=dict(sources or {}),
        )
        setattr(target, SHAPE_MARKER, meta)
        return target

    if cls is not None:
        return decorate(cls)
    return decorate


def shape_meta(cls: Any) -> Optional[ShapeMeta]:
    """Shape metadata declared directly on ``cls`` (not inherited)."""
    if not inspect.isclass(cls):
        return None
    meta = vars(cls).get(SHAPE_MARKER)
    return meta if isinstance(meta, ShapeMeta) else None


def is_open_shape(cls: Any) -> bool:
    return inspect.isclass(cls) and bool(getattr(cls, "_is_protocol", False))


def is_shape_type(cls: Any) -> bool:
    """True for classes the engine can materialize as a shape."""
    if not inspect.isclass(cls):
        return False
    return (
        getattr(cls, SHAPE_MARKER, None) is not None
        or is_open_shape(cls)
        or issubclass(cls, BaseModel)
        or dataclasses.is_dataclass(cls)
    )


def derive_field_name(accessor_name: str) -> Optional[str]:
    """``get_full_name`` -> ``full_name``; ``getFullName`` -> ``fullName``."""
    if not accessor_name.startswith(ACCESSOR_PREFIX) or len(accessor_name) <= len(ACCESSOR_PREFIX):
        return None
    rest = accessor_name[len(ACCESSOR_PREFIX):]
    if rest.startswith("_"):
        rest = rest[1:]
    elif not rest[0].isupper():
        # e.g. "getaway" is not an accessor
        return None
    if not rest:
        return None
    return rest[0].lower() + rest[1:]


def _type_hints(obj: Any) -> Dict[str, Any]:
    try:
        return typing.get_type_hints(obj)
    except Exception:
        return own_annotations(obj) if inspect.isclass(obj) else dict(getattr(obj, "__annotations__", {}) or {})


def _is_public(name: str) -> bool:
    return not name.startswith("_")


def _is_class_var(declared: Any) -> bool:
    return declared is typing.ClassVar or typing.get_origin(declared) is typing.ClassVar


def _annotated_fields(cls: type) -> List[Tuple[str, Any]]:
    hints = _type_hints(cls)
    ordered: List[str] = []
    for klass in reversed(inspect.getmro(cls)):
        for name in own_annotations(klass):
            if name not in ordered:
                ordered.append(name)
    return [
        (name, hints.get(name))
        for name in ordered
        if _is_public(name) and not _is_class_var(hints.get(name))
    ]


def _accessor_fields(cls: type) -> List[Tuple[str, str, Any]]:
    found: List[Tuple[str, str, Any]] = []
    seen = set()
    for klass in inspect.getmro(cls):
        if klass is object or klass.__module__ == "typing":
            continue
        for attr, member in vars(klass).items():
            if attr in seen or not isinstance(member, FunctionType):
                continue
            derived = derive_field_name(attr)
            if derived is None:
                continue
            params = [
                p
                for p in inspect.signature(member).parameters.values()
                if p.default is inspect.Parameter.empty
            ]
            if len(params) != 1:
                continue
            seen.add(attr)
            found.append((derived, attr, _type_hints(member).get("return")))
    return found


def _setter_fields(cls: type) -> List[Tuple[str, Any]]:
    found: List[Tuple[str, Any]] = []
    for klass in reversed(inspect.getmro(cls)):
        if klass is object:
            continue
        for attr, member in vars(klass).items():
            if isinstance(member, property) and member.fset is not None and _is_public(attr):
                found.append((attr, _type_hints(member.fget).get("return") if member.fget else None))
            elif isinstance(member, FunctionType) and attr.startswith("set") and len(attr) > 3:
                if attr[3] == "_":
                    rest = attr[4:]
                elif attr[3].isupper():
                    rest = attr[3].lower() + attr[4:]
                else:
                    continue
                params = list(inspect.signature(member).parameters.values())
                if not rest or len(params) != 2:
                    continue
                found.append((rest, _type_hints(member).get(params[1].name)))
    return found


def constructor_parameters(cls: type) -> List[inspect.Parameter]:
    """Named constructor parameters; empty when the signature is unavailable."""
    try:
        signature = inspect.signature(cls)
    except (TypeError, ValueError):
        return []
    return [
        p
        for p in signature.parameters.values()
        if p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    ]


def discover_fields(cls: type) -> List[ShapeField]:
    """
    List the output fields of a shape class, in declaration order.

    Open shapes contribute annotations and ``get_*`` accessors. Concrete
    shapes contribute pydantic/dataclass fields, annotations, setters and
    constructor parameters.
    """
    meta = getattr(cls, SHAPE_MARKER, None)
    sources = dict(meta.sources) if isinstance(meta, ShapeMeta) else {}
    collected: Dict[str, ShapeField] = {}

    def add(name: str, declared: Any, accessor: Optional[str] = None) -> None:
        if name in collected or not _is_public(name):
            return
        collected[name] = ShapeField(
            name=name,
            source=sources.get(name, name),
            declared_type=declared,
            accessor=accessor,
        )

    if is_open_shape(cls):
        for name, declared in _annotated_fields(cls):
            add(name, declared)
        for name, accessor, declared in _accessor_fields(cls):
            add(name, declared, accessor)
        return list(collected.values())

    if issubclass(cls, BaseModel):
        for name, info in cls.model_fields.items():
            add(name, info.annotation)
    elif dataclasses.is_dataclass(cls):
        hints = _type_hints(cls)
        for f in dataclasses.fields(cls):
            add(f.name, hints.get(f.name, f.type))
    else:
        for name, declared in _annotated_fields(cls):
            add(name, declared)
        for name, declared in _setter_fields(cls):
            add(name, declared)
        for param in constructor_parameters(cls):
            annotation = None if param.annotation is inspect.Parameter.empty else param.annotation
            add(param.name, annotation)
    return list(collected.values())


class ShapeView:
    """
    Materialized value of an open shape.

    Exposes a fixed set of fields, each readable as an attribute (``view.name``)
    or through the declared accessor (``view.get_name()``). Values are
    computed before construction; the view is read-only.
    """

    __slots__ = ("_shape", "_values", "_accessors")

    def __init__(self, shape_type: type, values: Mapping[str, Any], accessors: Optional[Mapping[str, str]] = None):
        object.__setattr__(self, "_shape", shape_type)
        object.__setattr__(self, "_values", dict(values))
        object.__setattr__(self, "_accessors", dict(accessors or {}))

    @property
    def shape_type(self) -> type:
        return self._shape

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._values)

    def __getattr__(self, name: str) -> Any:
        values = object.__getattribute__(self, "_values")
        if name in values:
            return values[name]
        field_name = object.__getattribute__(self, "_accessors").get(name)
        if field_name is not None:
            value = values.get(field_name)
            return lambda: value
        raise AttributeError(f"{object.__getattribute__(self, '_shape').__name__} has no field {name!r}")

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{self._shape.__name__} view is read-only")

    def __dir__(self) -> List[str]:
        return sorted(set(self._values) | set(self._accessors))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ShapeView):
            return NotImplemented
        return self._shape is other._shape and self._values == other._values

    def __hash__(self) -> int:
        parts = []
        for name, value in self._values.items():
            if isinstance(value, (set, frozenset)):
                value = frozenset(value)
            try:
                parts.append((name, hash(value)))
            except TypeError:
                # unhashable values still take part in equality
                parts.append((name, None))
        return hash((self._shape, frozenset(parts)))

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v!r}" for k, v in self._values.items())
        return f"{self._shape.__name__}({body})"
