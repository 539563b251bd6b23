"""Type/field resolution: find named attributes and accessors on entity types.

Lookups walk the type's MRO and are memoized per (type, name). Type metadata
is static for the life of the process, so the memo never expires. Entries are
written with ``dict.setdefault``; concurrent callers may compute the same
answer twice, and any of the equivalent results may win.
"""

import inspect
import typing
from collections.abc import Mapping
from dataclasses import dataclass
from types import FunctionType
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import ColumnProperty, RelationshipProperty
from sqlalchemy.orm.attributes import QueryableAttribute

from restview.core.conversion import own_annotations, unwrap_optional
from restview.core.lazy import LazyReference, true_type, unwrap

COLUMN = "column"
RELATIONSHIP = "relationship"
ATTRIBUTE = "attribute"

_MISS = object()


@dataclass(frozen=True)
class AttributeInfo:
    """What the resolver knows about one named attribute of a type."""

    name: str
    owner: type
    kind: str  # column | relationship | attribute
    python_type: Optional[Any] = None
    enum_class: Optional[type] = None
    is_collection: bool = False
    target: Optional[type] = None  # related entity type for relationships

    @property
    def is_column(self) -> bool:
        return self.kind == COLUMN

    @property
    def is_relationship(self) -> bool:
        return self.kind == RELATIONSHIP


def _hierarchy(cls: type) -> List[type]:
    return [klass for klass in inspect.getmro(cls) if klass is not object]


def _column_python_type(column_type: Any) -> Optional[type]:
    enum_class = getattr(column_type, "enum_class", None)
    if enum_class is not None:
        return enum_class
    try:
        return column_type.python_type
    except NotImplementedError:
        return None


def _class_annotations(klass: type) -> Dict[str, Any]:
    raw = own_annotations(klass)
    if not raw:
        return {}
    try:
        hints = typing.get_type_hints(klass)
    except Exception:
        hints = {}
    return {name: hints.get(name, annotation) for name, annotation in raw.items()}


def _is_descriptor(raw: Any) -> bool:
    return (
        isinstance(raw, (QueryableAttribute, property, classmethod, staticmethod))
        or inspect.isroutine(raw)
    )


def _positional_arity(fn: Callable) -> Optional[int]:
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return None
    return sum(
        1
        for p in params
        if p.default is inspect.Parameter.empty
        and p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    )


class TypeFieldResolver:
    """Memoized attribute and accessor lookup over a type's ancestor chain."""

    def __init__(self):
        self._attributes: Dict[Tuple[type, str], Any] = {}
        self._accessors: Dict[Tuple[type, str, str], Any] = {}
        self._identities: Dict[type, Any] = {}
        self._columns: Dict[type, List[AttributeInfo]] = {}
        self._relationships: Dict[type, List[AttributeInfo]] = {}

    # -- attributes -------------------------------------------------------

    def resolve_attribute(self, cls: type, name: str) -> Optional[AttributeInfo]:
        """
        Find the data attribute ``name`` on ``cls`` or one of its ancestors.

        Returns:
            AttributeInfo, or None when no ancestor declares the name
        """
        key = (cls, name)
        cached = self._attributes.get(key, _MISS)
        if cached is not _MISS:
            return cached
        return self._attributes.setdefault(key, self._find_attribute(cls, name))

    def _find_attribute(self, cls: type, name: str) -> Optional[AttributeInfo]:
        if not name or name.startswith("_"):
            return None
        for klass in _hierarchy(cls):
            namespace = vars(klass)
            annotations = _class_annotations(klass)
            if name in namespace and (name not in annotations or _is_descriptor(namespace[name])):
                return self._describe(klass, name, namespace[name])
            if name in annotations:
                declared = unwrap_optional(annotations[name])
                return AttributeInfo(
                    name=name,
                    owner=klass,
                    kind=ATTRIBUTE,
                    python_type=declared if inspect.isclass(declared) else None,
                )
        return None

    def _describe(self, klass: type, name: str, raw: Any) -> Optional[AttributeInfo]:
        if isinstance(raw, QueryableAttribute):
            prop = raw.property
            if isinstance(prop, RelationshipProperty):
                target = prop.mapper.class_
                return AttributeInfo(
                    name=name,
                    owner=klass,
                    kind=RELATIONSHIP,
                    python_type=(prop.collection_class or list) if prop.uselist else target,
                    is_collection=bool(prop.uselist),
                    target=target,
                )
            if isinstance(prop, ColumnProperty):
                column_type = prop.columns[0].type
                return AttributeInfo(
                    name=name,
                    owner=klass,
                    kind=COLUMN,
                    python_type=_column_python_type(column_type),
                    enum_class=getattr(column_type, "enum_class", None),
                )
            return AttributeInfo(name=name, owner=klass, kind=ATTRIBUTE)
        if _is_descriptor(raw):
            # accessors and methods are not data attributes
            return None
        return AttributeInfo(
            name=name,
            owner=klass,
            kind=ATTRIBUTE,
            python_type=type(raw) if raw is not None else None,
        )

    # -- accessors --------------------------------------------------------

    def resolve_accessor(self, cls: type, name: str, mode: str = "get") -> Optional[Callable]:
        """
        Find a getter (``mode="get"``) or setter (``mode="set"``) for ``name``.

        Looks for ``get_name``/``getName`` style methods first, then a
        property named ``name``. Returned callables are unbound: call
        ``getter(obj)`` or ``setter(obj, value)``.
        """
        key = (cls, name, mode)
        cached = self._accessors.get(key, _MISS)
        if cached is not _MISS:
            return cached
        return self._accessors.setdefault(key, self._find_accessor(cls, name, mode))

    def _find_accessor(self, cls: type, name: str, mode: str) -> Optional[Callable]:
        if not name or name.startswith("_") or "." in name:
            return None
        arity = 1 if mode == "get" else 2
        candidates = (f"{mode}_{name}", f"{mode}{name[:1].upper()}{name[1:]}")
        for klass in _hierarchy(cls):
            namespace = vars(klass)
            for candidate in candidates:
                fn = namespace.get(candidate)
                if isinstance(fn, FunctionType) and _positional_arity(fn) == arity:
                    return fn
            prop = namespace.get(name)
            if isinstance(prop, property):
                return prop.fget if mode == "get" else prop.fset
        return None

    # -- identity ---------------------------------------------------------

    def identity_attribute(self, cls: type) -> Optional[str]:
        """Name of the identity attribute: the mapped primary key, else ``id``."""
        cached = self._identities.get(cls, _MISS)
        if cached is not _MISS:
            return cached
        return self._identities.setdefault(cls, self._find_identity(cls))

    def _find_identity(self, cls: type) -> Optional[str]:
        mapper = sa_inspect(cls, raiseerr=False)
        primary_key = getattr(mapper, "primary_key", None)
        if primary_key:
            return mapper.get_property_by_column(primary_key[0]).key
        if self.resolve_attribute(cls, "id") is not None or self.resolve_accessor(cls, "id") is not None:
            return "id"
        return None

    def identity_of(self, entity: Any) -> Any:
        if entity is None:
            return None
        if isinstance(entity, LazyReference):
            return entity.identity
        entity = unwrap(entity)
        attr = self.identity_attribute(type(entity))
        if attr is None:
            return None
        getter = self.resolve_accessor(type(entity), attr)
        if getter is not None:
            return getter(entity)
        return getattr(entity, attr, None)

    def true_type(self, entity: Any) -> type:
        return true_type(entity)

    # -- attribute listings -----------------------------------------------

    def column_attributes(self, cls: type) -> List[AttributeInfo]:
        cached = self._columns.get(cls)
        if cached is not None:
            return cached
        mapper = sa_inspect(cls, raiseerr=False)
        if mapper is not None and hasattr(mapper, "column_attrs"):
            names = [prop.key for prop in mapper.column_attrs]
        else:
            names = []
            for klass in reversed(_hierarchy(cls)):
                names.extend(n for n in _class_annotations(klass) if n not in names)
        infos = [info for info in (self.resolve_attribute(cls, n) for n in names) if info is not None]
        return self._columns.setdefault(cls, infos)

    def relationship_attributes(self, cls: type) -> List[AttributeInfo]:
        cached = self._relationships.get(cls)
        if cached is not None:
            return cached
        mapper = sa_inspect(cls, raiseerr=False)
        names = [prop.key for prop in mapper.relationships] if hasattr(mapper, "relationships") else []
        infos = [info for info in (self.resolve_attribute(cls, n) for n in names) if info is not None]
        return self._relationships.setdefault(cls, infos)

    def string_attributes(self, cls: type) -> List[AttributeInfo]:
        return [
            info
            for info in self.column_attributes(cls)
            if info.enum_class is None and info.python_type is str
        ]

    # -- value access -----------------------------------------------------

    def read_value(self, obj: Any, path: str) -> Tuple[bool, Any]:
        """
        Read ``path`` from ``obj``: accessor, then attribute, then dotted path.

        Returns:
            (found, value). ``found`` is False when nothing on the object
            answers to the name; the value is then None.
        """
        if obj is None or not path:
            return False, None
        obj = unwrap(obj)
        if isinstance(obj, Mapping):
            if path in obj:
                return True, obj[path]
        else:
            cls = type(obj)
            getter = self.resolve_accessor(cls, path)
            if getter is not None:
                return True, getter(obj)
            if self.resolve_attribute(cls, path) is not None:
                return True, getattr(obj, path, None)
            instance_vars = getattr(obj, "__dict__", None)
            if instance_vars is not None and not path.startswith("_") and path in instance_vars:
                return True, instance_vars[path]

        if "." in path:
            current = obj
            for part in path.split("."):
                if current is None:
                    return True, None
                found, current = self.read_value(current, part)
                if not found:
                    return False, None
            return True, current
        return False, None
