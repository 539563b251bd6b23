"""Projection engine: turn a loaded entity graph into a requested shape.

Traversal keeps an explicit visited set of entity keys for the current
top-level call. Re-entering an entity already on the path ends that branch:
to-one references degrade to a minimal identity-only value (when the shape
exposes the identity), everything else to None.

Top-level results are cached per (entity key, entity type, shape type).
A cached value is only reused when a fresh projection serializes to exactly
the same data, so the cache guarantees object identity for unchanged
entities rather than saving work.
"""

import inspect
import typing
from collections import abc
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from pydantic import BaseModel

from restview.core.conversion import is_simple_type, is_simple_value, try_convert, unwrap_optional
from restview.core.lazy import true_type, unwrap
from restview.core.registry import ShapeRegistry
from restview.core.resolver import TypeFieldResolver
from restview.core.serialization import to_json
from restview.core.shapes import ShapeField, ShapeView, constructor_parameters, is_open_shape, is_shape_type
from restview.errors import ProjectionError
from restview.utils.logging import get_logger

logger = get_logger(__name__)

MISSING = object()

CacheKey = Tuple[str, type, type]

_SET_ORIGINS = (set, abc.Set, abc.MutableSet)
_LIST_ORIGINS = (list, abc.Sequence, abc.MutableSequence, abc.Iterable, abc.Collection)


class ProjectionCache:
    """Last top-level projection per (entity key, entity type, shape type)."""

    def __init__(self):
        self._entries: Dict[CacheKey, Any] = {}

    def get(self, key: CacheKey) -> Optional[Any]:
        return self._entries.get(key)

    def put(self, key: CacheKey, value: Any) -> None:
        self._entries[key] = value

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class ProjectionEngine:
    """Projects entities onto open (Protocol) or concrete shape classes."""

    def __init__(
        self,
        resolver: Optional[TypeFieldResolver] = None,
        shapes: Optional[ShapeRegistry] = None,
        cache: Optional[ProjectionCache] = None,
        cache_enabled: bool = True,
    ):
        self.resolver = resolver or TypeFieldResolver()
        self.shapes = shapes or ShapeRegistry()
        self.cache = cache if cache is not None else ProjectionCache()
        self.cache_enabled = cache_enabled

    # -- public API ---------------------------------------------------------

    def project(self, entity: Any, shape_type: type) -> Optional[Any]:
        """
        Project ``entity`` onto ``shape_type``.

        Args:
            entity: Entity instance (lazy stand-ins are unwrapped)
            shape_type: Shape class to produce

        Returns:
            Shape value, or None for a None entity

        Raises:
            ProjectionError: If the top-level frame fails
        """
        if entity is None:
            logger.warning("Cannot project None entity")
            return None
        if shape_type is None:
            logger.warning("Cannot project to None shape type")
            return None
        return self._project(entity, shape_type, set(), expect_reference=False)

    def project_fields(self, entity: Any, fields: Iterable[str]) -> Dict[str, Any]:
        """Flat projection of named fields; a field that fails reads as None."""
        result: Dict[str, Any] = {}
        for name in fields:
            try:
                _, result[name] = self.resolver.read_value(entity, name)
            except Exception as e:
                logger.warning("Failed to project field %s: %s", name, e)
                result[name] = None
        return result

    def entity_key(self, entity: Any) -> str:
        """``module.Qualname-identity`` for identified entities, else per-object."""
        identity = self.resolver.identity_of(entity)
        if identity is not None:
            entity_type = true_type(entity)
            return f"{entity_type.__module__}.{entity_type.__qualname__}-{identity}"
        return f"object-{id(unwrap(entity))}"

    # -- traversal ----------------------------------------------------------

    def _project(self, entity: Any, shape_type: type, visited: Set[str], expect_reference: bool) -> Optional[Any]:
        entity_type = true_type(entity)
        key = self.entity_key(entity)

        if key in visited:
            logger.debug("Cycle detected for entity: %s", key)
            identity = self.resolver.identity_of(entity)
            if expect_reference and identity is not None:
                return self._minimal_reference(shape_type, entity_type, identity)
            return None

        visited.add(key)
        top_level = len(visited) == 1
        try:
            target = unwrap(entity)
            if target is None:
                logger.warning("Lazy reference %s could not be loaded", key)
                return None
            logger.debug("Projecting %s to %s", entity_type.__name__, shape_type.__name__)
            result = self._build(target, shape_type, visited)
            if top_level and self.cache_enabled:
                result = self._through_cache((key, entity_type, shape_type), result)
            return result
        except Exception as e:
            if top_level:
                logger.error(
                    "Error projecting entity of type %s to shape %s: %s",
                    entity_type.__name__,
                    shape_type.__name__,
                    e,
                    exc_info=True,
                )
                raise ProjectionError(entity_type, shape_type, e) from e
            logger.warning(
                "Failed to project nested %s to %s: %s",
                entity_type.__name__,
                shape_type.__name__,
                e,
            )
            return None
        finally:
            visited.discard(key)

    def _through_cache(self, key: CacheKey, fresh: Any) -> Any:
        cached = self.cache.get(key)
        if cached is not None and to_json(cached) == to_json(fresh):
            logger.debug("Using cached projection for %s", key[0])
            return cached
        self.cache.put(key, fresh)
        return fresh

    def _build(self, target: Any, shape_type: type, visited: Set[str]) -> Any:
        fields = self.shapes.fields_of(shape_type)
        values: Dict[str, Any] = {}
        for shape_field in fields:
            values[shape_field.name] = self._field_value(target, shape_field, visited)

        if is_open_shape(shape_type):
            return ShapeView(
                shape_type,
                {name: (None if value is MISSING else value) for name, value in values.items()},
                _accessor_map(fields),
            )
        present = {name: value for name, value in values.items() if value is not MISSING}
        if issubclass(shape_type, BaseModel):
            return self._construct_model(shape_type, present)
        return self._instantiate(shape_type, present)

    def _field_value(self, target: Any, shape_field: ShapeField, visited: Set[str]) -> Any:
        found, raw = self.resolver.read_value(target, shape_field.source)
        if not found:
            logger.debug("No source %s on %s; field omitted", shape_field.source, type(target).__name__)
            return MISSING
        if raw is None:
            return None
        return self._convert(raw, shape_field.declared_type, visited)

    def _convert(self, raw: Any, declared: Any, visited: Set[str]) -> Any:
        declared = self._resolve_declared(unwrap_optional(declared))
        origin = typing.get_origin(declared)

        if _is_collection_value(raw) or origin in _SET_ORIGINS + _LIST_ORIGINS + (frozenset, tuple):
            return self._convert_collection(raw, declared, visited)
        if declared is None or declared is Any or declared is object:
            return self._convert_untyped(raw, visited, expect_reference=True)
        if is_shape_type(declared):
            return self._project(raw, declared, visited, expect_reference=True)
        if is_simple_type(declared):
            return try_convert(raw, declared)
        return raw

    def _convert_untyped(self, raw: Any, visited: Set[str], expect_reference: bool) -> Any:
        if is_simple_value(raw):
            return raw
        entity_type = true_type(raw)
        if self.shapes.has_default_shape_for(entity_type):
            return self._project(raw, self.shapes.default_shape_for(entity_type), visited, expect_reference)
        return raw

    def _resolve_declared(self, declared: Any) -> Any:
        # unresolved forward references may name a registered shape
        if isinstance(declared, typing.ForwardRef):
            declared = declared.__forward_arg__
        if isinstance(declared, str):
            return self.shapes.shape_for(declared) if self.shapes.has_shape(declared) else None
        return declared

    def _convert_collection(self, raw: Any, declared: Any, visited: Set[str]) -> Any:
        if isinstance(raw, abc.Mapping) or isinstance(raw, (str, bytes)):
            return raw
        items = list(raw) if isinstance(raw, abc.Iterable) else [raw]
        kind = _collection_kind(declared, raw)
        args = [a for a in typing.get_args(declared) if a is not Ellipsis]
        element_type = self._resolve_declared(unwrap_optional(args[0])) if args else None

        projected: List[Any] = []
        processed: Set[str] = set()
        for item in items:
            if item is None:
                continue
            if not is_simple_value(item):
                item_key = self.entity_key(item)
                if item_key in processed:
                    continue
                processed.add(item_key)
            value = self._convert_element(item, element_type, set(visited))
            if value is not None:
                projected.append(value)

        if kind is list:
            return projected
        if kind is tuple:
            return tuple(projected)
        try:
            return kind(projected)
        except TypeError as e:
            logger.warning("Unhashable elements for %s; returning a list: %s", kind.__name__, e)
            return projected

    def _convert_element(self, item: Any, element_type: Any, visited: Set[str]) -> Any:
        if element_type is None or element_type is Any or element_type is object:
            return self._convert_untyped(item, visited, expect_reference=False)
        if is_shape_type(element_type):
            return self._project(item, element_type, visited, expect_reference=False)
        if is_simple_type(element_type):
            return try_convert(item, element_type)
        return item

    # -- construction -------------------------------------------------------

    def _instantiate(self, shape_type: type, values: Dict[str, Any]) -> Any:
        try:
            instance = shape_type()
        except (TypeError, ValueError):
            # no usable zero-argument constructor; bind by parameter name
            return self._construct(shape_type, values)
        self._populate(instance, values)
        return instance

    def _construct_model(self, shape_type: type, values: Dict[str, Any]) -> BaseModel:
        """
        Build a pydantic shape from already-converted values without validating them again.

        Required fields with no value read as None; optional ones keep their defaults.
        """
        data: Dict[str, Any] = {
            name: None for name, info in shape_type.model_fields.items() if info.is_required()
        }
        data.update(values)
        return shape_type.model_construct(**data)

    def _construct(self, shape_type: type, values: Dict[str, Any]) -> Any:
        args: List[Any] = []
        kwargs: Dict[str, Any] = {}
        bound = set()
        for param in constructor_parameters(shape_type):
            if param.name in values:
                value = values[param.name]
            elif param.default is inspect.Parameter.empty:
                value = None
            else:
                continue
            bound.add(param.name)
            if param.kind is inspect.Parameter.POSITIONAL_ONLY:
                args.append(value)
            else:
                kwargs[param.name] = value
        instance = shape_type(*args, **kwargs)
        self._populate(instance, {k: v for k, v in values.items() if k not in bound})
        return instance

    def _populate(self, instance: Any, values: Dict[str, Any]) -> None:
        cls = type(instance)
        for name, value in values.items():
            if value is None:
                continue
            setter = self.resolver.resolve_accessor(cls, name, mode="set")
            try:
                if setter is not None:
                    setter(instance, value)
                else:
                    setattr(instance, name, value)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning("Failed to set %s on %s: %s", name, cls.__name__, e)

    def _minimal_reference(self, shape_type: type, entity_type: type, identity: Any) -> Optional[Any]:
        id_attr = self.resolver.identity_attribute(entity_type)
        fields = self.shapes.fields_of(shape_type)
        id_field = next((f for f in fields if id_attr in (f.source, f.name)), None)
        if id_field is None:
            logger.debug("Shape %s exposes no identity; cyclic reference omitted", shape_type.__name__)
            return None
        if is_simple_type(unwrap_optional(id_field.declared_type)):
            identity = try_convert(identity, unwrap_optional(id_field.declared_type))

        try:
            if is_open_shape(shape_type):
                values = {f.name: None for f in fields}
                values[id_field.name] = identity
                return ShapeView(shape_type, values, _accessor_map(fields))
            if issubclass(shape_type, BaseModel):
                return self._construct_model(shape_type, {id_field.name: identity})
            return self._instantiate(shape_type, {id_field.name: identity})
        except Exception as e:
            logger.debug("Could not create minimal reference for %s: %s", shape_type.__name__, e)
            return None


def _accessor_map(fields: List[ShapeField]) -> Dict[str, str]:
    return {f.accessor: f.name for f in fields if f.accessor}


def _is_collection_value(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def _collection_kind(declared: Any, raw: Any) -> type:
    origin = typing.get_origin(declared) or (declared if inspect.isclass(declared) else None)
    if origin is frozenset:
        return frozenset
    if origin is tuple:
        return tuple
    if origin in _SET_ORIGINS:
        return set
    if origin in _LIST_ORIGINS:
        return list
    if isinstance(raw, frozenset):
        return frozenset
    if isinstance(raw, (set, abc.Set)):
        return set
    if isinstance(raw, tuple):
        return tuple
    return list
