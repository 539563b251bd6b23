"""Projection metadata registry: discovers and indexes shape declarations."""

import importlib
import inspect
import pkgutil
from types import ModuleType
from typing import Dict, Iterable, List, Optional

from restview.core.shapes import ShapeField, ShapeMeta, discover_fields, shape_meta
from restview.errors import ConfigurationError
from restview.utils.logging import get_logger

logger = get_logger(__name__)


class ShapeRegistry:
    """
    Shapes indexed by logical name and by default-for entity type.

    Duplicate registrations are logged and the last one wins.
    """

    def __init__(self):
        self._by_name: Dict[str, type] = {}
        self._by_entity: Dict[type, type] = {}
        self._fields: Dict[type, List[ShapeField]] = {}

    # -- discovery ----------------------------------------------------------

    def scan(self, packages: Iterable[str]) -> int:
        """
        Import each package (and its submodules) and register every shape.

        Args:
            packages: Dotted package or module names

        Returns:
            Number of shapes registered by this scan

        Raises:
            ConfigurationError: If a configured package cannot be imported
        """
        packages = list(packages)
        logger.info("Scanning for shapes in packages: %s", packages)
        count = 0
        for package in packages:
            for module in self._iter_modules(package):
                count += self._register_module(module)
        self._log_state()
        return count

    def _iter_modules(self, package: str) -> List[ModuleType]:
        try:
            root = importlib.import_module(package)
        except ImportError as e:
            raise ConfigurationError(f"Failed to import shape package {package}: {e}") from e

        modules = [root]
        path = getattr(root, "__path__", None)
        if path is None:
            return modules
        for info in pkgutil.walk_packages(path, prefix=root.__name__ + "."):
            try:
                modules.append(importlib.import_module(info.name))
            except Exception as e:
                logger.warning("Failed to import module %s while scanning shapes: %s", info.name, e)
        logger.info("Found %d modules in package: %s", len(modules), package)
        return modules

    def _register_module(self, module: ModuleType) -> int:
        count = 0
        for _, member in inspect.getmembers(module, inspect.isclass):
            if member.__module__ != module.__name__:
                continue
            meta = shape_meta(member)
            if meta is not None:
                self.register(member, meta)
                count += 1
        return count

    def register(self, shape_type: type, meta: Optional[ShapeMeta] = None) -> None:
        meta = meta or shape_meta(shape_type) or ShapeMeta(name=shape_type.__name__)
        existing = self._by_name.get(meta.name)
        if existing is not None and existing is not shape_type:
            logger.warning(
                "Duplicate shape name found: %s. Existing: %s, New: %s",
                meta.name,
                existing.__qualname__,
                shape_type.__qualname__,
            )
        self._by_name[meta.name] = shape_type

        for entity_type in meta.default_for:
            current = self._by_entity.get(entity_type)
            if current is not None and current is not shape_type:
                logger.warning(
                    "Duplicate default shape for entity %s. Existing: %s, New: %s",
                    entity_type.__qualname__,
                    current.__qualname__,
                    shape_type.__qualname__,
                )
            self._by_entity[entity_type] = shape_type

        logger.info("Registered shape: %s -> %s", meta.name, shape_type.__qualname__)

    def _log_state(self) -> None:
        logger.info(
            "Shape registry holds %d shapes and %d entity defaults",
            len(self._by_name),
            len(self._by_entity),
        )
        for name, shape_type in self._by_name.items():
            logger.debug("Shape: %s -> %s", name, shape_type.__qualname__)
        for entity_type, shape_type in self._by_entity.items():
            logger.debug("Default shape: %s -> %s", entity_type.__qualname__, shape_type.__qualname__)

    # -- lookup -------------------------------------------------------------

    def has_shape(self, name: str) -> bool:
        return name in self._by_name

    def shape_for(self, name: str) -> Optional[type]:
        shape_type = self._by_name.get(name)
        if shape_type is None:
            logger.warning("Shape not found: %s", name)
        return shape_type

    def has_default_shape_for(self, entity_type: type) -> bool:
        return entity_type in self._by_entity

    def default_shape_for(self, entity_type: type) -> Optional[type]:
        shape_type = self._by_entity.get(entity_type)
        if shape_type is None:
            logger.warning("No default shape for entity: %s", entity_type.__qualname__)
        return shape_type

    def available_shapes(self) -> List[str]:
        return sorted(self._by_name)

    def available_entity_types(self) -> List[type]:
        return list(self._by_entity)

    def fields_of(self, shape_type: type) -> List[ShapeField]:
        """Output fields of any shape class, registered or not (memoized)."""
        cached = self._fields.get(shape_type)
        if cached is not None:
            return cached
        return self._fields.setdefault(shape_type, discover_fields(shape_type))

    def shape_fields(self, name: str) -> Optional[List[ShapeField]]:
        shape_type = self._by_name.get(name)
        if shape_type is None:
            return None
        return self.fields_of(shape_type)
