"""Wire settings into a ready-to-use service."""

import importlib
from typing import Any, Optional

from sqlalchemy.orm import Session

from .api.rest_service import GenericRestService
from .config.loader import RestViewSettings
from .core.predicates import PredicateBuilder
from .core.projection import ProjectionCache, ProjectionEngine
from .core.registry import ShapeRegistry
from .core.resolver import TypeFieldResolver
from .database.repository import RepositoryRegistry
from .errors import ConfigurationError
from .security.scope import UserScopeFilter
from .utils.logging import get_logger

logger = get_logger(__name__)


def import_object(reference: str) -> Any:
    """Import ``"package.module:attribute"`` (or a bare module path)."""
    module_name, _, attribute = reference.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Failed to import {module_name}: {e}") from e
    if not attribute:
        return module
    try:
        return getattr(module, attribute)
    except AttributeError as e:
        raise ConfigurationError(f"{module_name} has no attribute {attribute}") from e


def load_entity_base(settings: RestViewSettings) -> Any:
    """Import entity modules and return the configured declarative base."""
    for module_name in settings.entities.modules:
        import_object(module_name)
    if not settings.entities.base:
        raise ConfigurationError("entities.base must name the declarative base as 'module:attribute'")
    return import_object(settings.entities.base)


def build_shape_registry(settings: RestViewSettings) -> ShapeRegistry:
    shapes = ShapeRegistry()
    if settings.shapes.base_packages:
        shapes.scan(settings.shapes.base_packages)
    else:
        logger.warning("No shape packages configured; only raw entities will be returned")
    return shapes


def build_service(
    settings: RestViewSettings,
    session: Session,
    base: Any,
    shapes: Optional[ShapeRegistry] = None,
) -> GenericRestService:
    """
    Assemble resolver, registries, engine and predicate builder around ``session``.

    Args:
        settings: Validated settings
        session: Open SQLAlchemy session
        base: Declarative base whose mapped classes become repositories
        shapes: Pre-scanned shape registry (scanned from settings otherwise)
    """
    resolver = TypeFieldResolver()
    shapes = shapes if shapes is not None else build_shape_registry(settings)
    engine = ProjectionEngine(
        resolver=resolver,
        shapes=shapes,
        cache=ProjectionCache(),
        cache_enabled=settings.projection.cache_enabled,
    )
    scope = UserScopeFilter(settings.security, resolver) if settings.security.enabled else None
    return GenericRestService(
        registry=RepositoryRegistry.from_base(session, base, resolver),
        shapes=shapes,
        engine=engine,
        predicates=PredicateBuilder(resolver),
        scope=scope,
    )
