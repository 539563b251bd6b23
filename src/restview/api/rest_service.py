"""Generic service facade: CRUD flows, filtering and shaping for any entity."""

from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy.sql.elements import ColumnElement

from ..core.conversion import ConversionError, convert
from ..core.predicates import PredicateBuilder
from ..core.projection import ProjectionEngine
from ..core.registry import ShapeRegistry
from ..core.resolver import AttributeInfo
from ..database.paging import Page, PageSpec
from ..database.repository import EntityRepository, RepositoryRegistry
from ..errors import EntityNotFoundError, InvalidFieldValueError
from ..security.scope import UserScopeFilter
from ..utils.logging import get_logger

logger = get_logger(__name__)

RELATION_KEY_SUFFIXES = ("Ids", "_ids", "Id", "_id")


class GenericRestService:
    """
    Read/write operations over every registered entity type.

    Entities are addressed by logical name (see ``RepositoryRegistry``).
    Returned values are projected onto the requested shape, or the entity's
    default shape, and fall back to the raw entity when no shape applies or
    projection fails.
    """

    def __init__(
        self,
        registry: RepositoryRegistry,
        shapes: ShapeRegistry,
        engine: ProjectionEngine,
        predicates: PredicateBuilder,
        scope: Optional[UserScopeFilter] = None,
    ):
        self.registry = registry
        self.shapes = shapes
        self.engine = engine
        self.predicates = predicates
        self.scope = scope
        self.resolver = engine.resolver

    # -- building blocks ----------------------------------------------------

    def repository(self, entity_name: str) -> EntityRepository:
        return self.registry.lookup(entity_name)

    def resolve_shape(self, requested_name: Optional[str], entity_type: type) -> Optional[type]:
        """Named shape first, then the entity's default shape, else None."""
        if requested_name and self.shapes.has_shape(requested_name):
            return self.shapes.shape_for(requested_name)
        if requested_name:
            logger.debug("Unknown shape %s requested for %s", requested_name, entity_type.__name__)
        if self.shapes.has_default_shape_for(entity_type):
            return self.shapes.default_shape_for(entity_type)
        return None

    def project(self, entity: Any, shape_type: Optional[type]) -> Any:
        """Project ``entity``; any recoverable failure returns the raw entity."""
        if entity is None or shape_type is None or shape_type is object:
            return entity
        try:
            projected = self.engine.project(entity, shape_type)
        except Exception as e:
            logger.error(
                "Failed to project entity of type %s to shape %s: %s",
                type(entity).__name__,
                shape_type.__name__,
                e,
            )
            return entity
        if projected is None:
            logger.warning(
                "Projection returned None for entity of type %s to shape %s",
                type(entity).__name__,
                shape_type.__name__,
            )
            return entity
        return projected

    def build_predicate(self, filters: Optional[Mapping[str, Any]], entity_type: type) -> ColumnElement:
        return self.predicates.build(filters, entity_type)

    def _scoped(self, predicate: Optional[ColumnElement], entity_type: type) -> Optional[ColumnElement]:
        if self.scope is None:
            return predicate
        return self.scope.with_user_scope(predicate, entity_type)

    # -- reads --------------------------------------------------------------

    def find_all(
        self,
        entity_name: str,
        filters: Optional[Mapping[str, Any]] = None,
        page_spec: Optional[PageSpec] = None,
        shape_name: Optional[str] = None,
    ) -> Page:
        """
        Filter, page and shape entities of one type.

        Args:
            entity_name: Logical entity name
            filters: Filter map (see ``PredicateBuilder``)
            page_spec: Page index, size and sort orders
            shape_name: Requested shape; the entity default applies otherwise

        Returns:
            Page of shape values (or raw entities)

        Raises:
            UnknownEntityError: If no repository answers to ``entity_name``
        """
        repository = self.repository(entity_name)
        entity_type = repository.get_entity_type()
        shape_type = self.resolve_shape(shape_name, entity_type)
        predicate = self._scoped(self.build_predicate(filters, entity_type), entity_type)
        page = repository.find_page(predicate, page_spec)
        return page.map(lambda entity: self.project(entity, shape_type))

    def find_entity(self, repository: EntityRepository, entity_id: Any) -> Optional[Any]:
        """Entity with ``entity_id`` visible to the current user, or None."""
        try:
            key = repository.coerce_identity(entity_id)
        except ConversionError:
            return None
        column = getattr(repository.get_entity_type(), repository.identity_attribute)
        return repository.find_one(self._scoped(column == key, repository.get_entity_type()))

    def _get_entity(self, repository: EntityRepository, entity_id: Any) -> Any:
        entity = self.find_entity(repository, entity_id)
        if entity is None:
            raise EntityNotFoundError(repository.name, entity_id)
        return entity

    def get_by_id(self, entity_name: str, entity_id: Any, shape_name: Optional[str] = None) -> Any:
        """
        Raises:
            UnknownEntityError: If no repository answers to ``entity_name``
            EntityNotFoundError: If no visible row has ``entity_id``
        """
        repository = self.repository(entity_name)
        entity = self._get_entity(repository, entity_id)
        return self.project(entity, self.resolve_shape(shape_name, repository.get_entity_type()))

    def project_fields(self, entities: Iterable[Any], fields: List[str]) -> List[Dict[str, Any]]:
        return [self.engine.project_fields(entity, fields) for entity in entities]

    # -- writes -------------------------------------------------------------

    def create(self, entity_name: str, data: Mapping[str, Any], shape_name: Optional[str] = None) -> Any:
        repository = self.repository(entity_name)
        entity_type = repository.get_entity_type()
        logger.debug("Creating entity of type %s with shape %s", entity_type.__name__, shape_name or "default")

        entity = entity_type()
        self._apply_values(entity, data, repository)
        self._apply_relationships(entity, data)
        saved = self._save(repository, entity)

        logger.info(
            "Created entity of type %s with id %s",
            entity_type.__name__,
            self.resolver.identity_of(saved),
        )
        return self.project(saved, self.resolve_shape(shape_name, entity_type))

    def update(
        self,
        entity_name: str,
        entity_id: Any,
        data: Mapping[str, Any],
        shape_name: Optional[str] = None,
    ) -> Any:
        repository = self.repository(entity_name)
        entity_type = repository.get_entity_type()
        logger.debug("Updating entity of type %s with id %s", entity_type.__name__, entity_id)

        entity = self._get_entity(repository, entity_id)
        self._apply_values(entity, data, repository)
        self._apply_relationships(entity, data)
        saved = self._save(repository, entity)

        logger.info("Updated entity of type %s with id %s", entity_type.__name__, entity_id)
        return self.project(saved, self.resolve_shape(shape_name, entity_type))

    def delete(self, entity_name: str, entity_id: Any) -> None:
        repository = self.repository(entity_name)
        entity_type = repository.get_entity_type()
        logger.debug("Deleting entity of type %s with id %s", entity_type.__name__, entity_id)
        repository.delete(self._get_entity(repository, entity_id))
        logger.info("Deleted entity of type %s with id %s", entity_type.__name__, entity_id)

    def _save(self, repository: EntityRepository, entity: Any) -> Any:
        if self.scope is not None:
            self.scope.validate_access(entity)
        return repository.save(entity)

    def _apply_values(self, entity: Any, data: Mapping[str, Any], repository: EntityRepository) -> None:
        """Copy scalar input values onto ``entity``; the identity is never written."""
        entity_type = type(entity)
        for key, value in data.items():
            if key == repository.identity_attribute:
                continue
            info = self.resolver.resolve_attribute(entity_type, key)
            if info is None:
                setter = self.resolver.resolve_accessor(entity_type, key, mode="set")
                if setter is not None:
                    setter(entity, value)
                else:
                    logger.debug("Ignoring unknown input key %s for %s", key, entity_type.__name__)
                continue
            if info.is_relationship:
                continue
            setattr(entity, key, self._coerce_input(info, value))

    def _coerce_input(self, info: AttributeInfo, value: Any) -> Any:
        if not info.is_column:
            return value
        try:
            return convert(value, info.python_type)
        except ConversionError as e:
            raise InvalidFieldValueError(info.name, value, str(e)) from e

    def _relation_value(self, name: str, data: Mapping[str, Any]) -> Any:
        for suffix in RELATION_KEY_SUFFIXES:
            value = data.get(name + suffix)
            if value is not None:
                return value
        return None

    def _apply_relationships(self, entity: Any, data: Mapping[str, Any]) -> None:
        """Resolve ``<rel>Id``/``<rel>Ids`` style keys into related entities."""
        for info in self.resolver.relationship_attributes(type(entity)):
            value = self._relation_value(info.name, data)
            if value is None:
                continue
            related = self.registry.for_type(info.target)
            if related is None:
                logger.warning("No repository for related type %s; %s not set", info.target.__name__, info.name)
                continue

            if info.is_collection:
                if isinstance(value, str):
                    identities = [piece.strip() for piece in value.split(",") if piece.strip()]
                elif isinstance(value, (list, tuple, set, frozenset)):
                    identities = list(value)
                else:
                    identities = [value]
                found = related.find_all_by_identities(identities)
                collection_class = info.python_type if info.python_type in (list, set) else list
                setattr(entity, info.name, collection_class(found))
            else:
                setattr(entity, info.name, related.find_by_id(value))
