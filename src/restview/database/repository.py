"""Repository handles: generic query/persist operations for any mapped entity."""

import re
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Query, Session
from sqlalchemy.sql.elements import ColumnElement

from ..core.conversion import ConversionError, convert
from ..core.lazy import LazyReference
from ..core.resolver import TypeFieldResolver
from ..errors import UnknownEntityError
from ..utils.logging import get_logger
from .paging import Page, PageSpec

logger = get_logger(__name__)


def entity_name_for(entity_type: type) -> str:
    """Kebab-case logical name: ``OrderLine`` -> ``order-line``."""
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1-\2", entity_type.__name__)
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1-\2", name)
    return name.lower()


class EntityRepository:
    """Query and persistence operations for one entity type."""

    def __init__(
        self,
        session: Session,
        entity_type: type,
        name: Optional[str] = None,
        resolver: Optional[TypeFieldResolver] = None,
    ):
        self.session = session
        self.entity_type = entity_type
        self.name = name or entity_name_for(entity_type)
        self.resolver = resolver or TypeFieldResolver()

    def get_entity_type(self) -> type:
        return self.entity_type

    @property
    def identity_attribute(self) -> str:
        return self.resolver.identity_attribute(self.entity_type) or "id"

    def _query(self, predicate: Optional[ColumnElement] = None) -> Query:
        q = self.session.query(self.entity_type)
        if predicate is not None:
            q = q.filter(predicate)
        return q

    def _apply_sort(self, q: Query, page_spec: PageSpec) -> Query:
        applied = False
        for attribute, descending in page_spec.sort_orders():
            info = self.resolver.resolve_attribute(self.entity_type, attribute)
            if info is None or not info.is_column:
                logger.debug("Ignoring sort on %s for %s: not a column", attribute, self.name)
                continue
            column = getattr(self.entity_type, attribute)
            q = q.order_by(column.desc() if descending else column.asc())
            applied = True
        if not applied:
            # stable paging needs a deterministic order
            q = q.order_by(getattr(self.entity_type, self.identity_attribute).asc())
        return q

    def find_page(self, predicate: Optional[ColumnElement] = None, page_spec: Optional[PageSpec] = None) -> Page:
        """
        Find one page of entities matching ``predicate``.

        Args:
            predicate: Where-clause (None matches everything)
            page_spec: Page index, size and sort orders

        Returns:
            Page with the matching items and the total match count
        """
        page_spec = page_spec or PageSpec()
        q = self._query(predicate)
        total = q.count()
        items = self._apply_sort(q, page_spec).offset(page_spec.offset).limit(page_spec.size).all()
        logger.debug("Found %d of %d %s rows (page %d)", len(items), total, self.name, page_spec.page)
        return Page(items=items, total=total, page=page_spec.page, size=page_spec.size)

    def find_all(self, predicate: Optional[ColumnElement] = None) -> List[Any]:
        q = self._query(predicate)
        return q.order_by(getattr(self.entity_type, self.identity_attribute).asc()).all()

    def find_one(self, predicate: Optional[ColumnElement] = None) -> Optional[Any]:
        """Single match or None; raises MultipleResultsFound on ambiguity."""
        return self._query(predicate).one_or_none()

    def coerce_identity(self, identity: Any) -> Any:
        """Convert ``identity`` (often a string) to the identity column's type."""
        info = self.resolver.resolve_attribute(self.entity_type, self.identity_attribute)
        return convert(identity, info.python_type if info is not None else None)

    def find_by_id(self, identity: Any) -> Optional[Any]:
        try:
            key = self.coerce_identity(identity)
        except ConversionError as e:
            logger.debug("Invalid %s identity %r: %s", self.name, identity, e)
            return None
        if key is None:
            return None
        return self.session.get(self.entity_type, key)

    def find_all_by_identities(self, identities: Iterable[Any]) -> List[Any]:
        keys = []
        for identity in identities:
            try:
                keys.append(self.coerce_identity(identity))
            except ConversionError as e:
                logger.debug("Skipping invalid %s identity %r: %s", self.name, identity, e)
        if not keys:
            return []
        column = getattr(self.entity_type, self.identity_attribute)
        return self._query(column.in_(keys)).order_by(column.asc()).all()

    def get_reference(self, identity: Any) -> LazyReference:
        """Unloaded stand-in for the entity with ``identity``."""
        return LazyReference(self.entity_type, self.coerce_identity(identity), self.find_by_id)

    def save(self, entity: Any) -> Any:
        self.session.add(entity)
        self.session.flush()
        return entity

    def delete_by_id(self, identity: Any) -> bool:
        entity = self.find_by_id(identity)
        if entity is None:
            return False
        self.delete(entity)
        return True

    def delete(self, entity: Any) -> None:
        self.session.delete(entity)
        self.session.flush()

    def count(self, predicate: Optional[ColumnElement] = None) -> int:
        return self._query(predicate).count()


class RepositoryRegistry:
    """Repository handles indexed by logical entity name and by entity type."""

    def __init__(self, session: Session, resolver: Optional[TypeFieldResolver] = None):
        self.session = session
        self.resolver = resolver or TypeFieldResolver()
        self._by_name: Dict[str, EntityRepository] = {}
        self._by_type: Dict[type, EntityRepository] = {}

    @classmethod
    def from_base(
        cls,
        session: Session,
        base: Any,
        resolver: Optional[TypeFieldResolver] = None,
    ) -> "RepositoryRegistry":
        """Register a handle for every class mapped on the declarative ``base``."""
        registry = cls(session, resolver)
        for mapper in base.registry.mappers:
            registry.register(mapper.class_)
        logger.info("Registered %d entity repositories", len(registry._by_name))
        return registry

    def register(self, entity_type: type, name: Optional[str] = None) -> EntityRepository:
        repository = EntityRepository(self.session, entity_type, name, self.resolver)
        if repository.name in self._by_name:
            logger.warning("Duplicate entity name %s; replacing %s", repository.name, self._by_name[repository.name].entity_type.__qualname__)
        self._by_name[repository.name] = repository
        self._by_type[entity_type] = repository
        return repository

    def lookup(self, entity_name: str) -> EntityRepository:
        repository = self._by_name.get(entity_name)
        if repository is None:
            raise UnknownEntityError(entity_name)
        return repository

    def for_type(self, entity_type: type) -> Optional[EntityRepository]:
        return self._by_type.get(entity_type)

    def entity_names(self) -> List[str]:
        return sorted(self._by_name)
