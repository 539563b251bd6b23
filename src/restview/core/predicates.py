"""Compile untyped filter maps into SQLAlchemy boolean clauses.

Rules (applied per entity type, using the type/field resolver):

1. ``search`` matches case-insensitively against every string column (OR).
2. Keys ending in ``Id``/``Ids``/``_id``/``_ids`` whose stem names a
   relationship filter by related identity: ``ownerIds=1,2`` -> owner.id IN (1, 2).
3. Keys naming a column filter by the column's declared type.
4. Everything else is ignored.

Entries that cannot be resolved or parsed are dropped, never raised. The
builder degrades to the most specific query it can build safely.
"""

import re
from decimal import Decimal
from typing import Any, List, Mapping, Optional

from sqlalchemy import and_, or_, true
from sqlalchemy.sql.elements import ColumnElement

from restview.core.conversion import ConversionError, convert, parse_bool, parse_enum
from restview.core.resolver import AttributeInfo, TypeFieldResolver
from restview.utils.logging import get_logger

logger = get_logger(__name__)

SEARCH_KEY = "search"
RELATION_KEY_PATTERN = re.compile(r"^(?P<name>.+?)(?:_ids|_id|Ids|Id)$")
NUMERIC_TYPES = (int, float, Decimal)


def _has_text(value: Optional[str]) -> bool:
    return value is not None and str(value).strip() != ""


class PredicateBuilder:
    """Builds composable where-clauses from ``{key: string value}`` filters."""

    def __init__(self, resolver: Optional[TypeFieldResolver] = None, search_key: str = SEARCH_KEY):
        self.resolver = resolver or TypeFieldResolver()
        self.search_key = search_key

    def build(self, filters: Optional[Mapping[str, Any]], entity_type: type) -> ColumnElement:
        """
        Compile ``filters`` into a clause over ``entity_type``.

        Args:
            filters: Ordered key -> string value pairs
            entity_type: Mapped entity class

        Returns:
            AND of every usable filter; ``true()`` when nothing applies
        """
        clauses: List[ColumnElement] = []
        filters = filters or {}

        search = filters.get(self.search_key)
        if _has_text(search):
            clause = self._search_clause(str(search), entity_type)
            if clause is not None:
                clauses.append(clause)

        for key, value in filters.items():
            if key == self.search_key or not _has_text(value):
                continue
            value = str(value)

            relation = self._relationship_for_key(key, entity_type)
            if relation is not None:
                clause = self._relationship_clause(relation, value, entity_type)
            else:
                info = self.resolver.resolve_attribute(entity_type, key)
                if info is None or not info.is_column:
                    logger.debug("Ignoring filter %s: not a column of %s", key, entity_type.__name__)
                    continue
                clause = self._column_clause(info, value, entity_type)

            if clause is not None:
                clauses.append(clause)

        if not clauses:
            return true()
        if len(clauses) == 1:
            return clauses[0]
        return and_(*clauses)

    def _search_clause(self, term: str, entity_type: type) -> Optional[ColumnElement]:
        columns = self.resolver.string_attributes(entity_type)
        if not columns:
            logger.debug("No string columns on %s; search ignored", entity_type.__name__)
            return None
        matches = [getattr(entity_type, info.name).icontains(term, autoescape=True) for info in columns]
        return or_(*matches)

    def _relationship_for_key(self, key: str, entity_type: type) -> Optional[AttributeInfo]:
        match = RELATION_KEY_PATTERN.match(key)
        if match is None:
            return None
        info = self.resolver.resolve_attribute(entity_type, match.group("name"))
        if info is None or not info.is_relationship:
            return None
        return info

    def _relationship_clause(self, info: AttributeInfo, value: str, entity_type: type) -> Optional[ColumnElement]:
        target = info.target
        pk_name = self.resolver.identity_attribute(target)
        if pk_name is None:
            logger.debug("Related type %s has no identity; filter %s ignored", target.__name__, info.name)
            return None
        pk_info = self.resolver.resolve_attribute(target, pk_name)
        pk_type = pk_info.python_type if pk_info is not None else None

        identities = []
        for piece in value.split(","):
            piece = piece.strip()
            if not piece:
                continue
            try:
                identities.append(convert(piece, pk_type))
            except ConversionError:
                logger.debug("Dropping malformed identity %r for %s.%s", piece, entity_type.__name__, info.name)
        if not identities:
            return None

        condition = getattr(target, pk_name).in_(identities)
        relationship = getattr(entity_type, info.name)
        if info.is_collection:
            return relationship.any(condition)
        return relationship.has(condition)

    def _column_clause(self, info: AttributeInfo, value: str, entity_type: type) -> Optional[ColumnElement]:
        column = getattr(entity_type, info.name)
        python_type = info.python_type
        try:
            if info.enum_class is not None:
                return column == parse_enum(value, info.enum_class)
            if python_type is str:
                return column.contains(value, autoescape=True)
            if python_type is bool:
                return column == parse_bool(value)
            if python_type in NUMERIC_TYPES:
                return column == convert(value, python_type)
        except ConversionError as e:
            logger.debug("Dropping filter %s on %s: %s", info.name, entity_type.__name__, e)
            return None
        return column == value
