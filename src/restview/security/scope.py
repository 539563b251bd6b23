"""Per-user row scoping for generic queries."""

from typing import Any, Dict, Optional

from sqlalchemy import and_, true
from sqlalchemy.sql.elements import ColumnElement

from ..config.loader import SecuritySettings
from ..core.conversion import ConversionError, convert
from ..core.resolver import TypeFieldResolver
from ..errors import AccessDeniedError, AuthenticationError
from ..utils.logging import get_logger
from .context import current_user_id

logger = get_logger(__name__)

USER_ID_FIELD_ATTRIBUTE = "__user_id_field__"

_MISS = object()


class UserScopeFilter:
    """
    Restricts queries to rows owned by the current user.

    An entity opts into a custom owner column with a ``__user_id_field__``
    class attribute; otherwise the configured default column is used when the
    entity has it. Entities without an owner column are never restricted.
    """

    def __init__(self, settings: Optional[SecuritySettings] = None, resolver: Optional[TypeFieldResolver] = None):
        self.settings = settings or SecuritySettings()
        self.resolver = resolver or TypeFieldResolver()
        self._fields: Dict[type, Any] = {}

    def user_field_for(self, entity_type: type) -> Optional[str]:
        cached = self._fields.get(entity_type, _MISS)
        if cached is not _MISS:
            return cached
        field_name = getattr(entity_type, USER_ID_FIELD_ATTRIBUTE, None) or self.settings.default_user_id_field
        if self.resolver.resolve_attribute(entity_type, field_name) is not None:
            logger.debug("Found user id field '%s' on %s", field_name, entity_type.__name__)
        else:
            logger.debug("No user id field '%s' on %s", field_name, entity_type.__name__)
            field_name = None
        return self._fields.setdefault(entity_type, field_name)

    def should_skip(self, entity_type: type) -> bool:
        qualified = f"{entity_type.__module__}.{entity_type.__qualname__}"
        return qualified in self.settings.skip_entities or entity_type.__name__ in self.settings.skip_entities

    def _current_user_for(self, entity_type: type) -> Optional[Any]:
        user_id = current_user_id()
        if user_id is None:
            if self.settings.fail_fast:
                raise AuthenticationError("No current user id found for security filtering")
            logger.warning("No current user id found for security filtering on entity: %s", entity_type.__name__)
        return user_id

    def _coerce(self, entity_type: type, field_name: str, user_id: Any) -> Any:
        info = self.resolver.resolve_attribute(entity_type, field_name)
        try:
            return convert(user_id, info.python_type if info is not None else None)
        except ConversionError:
            return user_id

    def scope_predicate(self, entity_type: type) -> ColumnElement:
        """
        Clause restricting ``entity_type`` to the current user's rows.

        Raises:
            AuthenticationError: If no user is bound and fail_fast is set
        """
        if not self.settings.enabled:
            return true()
        if self.should_skip(entity_type):
            logger.debug("Skipping security filtering for entity: %s", entity_type.__name__)
            return true()
        field_name = self.user_field_for(entity_type)
        if field_name is None:
            return true()
        user_id = self._current_user_for(entity_type)
        if user_id is None:
            return true()
        return getattr(entity_type, field_name) == self._coerce(entity_type, field_name, user_id)

    def with_user_scope(self, predicate: Optional[ColumnElement], entity_type: type) -> ColumnElement:
        scope = self.scope_predicate(entity_type)
        if predicate is None:
            return scope
        return and_(predicate, scope)

    def validate_access(self, entity: Any) -> None:
        """
        Check that the current user owns ``entity``; unowned entities are claimed.

        Raises:
            AuthenticationError: If no user is bound and fail_fast is set
            AccessDeniedError: If the entity belongs to another user
        """
        if entity is None or not self.settings.enabled:
            return
        entity_type = type(entity)
        if self.should_skip(entity_type):
            return
        field_name = self.user_field_for(entity_type)
        if field_name is None:
            return
        user_id = self._current_user_for(entity_type)
        if user_id is None:
            return
        expected = self._coerce(entity_type, field_name, user_id)
        owner = getattr(entity, field_name, None)
        if owner is None:
            setattr(entity, field_name, expected)
            logger.debug("Set user id %s on entity %s", expected, entity_type.__name__)
        elif owner != expected:
            raise AccessDeniedError("User does not have permission to access this entity")
