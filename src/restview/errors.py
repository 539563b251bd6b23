"""Exception hierarchy and stable error codes."""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    UNKNOWN_ENTITY = "UNKNOWN_ENTITY"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_FIELD_VALUE = "INVALID_FIELD_VALUE"
    PROJECTION_FAILED = "PROJECTION_FAILED"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    @property
    def default_message(self) -> str:
        return _DEFAULT_MESSAGES[self]


_DEFAULT_MESSAGES = {
    ErrorCode.INTERNAL_SERVER_ERROR: "Internal server error occurred",
    ErrorCode.BAD_REQUEST: "Bad request",
    ErrorCode.UNAUTHORIZED: "Unauthorized access",
    ErrorCode.FORBIDDEN: "Access forbidden",
    ErrorCode.NOT_FOUND: "Resource not found",
    ErrorCode.UNKNOWN_ENTITY: "Unknown entity type",
    ErrorCode.VALIDATION_ERROR: "Validation failed",
    ErrorCode.INVALID_FIELD_VALUE: "Invalid field value",
    ErrorCode.PROJECTION_FAILED: "Projection failed",
    ErrorCode.CONFIGURATION_ERROR: "Configuration error",
}


class RestViewError(Exception):
    """Base class for errors surfaced to callers of the service layer."""

    code = ErrorCode.INTERNAL_SERVER_ERROR

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.code.default_message)
        self.message = message or self.code.default_message


class UnknownEntityError(RestViewError):
    """No repository is registered under the requested entity name."""

    code = ErrorCode.UNKNOWN_ENTITY

    def __init__(self, entity_name: str):
        super().__init__(f"No repository found for entity: {entity_name}")
        self.entity_name = entity_name


class EntityNotFoundError(RestViewError):
    """The entity type is known but no row has the requested identity."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, entity_name: str, entity_id: Any):
        super().__init__(f"Not found {entity_name} with id: {entity_id}")
        self.entity_name = entity_name
        self.entity_id = entity_id


class ProjectionError(RestViewError):
    """A top-level projection frame failed."""

    code = ErrorCode.PROJECTION_FAILED

    def __init__(self, entity_type: type, shape_type: type, cause: Optional[BaseException] = None):
        super().__init__(f"Error projecting {entity_type.__name__} to {shape_type.__name__}")
        self.entity_type = entity_type
        self.shape_type = shape_type
        self.cause = cause


class AuthenticationError(RestViewError):
    code = ErrorCode.UNAUTHORIZED


class AccessDeniedError(RestViewError):
    code = ErrorCode.FORBIDDEN


class ConfigurationError(RestViewError, ValueError):
    code = ErrorCode.CONFIGURATION_ERROR


class InvalidFieldValueError(RestViewError):
    """An input value cannot be stored in the named field."""

    code = ErrorCode.INVALID_FIELD_VALUE

    def __init__(self, field_name: str, value: Any, reason: Optional[str] = None):
        message = f"Invalid value for field {field_name}: {value!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.field_name = field_name
        self.value = value
