"""Response DTOs for the API layer."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..errors import ErrorCode, InvalidFieldValueError, RestViewError


class FieldError(BaseModel):
    """Validation error for a single input field."""
    field: str
    rejected_value: Optional[str] = None
    message: str


class ErrorResponse(BaseModel):
    """Error payload: stable code plus a caller-safe message."""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    code: ErrorCode
    message: str
    path: Optional[str] = None
    field_errors: List[FieldError] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_error(cls, error: Exception, path: Optional[str] = None) -> "ErrorResponse":
        if isinstance(error, InvalidFieldValueError):
            field_error = FieldError(
                field=error.field_name,
                rejected_value=None if error.value is None else str(error.value),
                message=error.message,
            )
            return cls(code=error.code, message=error.message, path=path, field_errors=[field_error])
        if isinstance(error, RestViewError):
            return cls(code=error.code, message=error.message, path=path)
        # unexpected errors never leak internal detail
        return cls(
            code=ErrorCode.INTERNAL_SERVER_ERROR,
            message=ErrorCode.INTERNAL_SERVER_ERROR.default_message,
            path=path,
        )


class PageResponse(BaseModel):
    """One page of rendered items."""
    items: List[Any] = Field(default_factory=list)
    total: int = 0
    page: int = 0
    size: int = 0
    total_pages: int = 0
