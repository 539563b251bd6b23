"""Coercion of raw values (mostly strings) into declared Python types."""

import inspect
import types
import typing
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Type, Union
from uuid import UUID

from restview.utils.logging import get_logger

logger = get_logger(__name__)

SIMPLE_TYPES = (str, bool, int, float, Decimal, date, datetime, time, UUID)
NUMERIC_TYPES = (int, float, Decimal)

TRUE_STRINGS = frozenset({"true", "1", "yes", "y", "on"})
FALSE_STRINGS = frozenset({"false", "0", "no", "n", "off"})


class ConversionError(ValueError):
    """A value could not be coerced into the requested type."""


def unwrap_optional(declared: Any) -> Any:
    """``Optional[X]`` -> ``X``; other unions and plain types pass through."""
    origin = typing.get_origin(declared)
    if origin is Union or origin is types.UnionType:
        args = [a for a in typing.get_args(declared) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return declared


def own_annotations(klass: type) -> dict:
    """Annotations declared directly on ``klass`` (not inherited)."""
    try:
        return dict(inspect.get_annotations(klass))
    except Exception:
        return {}


def is_simple_type(declared: Any) -> bool:
    if not inspect.isclass(declared):
        return False
    return issubclass(declared, SIMPLE_TYPES) or issubclass(declared, Enum)


def is_simple_value(value: Any) -> bool:
    return isinstance(value, SIMPLE_TYPES) or isinstance(value, Enum)


def parse_bool(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered in TRUE_STRINGS:
        return True
    if lowered in FALSE_STRINGS:
        return False
    raise ConversionError(f"Not a boolean: {text!r}")


def parse_enum(text: str, enum_class: Type[Enum]) -> Enum:
    """Case-sensitive lookup by member name, then by member value."""
    try:
        return enum_class[text]
    except KeyError:
        pass
    try:
        return enum_class(text)
    except ValueError:
        raise ConversionError(f"{text!r} is not a member of {enum_class.__name__}") from None


def _parse_datetime(text: str) -> datetime:
    text = text.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def convert(value: Any, target: Any) -> Any:
    """
    Convert ``value`` to ``target``, parsing from string form when needed.

    Unknown targets return the value unchanged.

    Raises:
        ConversionError: If the value cannot be represented as ``target``
    """
    if value is None:
        return None
    target = unwrap_optional(target)
    if target is None or target is Any or target is object or not inspect.isclass(target):
        return value

    try:
        if issubclass(target, Enum):
            if isinstance(value, target):
                return value
            if isinstance(value, str):
                return parse_enum(value, target)
            return target(value)
        if target is bool:
            if isinstance(value, bool):
                return value
            if isinstance(value, str):
                return parse_bool(value)
            return bool(value)
        if target is str:
            if isinstance(value, Enum):
                return value.value if isinstance(value.value, str) else value.name
            if isinstance(value, (date, time)):
                return value.isoformat()
            return str(value)
        if target is int:
            if isinstance(value, str):
                return int(value.strip())
            if isinstance(value, float) and not value.is_integer():
                raise ConversionError(f"Lossy integer conversion: {value!r}")
            return int(value)
        if target is float:
            return float(value.strip() if isinstance(value, str) else value)
        if target is Decimal:
            if isinstance(value, Decimal):
                return value
            return Decimal(str(value).strip())
        if target is datetime:
            if isinstance(value, datetime):
                return value
            if isinstance(value, date):
                return datetime.combine(value, time())
            return _parse_datetime(str(value))
        if target is date:
            if isinstance(value, datetime):
                return value.date()
            if isinstance(value, date):
                return value
            return date.fromisoformat(str(value).strip())
        if target is time:
            if isinstance(value, time):
                return value
            if isinstance(value, datetime):
                return value.time()
            return time.fromisoformat(str(value).strip())
        if target is UUID:
            if isinstance(value, UUID):
                return value
            return UUID(str(value).strip())
    except ConversionError:
        raise
    except (ValueError, TypeError, InvalidOperation, OverflowError) as e:
        raise ConversionError(f"Cannot convert {value!r} to {target.__name__}: {e}") from e

    return value


def try_convert(value: Any, target: Any) -> Optional[Any]:
    """Like :func:`convert` but logs and returns None on failure."""
    try:
        return convert(value, target)
    except ConversionError as e:
        logger.warning("Failed to convert value: %s", e)
        return None
