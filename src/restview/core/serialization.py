"""Plain-data rendering of projected values (for comparison and JSON output)."""

import dataclasses
import json
from datetime import date, time
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Set
from uuid import UUID

from pydantic import BaseModel

from restview.core.lazy import LazyReference
from restview.core.shapes import ShapeView


def to_plain(value: Any, _seen: Optional[Set[int]] = None) -> Any:
    """
    Convert a projected value into JSON-compatible data.

    Sets are rendered as sorted lists so equal values serialize identically.
    Objects already on the current path render as None.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return value.value if isinstance(value.value, (str, int, float)) else value.name
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, LazyReference):
        return {"id": to_plain(value.identity)} if not value.is_loaded else to_plain(value.resolve(), _seen)

    seen = _seen if _seen is not None else set()
    marker = id(value)
    if marker in seen:
        return None
    seen.add(marker)
    try:
        if isinstance(value, ShapeView):
            return {k: to_plain(v, seen) for k, v in value.to_dict().items()}
        if isinstance(value, BaseModel):
            return {name: to_plain(getattr(value, name, None), seen) for name in type(value).model_fields}
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return {f.name: to_plain(getattr(value, f.name, None), seen) for f in dataclasses.fields(value)}
        if isinstance(value, dict):
            return {str(k): to_plain(v, seen) for k, v in value.items()}
        if isinstance(value, (set, frozenset)):
            items = [to_plain(v, seen) for v in value]
            return sorted(items, key=_sort_key)
        if isinstance(value, (list, tuple)):
            return [to_plain(v, seen) for v in value]
        attributes = getattr(value, "__dict__", None)
        if attributes is not None:
            return {k: to_plain(v, seen) for k, v in attributes.items() if not k.startswith("_")}
        return str(value)
    finally:
        seen.discard(marker)


def _sort_key(item: Any) -> str:
    return json.dumps(item, sort_keys=True, default=str)


def to_json(value: Any, indent: Optional[int] = None) -> str:
    return json.dumps(to_plain(value), sort_keys=True, indent=indent, default=str)
