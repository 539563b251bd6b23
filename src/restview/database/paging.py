"""Page request/response models."""

import math
from dataclasses import dataclass, field
from typing import Callable, Generic, List, Tuple, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 1000


class PageSpec(BaseModel):
    """Requested page: zero-based index, size and sort orders."""

    page: int = Field(default=0, ge=0, description="Zero-based page index")
    size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Items per page")
    sort: List[str] = Field(
        default_factory=list,
        description='Sort orders such as "name", "name,desc" or "-name"',
    )

    @property
    def offset(self) -> int:
        return self.page * self.size

    def sort_orders(self) -> List[Tuple[str, bool]]:
        """Parsed ``(attribute, descending)`` pairs, in request order."""
        orders: List[Tuple[str, bool]] = []
        for raw in self.sort:
            text = raw.strip()
            if not text:
                continue
            descending = False
            if text.startswith("-"):
                text, descending = text[1:], True
            if "," in text:
                text, direction = (part.strip() for part in text.split(",", 1))
                descending = direction.lower() == "desc"
            if text:
                orders.append((text, descending))
        return orders


@dataclass
class Page(Generic[T]):
    """One page of results plus the total match count."""

    items: List[T] = field(default_factory=list)
    total: int = 0
    page: int = 0
    size: int = DEFAULT_PAGE_SIZE

    @property
    def total_pages(self) -> int:
        if self.size <= 0:
            return 0
        return math.ceil(self.total / self.size)

    def map(self, fn: Callable[[T], R]) -> "Page[R]":
        return Page(items=[fn(item) for item in self.items], total=self.total, page=self.page, size=self.size)

