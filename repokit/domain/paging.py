"""Paged query results and page arithmetic.

PagedResult is produced fresh by every ``get_paged`` call and owned by the
caller.  The count and the item query run as two statements against the
same filter, so under concurrent writes the slice may drift from the count
by the rows written in between; ``is_consistent`` reports whether it did.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .exceptions import InvalidArgumentError

T = TypeVar("T")


def total_pages(total_count: int, page_size: int) -> int:
    """Ceiling division of total_count by page_size."""
    if page_size < 1:
        raise InvalidArgumentError(f"page_size must be >= 1, got {page_size}", operation="total_pages")
    return -(-total_count // page_size)


def page_offset(page_number: int, page_size: int) -> int:
    """Number of rows to skip before ``page_number``."""
    return (page_number - 1) * page_size


def validate_page_request(
    page_number: Any,
    page_size: Any,
    max_page_size: int | None = None,
) -> tuple[int, int]:
    """Check a page request and return ``(page_number, page_size)``.

    Both values must be integers >= 1, and page_size may not exceed
    ``max_page_size``.  The request is never rewritten.
    """
    for name, value in (("page_number", page_number), ("page_size", page_size)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidArgumentError(
                f"{name} must be an integer, got {type(value).__name__}", operation="get_paged"
            )
        if value < 1:
            raise InvalidArgumentError(f"{name} must be >= 1, got {value}", operation="get_paged")
    if max_page_size is not None and page_size > max_page_size:
        raise InvalidArgumentError(
            f"page_size must be <= {max_page_size}, got {page_size}", operation="get_paged"
        )
    return page_number, page_size


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SortCriteria(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str = Field(min_length=1)
    direction: SortDirection = SortDirection.ASC


def parse_order_by(order_by: str | SortCriteria | Iterable[str | SortCriteria] | None) -> list[SortCriteria]:
    """Normalise ``"name"``, ``"-created_at"`` or SortCriteria into a list.

    A leading ``-`` sorts descending.
    """
    if order_by is None:
        return []
    if isinstance(order_by, (str, SortCriteria)):
        order_by = [order_by]
    criteria: list[SortCriteria] = []
    for item in order_by:
        if isinstance(item, SortCriteria):
            criteria.append(item)
            continue
        if not isinstance(item, str) or not item.strip("- "):
            raise InvalidArgumentError(f"Invalid order_by entry {item!r}", operation="order_by")
        item = item.strip()
        if item.startswith("-"):
            criteria.append(SortCriteria(field=item[1:].strip(), direction=SortDirection.DESC))
        else:
            criteria.append(SortCriteria(field=item))
    return criteria


class PagedResult(BaseModel, Generic[T]):
    """One page of a larger result set.

    page_number is 1-based.  A page past the end carries no items but still
    reports the true total_count and total_pages.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    items: list[T]
    page_number: int = Field(ge=1)
    page_size: int = Field(ge=1)
    total_count: int = Field(ge=0)

    @model_validator(mode="after")
    def _items_fit_page(self) -> PagedResult[T]:
        if len(self.items) > self.page_size:
            raise ValueError(f"page holds {len(self.items)} items but page_size is {self.page_size}")
        return self

    @classmethod
    def create(
        cls,
        items: Sequence[T],
        page_number: int,
        page_size: int,
        total_count: int,
    ) -> PagedResult[T]:
        """Named constructor raising InvalidArgumentError instead of ValidationError."""
        validate_page_request(page_number, page_size)
        if isinstance(total_count, bool) or not isinstance(total_count, int) or total_count < 0:
            raise InvalidArgumentError(f"total_count must be >= 0, got {total_count!r}", operation="paged_result")
        if len(items) > page_size:
            raise InvalidArgumentError(
                f"page holds {len(items)} items but page_size is {page_size}", operation="paged_result"
            )
        return cls(items=list(items), page_number=page_number, page_size=page_size, total_count=total_count)

    @classmethod
    def empty(cls, page_number: int = 1, page_size: int = 20, total_count: int = 0) -> PagedResult[T]:
        return cls.create([], page_number, page_size, total_count)

    @property
    def total_pages(self) -> int:
        return total_pages(self.total_count, self.page_size)

    @property
    def has_previous(self) -> bool:
        return self.page_number > 1

    @property
    def has_next(self) -> bool:
        return self.page_number < self.total_pages

    @property
    def count(self) -> int:
        """Number of items on this page."""
        return len(self.items)

    @property
    def is_consistent(self) -> bool:
        """True when the item count matches what total_count implies for this page."""
        remaining = self.total_count - page_offset(self.page_number, self.page_size)
        return len(self.items) == max(0, min(self.page_size, remaining))

    def __len__(self) -> int:
        return len(self.items)
