"""Generic repository base interfaces.

ReadOnlyRepository[T, TId] and Repository[T, TId] are the root abstractions
for data access.  Concrete implementations live in
repokit/infrastructure/persistence/ and are obtained from a unit of work.

Design notes:
  - All data-source methods are async to accommodate async drivers.
  - The public methods validate their arguments and normalise criteria into
    an expression tree once, then delegate to a small set of abstract
    primitives (``_find``, ``_count``, ``_exists`` ...).  Implementations only
    supply the primitives; the derived operations behave identically for
    every backing store.
  - Criteria are a Specification or an expression built with ``field()``.
  - Mutations are staged.  Nothing reaches the data source until the owning
    unit of work saves.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import Any, Generic, TypeVar

from ..exceptions import InvalidArgumentError, MultipleResultsFoundError
from ..identifiers import StronglyTypedId, is_identifier_type
from ..paging import PagedResult, SortCriteria, page_offset, parse_order_by, validate_page_request
from ..specifications import Constant, Criteria, Expression, as_expression

T = TypeVar("T")
TId = TypeVar("TId", bound=StronglyTypedId[Any])

OrderBy = str | SortCriteria | Iterable[str | SortCriteria] | None

logger = logging.getLogger(__name__)

_MATCH_ALL = Constant(True)


class ReadOnlyRepository(ABC, Generic[T, TId]):
    """Query-only access to one entity type keyed by one identifier type."""

    #: name of the identifier attribute on the entity; also the default sort key
    id_field = "id"

    def __init__(
        self,
        entity_type: type[T],
        id_type: type[TId],
        default_page_size: int = 20,
        max_page_size: int = 500,
    ) -> None:
        if not isinstance(entity_type, type):
            raise InvalidArgumentError("entity_type must be a class", operation="repository")
        if not is_identifier_type(id_type):
            raise InvalidArgumentError(
                f"{getattr(id_type, '__name__', id_type)!s} is not a concrete identifier type",
                entity_type=entity_type.__name__,
                operation="repository",
            )
        self.entity_type = entity_type
        self.id_type = id_type
        if not 1 <= default_page_size <= max_page_size:
            raise InvalidArgumentError(
                f"default_page_size must be between 1 and max_page_size ({max_page_size}), got {default_page_size}",
                entity_type=entity_type.__name__,
                operation="repository",
            )
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    @property
    def entity_name(self) -> str:
        return self.entity_type.__name__

    # --- primitives ---------------------------------------------------------

    @abstractmethod
    async def _find_by_id(self, id: TId) -> T | None:
        """Return the entity with the given identifier, or None."""

    @abstractmethod
    async def _find_by_ids(self, ids: Sequence[TId]) -> list[T]:
        """Return the entities whose identifiers are in ``ids`` (no duplicates given)."""

    @abstractmethod
    async def _find(
        self,
        expression: Expression,
        limit: int | None = None,
        offset: int = 0,
        order_by: Sequence[SortCriteria] = (),
    ) -> list[T]:
        """Return entities matching ``expression``."""

    @abstractmethod
    async def _count(self, expression: Expression) -> int:
        """Count entities matching ``expression``."""

    @abstractmethod
    async def _exists(self, expression: Expression) -> bool:
        """True if at least one entity matches ``expression``."""

    # --- argument checks ------------------------------------------------------

    def _check_id(self, id: Any, operation: str) -> TId:
        if id is None:
            raise InvalidArgumentError(
                f"{operation} requires an identifier", entity_type=self.entity_name, operation=operation
            )
        if type(id) is not self.id_type:
            raise InvalidArgumentError(
                f"{operation} expects {self.id_type.__name__}, got {type(id).__name__}",
                entity_type=self.entity_name,
                operation=operation,
            )
        return id

    def _check_entity(self, entity: Any, operation: str) -> T:
        if entity is None:
            raise InvalidArgumentError(
                f"{operation} requires an entity", entity_type=self.entity_name, operation=operation
            )
        if not isinstance(entity, self.entity_type):
            raise InvalidArgumentError(
                f"{operation} expects {self.entity_name}, got {type(entity).__name__}",
                entity_type=self.entity_name,
                operation=operation,
            )
        return entity

    def _check_entities(self, entities: Any, operation: str) -> list[T]:
        if entities is None or isinstance(entities, (str, bytes)) or not isinstance(entities, Iterable):
            raise InvalidArgumentError(
                f"{operation} requires an iterable of entities", entity_type=self.entity_name, operation=operation
            )
        return [self._check_entity(entity, operation) for entity in entities]

    def _expression(self, criteria: Criteria | None, operation: str, required: bool = False) -> Expression:
        if criteria is None:
            if required:
                raise InvalidArgumentError(
                    f"{operation} requires criteria", entity_type=self.entity_name, operation=operation
                )
            return _MATCH_ALL
        try:
            return as_expression(criteria)
        except InvalidArgumentError as exc:
            raise InvalidArgumentError(str(exc), entity_type=self.entity_name, operation=operation) from None

    # --- queries ------------------------------------------------------------------

    async def get_by_id(self, id: TId) -> T | None:
        """Return the entity with the given identifier, or None if not found."""
        return await self._find_by_id(self._check_id(id, "get_by_id"))

    async def get_by_ids(self, ids: Iterable[TId]) -> list[T]:
        """Return the entities that exist; missing identifiers are silently omitted."""
        if ids is None or isinstance(ids, (str, bytes)) or not isinstance(ids, Iterable):
            raise InvalidArgumentError(
                "get_by_ids requires an iterable of identifiers", entity_type=self.entity_name, operation="get_by_ids"
            )
        unique = list(dict.fromkeys(self._check_id(id, "get_by_ids") for id in ids))
        if not unique:
            return []
        return await self._find_by_ids(unique)

    async def get(self, criteria: Criteria, order_by: OrderBy = None) -> list[T]:
        """Return every entity matching ``criteria``."""
        expression = self._expression(criteria, "get", required=True)
        return await self._find(expression, order_by=parse_order_by(order_by))

    async def get_all(self, order_by: OrderBy = None) -> list[T]:
        return await self._find(_MATCH_ALL, order_by=parse_order_by(order_by))

    async def first_or_default(self, criteria: Criteria | None = None, order_by: OrderBy = None) -> T | None:
        """Return the first match (by ``order_by``, else by identifier), or None."""
        expression = self._expression(criteria, "first_or_default")
        rows = await self._find(expression, limit=1, order_by=self._ordering(order_by))
        return rows[0] if rows else None

    async def single_or_default(self, criteria: Criteria | None = None) -> T | None:
        """Return the only match, None if nothing matches.

        Raises MultipleResultsFoundError if more than one entity matches.
        """
        expression = self._expression(criteria, "single_or_default")
        rows = await self._find(expression, limit=2)
        if len(rows) > 1:
            raise MultipleResultsFoundError(self.entity_name, "single_or_default")
        return rows[0] if rows else None

    async def any(self, criteria: Criteria | None = None) -> bool:
        return await self._exists(self._expression(criteria, "any"))

    async def count(self, criteria: Criteria | None = None) -> int:
        return await self._count(self._expression(criteria, "count"))

    async def get_paged(
        self,
        page_number: int,
        page_size: int | None = None,
        criteria: Criteria | None = None,
        order_by: OrderBy = None,
    ) -> PagedResult[T]:
        """Return one page of the entities matching ``criteria``.

        The count and the slice use the same filter.  A page past the end
        returns no items with the true totals.
        """
        if page_size is None:
            page_size = self.default_page_size
        page_number, page_size = validate_page_request(page_number, page_size, self.max_page_size)
        expression = self._expression(criteria, "get_paged")

        total = await self._count(expression)
        offset = page_offset(page_number, page_size)
        items: list[T] = []
        if offset < total:
            items = await self._find(
                expression, limit=page_size, offset=offset, order_by=self._ordering(order_by)
            )
        logger.debug(
            "Paged %s: page=%d size=%d total=%d returned=%d",
            self.entity_name, page_number, page_size, total, len(items),
        )
        return PagedResult.create(items, page_number, page_size, total)

    def _ordering(self, order_by: OrderBy) -> list[SortCriteria]:
        ordering = parse_order_by(order_by)
        return ordering or [SortCriteria(field=self.id_field)]


class Repository(ReadOnlyRepository[T, TId]):
    """Read-write access.  Every mutation is staged until the unit of work saves."""

    @abstractmethod
    async def _stage_add(self, entity: T) -> None:
        """Stage ``entity`` for insertion."""

    @abstractmethod
    async def _stage_update(self, entity: T) -> T:
        """Stage ``entity`` for update and return the tracked instance."""

    @abstractmethod
    async def _stage_remove(self, entity: T) -> None:
        """Stage ``entity`` for deletion."""

    async def _stage_add_range(self, entities: Sequence[T]) -> None:
        for entity in entities:
            await self._stage_add(entity)

    async def add(self, entity: T) -> T:
        entity = self._check_entity(entity, "add")
        await self._stage_add(entity)
        return entity

    async def add_range(self, entities: Iterable[T]) -> list[T]:
        staged = self._check_entities(entities, "add_range")
        if staged:
            await self._stage_add_range(staged)
        return staged

    async def update(self, entity: T) -> T:
        return await self._stage_update(self._check_entity(entity, "update"))

    async def update_range(self, entities: Iterable[T]) -> list[T]:
        staged = self._check_entities(entities, "update_range")
        return [await self._stage_update(entity) for entity in staged]

    async def remove(self, entity: T) -> None:
        await self._stage_remove(self._check_entity(entity, "remove"))

    async def remove_by_id(self, id: TId) -> None:
        """Remove the entity with this identifier; a missing entity is a no-op."""
        entity = await self.get_by_id(self._check_id(id, "remove_by_id"))
        if entity is not None:
            await self._stage_remove(entity)

    async def remove_range(self, entities: Iterable[T]) -> None:
        for entity in self._check_entities(entities, "remove_range"):
            await self._stage_remove(entity)

    async def remove_where(self, criteria: Criteria) -> int:
        """Stage removal of every entity matching ``criteria`` and return how many."""
        matches = await self.get(self._expression(criteria, "remove_where", required=True))
        for entity in matches:
            await self._stage_remove(entity)
        return len(matches)
