"""SQLAlchemy implementation of ReadOnlyRepository."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any, TypeVar

from sqlalchemy import func, inspect, select
from sqlalchemy.exc import NoInspectionAvailable, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from repokit.domain.exceptions import DataAccessFailure, InvalidArgumentError
from repokit.domain.identifiers import StronglyTypedId
from repokit.domain.paging import SortCriteria
from repokit.domain.repositories.base import ReadOnlyRepository
from repokit.domain.specifications import Expression

from ..specifications import order_clauses, to_sql
from ..types import identifier_type_of

T = TypeVar("T")
TId = TypeVar("TId", bound=StronglyTypedId[Any])

logger = logging.getLogger(__name__)


class SqlReadOnlyRepository(ReadOnlyRepository[T, TId]):
    """Queries over one mapped class whose primary key is an IdentifierType column.

    Entities are the mapped instances themselves, tracked by ``session``.
    """

    def __init__(
        self,
        session: AsyncSession,
        entity_type: type[T],
        id_type: type[TId] | None = None,
        default_page_size: int = 20,
        max_page_size: int = 500,
    ) -> None:
        try:
            mapper = inspect(entity_type)
        except NoInspectionAvailable:
            name = getattr(entity_type, "__name__", repr(entity_type))
            raise InvalidArgumentError(
                f"{name} is not a mapped class", entity_type=name, operation="repository"
            ) from None
        id_field, mapped_id_type = identifier_type_of(mapper)
        if id_type is not None and id_type is not mapped_id_type:
            raise InvalidArgumentError(
                f"{entity_type.__name__} is keyed by {mapped_id_type.__name__}, not {id_type.__name__}",
                entity_type=entity_type.__name__,
                operation="repository",
            )
        super().__init__(entity_type, mapped_id_type, default_page_size, max_page_size)
        self._session = session
        self.id_field = id_field
        self._id_column = getattr(entity_type, id_field)

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.debug("%s.%s failed: %s", self.entity_name, operation, exc)
            raise DataAccessFailure(
                f"{operation} on {self.entity_name} failed: {exc}",
                entity_type=self.entity_name,
                operation=operation,
            ) from exc

    async def _find_by_id(self, id: TId) -> T | None:
        with self._guard("get_by_id"):
            return await self._session.get(self.entity_type, id)

    async def _find_by_ids(self, ids: Sequence[TId]) -> list[T]:
        stmt = select(self.entity_type).where(self._id_column.in_(list(ids)))
        with self._guard("get_by_ids"):
            result = await self._session.execute(stmt)
            return list(result.scalars())

    async def _find(
        self,
        expression: Expression,
        limit: int | None = None,
        offset: int = 0,
        order_by: Sequence[SortCriteria] = (),
    ) -> list[T]:
        stmt = select(self.entity_type).where(to_sql(self.entity_type, expression))
        if order_by:
            stmt = stmt.order_by(*order_clauses(self.entity_type, list(order_by)))
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        with self._guard("get"):
            result = await self._session.execute(stmt)
            return list(result.scalars())

    async def _count(self, expression: Expression) -> int:
        stmt = select(func.count()).select_from(self.entity_type).where(to_sql(self.entity_type, expression))
        with self._guard("count"):
            result = await self._session.execute(stmt)
            return result.scalar_one()

    async def _exists(self, expression: Expression) -> bool:
        stmt = select(self._id_column).where(to_sql(self.entity_type, expression)).limit(1)
        with self._guard("any"):
            result = await self._session.execute(stmt)
            return result.first() is not None
