"""SQLAlchemy implementation of Repository.

Mutations only touch the session's unit-of-work state (``session.new``,
``session.dirty``, ``session.deleted``).  Nothing is flushed here; the owning
SqlUnitOfWork flushes and commits in ``save_changes()``.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, TypeVar

from repokit.domain.identifiers import StronglyTypedId
from repokit.domain.repositories.base import Repository

from .read_only import SqlReadOnlyRepository

T = TypeVar("T")
TId = TypeVar("TId", bound=StronglyTypedId[Any])


class SqlRepository(SqlReadOnlyRepository[T, TId], Repository[T, TId]):
    async def _stage_add(self, entity: T) -> None:
        self._session.add(entity)

    async def _stage_add_range(self, entities: Sequence[T]) -> None:
        self._session.add_all(entities)

    async def _stage_update(self, entity: T) -> T:
        # Tracked instances are picked up by the flush as they are; detached
        # ones are merged onto the persistent copy.
        if entity in self._session:
            return entity
        with self._guard("update"):
            return await self._session.merge(entity)

    async def _stage_remove(self, entity: T) -> None:
        if entity not in self._session:
            with self._guard("remove"):
                entity = await self._session.merge(entity)
        if entity in self._session.new:
            # never persisted: cancelling the insert is the removal
            self._session.expunge(entity)
            return
        with self._guard("remove"):
            await self._session.delete(entity)
