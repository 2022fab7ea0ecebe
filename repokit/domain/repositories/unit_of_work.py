"""Unit of work and transaction interfaces.

A unit of work owns one data-source session.  It hands out repositories
bound to that session, counts and persists their staged changes in
``save_changes()``, and controls explicit transactions.

State machine:

    OPEN --save_changes / commit--> COMMITTED
    OPEN --rollback / failure / cancellation--> ROLLED_BACK

COMMITTED and ROLLED_BACK describe the last boundary crossed; the unit of
work stays usable for further work until it is closed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar

from ..identifiers import StronglyTypedId
from .base import ReadOnlyRepository, Repository

T = TypeVar("T")
R = TypeVar("R")


class UnitOfWorkState(str, Enum):
    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class Transaction(ABC):
    """An explicit transaction opened by ``UnitOfWork.begin_transaction()``."""

    @property
    @abstractmethod
    def is_active(self) -> bool:
        """True until commit or rollback completes."""

    @abstractmethod
    async def commit(self) -> None:
        """Commit.  On failure the transaction is rolled back and TransactionFailure raised."""

    @abstractmethod
    async def rollback(self) -> None:
        """Roll back.  Calling it on a finished transaction is a no-op."""

    async def __aenter__(self) -> Transaction:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if not self.is_active:
            return
        if exc_type is None:
            await self.commit()
        else:
            await self.rollback()


class UnitOfWork(ABC):
    """Aggregates repositories and owns the save/transaction boundary."""

    @property
    @abstractmethod
    def state(self) -> UnitOfWorkState: ...

    @abstractmethod
    def repository(
        self, entity_type: type[T], id_type: type[StronglyTypedId[Any]] | None = None
    ) -> Repository[T, Any]:
        """Return the repository for ``entity_type``, created once per unit of work."""

    @abstractmethod
    def read_only_repository(
        self, entity_type: type[T], id_type: type[StronglyTypedId[Any]] | None = None
    ) -> ReadOnlyRepository[T, Any]:
        """Return a query-only repository for ``entity_type``."""

    @abstractmethod
    async def save_changes(self) -> int:
        """Persist staged changes and return the number of affected entities."""

    @abstractmethod
    async def begin_transaction(self) -> Transaction:
        """Open an explicit transaction.  Only one may be open at a time."""

    @abstractmethod
    async def close(self) -> None:
        """Release the session, rolling back anything uncommitted."""

    async def execute_in_transaction(self, fn: Callable[[], Awaitable[R]]) -> R:
        """Run ``fn`` inside a transaction.

        Commits when ``fn`` returns; rolls back and re-raises when it raises
        or is cancelled.  ``fn`` should call ``save_changes()`` for the work
        it stages.
        """
        transaction = await self.begin_transaction()
        try:
            result = await fn()
        except BaseException:
            await transaction.rollback()
            raise
        await transaction.commit()
        return result

    async def __aenter__(self) -> UnitOfWork:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
