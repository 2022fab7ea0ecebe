"""SQLAlchemy unit of work over one AsyncSession.

    async with SqlUnitOfWork(AsyncSessionLocal()) as uow:
        customers = uow.repository(Customer)
        await customers.add(Customer(id=CustomerId(7), name="Ada"))
        await uow.save_changes()

Explicit transactions ride on the session's own transaction (SQLAlchemy
"autobegin"): while one is open, ``save_changes()`` flushes without
committing and the transaction's ``commit()`` makes the work durable.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Mapping
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from repokit.domain.exceptions import (
    DataAccessFailure,
    InvalidArgumentError,
    InvalidOperationError,
    TransactionFailure,
)
from repokit.domain.identifiers import StronglyTypedId
from repokit.domain.repositories.unit_of_work import Transaction, UnitOfWork, UnitOfWorkState
from repokit.infrastructure.database import AsyncSessionLocal, Settings, settings as default_settings

from .repositories import SqlReadOnlyRepository, SqlRepository

T = TypeVar("T")

logger = logging.getLogger(__name__)


class SqlTransaction(Transaction):
    def __init__(self, unit_of_work: SqlUnitOfWork) -> None:
        self._unit_of_work = unit_of_work
        self._active = True

    @property
    def is_active(self) -> bool:
        return self._active

    def _finish(self) -> None:
        self._active = False

    async def commit(self) -> None:
        if not self._active:
            raise InvalidOperationError("Transaction has already completed", operation="commit")
        session = self._unit_of_work.session
        try:
            await session.commit()
        except asyncio.CancelledError:
            await self._unit_of_work._abort("commit cancelled")
            raise
        except SQLAlchemyError as exc:
            await self._unit_of_work._abort(f"commit failed: {exc}")
            raise TransactionFailure(f"Commit failed: {exc}", operation="commit") from exc
        self._unit_of_work._transaction_ended(UnitOfWorkState.COMMITTED)
        logger.debug("Transaction committed")

    async def rollback(self) -> None:
        if not self._active:
            return
        session = self._unit_of_work.session
        try:
            await session.rollback()
        except SQLAlchemyError as exc:
            raise TransactionFailure(f"Rollback failed: {exc}", operation="rollback") from exc
        finally:
            self._unit_of_work._transaction_ended(UnitOfWorkState.ROLLED_BACK)
        logger.debug("Transaction rolled back")


class SqlUnitOfWork(UnitOfWork):
    """Hands out SQL repositories bound to ``session`` and owns its commits.

    ``repository_types`` maps an entity class to a SqlRepository subclass to
    use instead of the generic one.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        repository_types: Mapping[type, type[SqlRepository[Any, Any]]] | None = None,
    ) -> None:
        self.session = session
        # staged changes are counted in save_changes, so they must not be flushed early
        session.sync_session.autoflush = False
        self._settings = settings or default_settings
        self._repository_types = dict(repository_types or {})
        self._repositories: dict[tuple[type, bool], SqlReadOnlyRepository[Any, Any]] = {}
        self._transaction: SqlTransaction | None = None
        self._state = UnitOfWorkState.OPEN
        self._closed = False

    @property
    def state(self) -> UnitOfWorkState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def has_active_transaction(self) -> bool:
        return self._transaction is not None and self._transaction.is_active

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise InvalidOperationError("Unit of work is closed", operation=operation)

    # --- repositories ---------------------------------------------------------

    def _repository(
        self,
        entity_type: type[T],
        id_type: type[StronglyTypedId[Any]] | None,
        read_only: bool,
    ) -> SqlReadOnlyRepository[T, Any]:
        self._ensure_open("repository")
        key = (entity_type, read_only)
        repo = self._repositories.get(key)
        if repo is None:
            repo_type = self._repository_types.get(entity_type)
            if repo_type is None:
                repo_type = SqlReadOnlyRepository if read_only else SqlRepository
            repo = repo_type(
                self.session,
                entity_type,
                id_type,
                default_page_size=self._settings.default_page_size,
                max_page_size=self._settings.max_page_size,
            )
            self._repositories[key] = repo
        elif id_type is not None and id_type is not repo.id_type:
            raise InvalidArgumentError(
                f"{entity_type.__name__} is keyed by {repo.id_type.__name__}, not {id_type.__name__}",
                entity_type=entity_type.__name__,
                operation="repository",
            )
        return repo

    def repository(
        self, entity_type: type[T], id_type: type[StronglyTypedId[Any]] | None = None
    ) -> SqlRepository[T, Any]:
        return self._repository(entity_type, id_type, read_only=False)  # type: ignore[return-value]

    def read_only_repository(
        self, entity_type: type[T], id_type: type[StronglyTypedId[Any]] | None = None
    ) -> SqlReadOnlyRepository[T, Any]:
        return self._repository(entity_type, id_type, read_only=True)

    # --- save / transactions ------------------------------------------------------

    def _pending_count(self) -> int:
        session = self.session
        modified = sum(1 for obj in session.dirty if session.is_modified(obj))
        return len(session.new) + modified + len(session.deleted)

    async def _abort(self, reason: str) -> None:
        """Roll the session back after a failed or cancelled operation."""
        logger.warning("Rolling back unit of work: %s", reason)
        try:
            await self.session.rollback()
        finally:
            if self._transaction is not None:
                self._transaction._finish()
                self._transaction = None
            self._state = UnitOfWorkState.ROLLED_BACK

    def _transaction_ended(self, state: UnitOfWorkState) -> None:
        if self._transaction is not None:
            self._transaction._finish()
        self._transaction = None
        self._state = state

    async def save_changes(self) -> int:
        """Flush staged changes and commit them unless a transaction is open.

        Returns the number of entities inserted, modified or deleted.  A failed
        flush raises DataAccessFailure, a failed commit TransactionFailure;
        either way the work has been rolled back.
        """
        self._ensure_open("save_changes")
        affected = self._pending_count()
        try:
            await self.session.flush()
        except asyncio.CancelledError:
            await self._abort("save_changes cancelled")
            raise
        except SQLAlchemyError as exc:
            await self._abort(f"save_changes failed: {exc}")
            raise DataAccessFailure(f"save_changes failed: {exc}", operation="save_changes") from exc
        if not self.has_active_transaction:
            try:
                await self.session.commit()
            except asyncio.CancelledError:
                await self._abort("save_changes cancelled")
                raise
            except SQLAlchemyError as exc:
                await self._abort(f"commit failed: {exc}")
                raise TransactionFailure(f"Commit failed: {exc}", operation="save_changes") from exc
            self._state = UnitOfWorkState.COMMITTED
        logger.debug("Saved %d change(s)", affected)
        return affected

    async def begin_transaction(self) -> SqlTransaction:
        self._ensure_open("begin_transaction")
        if self.has_active_transaction:
            raise InvalidOperationError("A transaction is already open", operation="begin_transaction")
        self._transaction = SqlTransaction(self)
        self._state = UnitOfWorkState.OPEN
        logger.debug("Transaction started")
        return self._transaction

    async def close(self) -> None:
        if self._closed:
            return
        try:
            if self.has_active_transaction:
                await self._transaction.rollback()  # type: ignore[union-attr]
        finally:
            self._closed = True
            self._repositories.clear()
            await self.session.close()

    async def __aenter__(self) -> SqlUnitOfWork:
        self._ensure_open("enter")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None and not self._closed:
                await self._abort(f"{exc_type.__name__} raised inside unit of work")
        finally:
            await self.close()


async def get_unit_of_work(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[SqlUnitOfWork, None]:
    """Yield a unit of work over a fresh session, closing it afterwards.

    Intended as a request-scoped dependency at the application boundary.
    """
    factory = session_factory or AsyncSessionLocal
    async with SqlUnitOfWork(factory()) as unit_of_work:
        yield unit_of_work
