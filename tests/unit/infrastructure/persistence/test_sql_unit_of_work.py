"""Tests for SqlUnitOfWork / SqlTransaction.

Commit and rollback paths run against in-memory SQLite; failure and
cancellation paths use an AsyncMock session.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from repokit.domain.exceptions import (
    DataAccessFailure,
    InvalidArgumentError,
    InvalidOperationError,
    TransactionFailure,
)
from repokit.domain.repositories.unit_of_work import UnitOfWorkState
from repokit.infrastructure.persistence.repositories import SqlReadOnlyRepository, SqlRepository
from repokit.infrastructure.persistence.unit_of_work import SqlUnitOfWork, get_unit_of_work
from sample_entities import Gadget, OrderId, Widget, WidgetId, widget


def _mock_session():
    session = AsyncMock()
    session.new = []
    session.dirty = []
    session.deleted = []
    session.sync_session = MagicMock()
    return session


async def _count_widgets(session_factory) -> int:
    async with session_factory() as session:
        return await SqlReadOnlyRepository(session, Widget).count()


# --- repositories ---

async def test_repository_is_created_once_per_entity_type(uow):
    assert uow.repository(Widget) is uow.repository(Widget, WidgetId)
    assert uow.read_only_repository(Widget) is uow.read_only_repository(Widget)
    assert uow.repository(Widget) is not uow.repository(Gadget)


async def test_read_only_repository_has_no_mutations(uow):
    repo = uow.read_only_repository(Widget)
    assert isinstance(repo, SqlReadOnlyRepository)
    assert not isinstance(repo, SqlRepository)


async def test_repository_rejects_mismatched_identifier_type(uow):
    uow.repository(Widget)
    with pytest.raises(InvalidArgumentError):
        uow.repository(Widget, OrderId)


async def test_custom_repository_type_is_used(session_factory, test_settings):
    class WidgetRepository(SqlRepository):
        async def cheapest(self):
            return await self.first_or_default(order_by="price")

    async with SqlUnitOfWork(session_factory(), test_settings, {Widget: WidgetRepository}) as uow:
        repo = uow.repository(Widget)
        assert isinstance(repo, WidgetRepository)
        assert await repo.cheapest() is None


async def test_repositories_share_the_session(uow):
    assert uow.repository(Widget)._session is uow.session
    assert uow.read_only_repository(Gadget)._session is uow.session


# --- save_changes ---

async def test_save_changes_commits_and_reports_count(uow, session_factory):
    await uow.repository(Widget).add_range([widget(1), widget(2)])
    assert uow.state is UnitOfWorkState.OPEN
    assert await uow.save_changes() == 2
    assert uow.state is UnitOfWorkState.COMMITTED
    assert await _count_widgets(session_factory) == 2


async def test_save_changes_with_nothing_staged_returns_zero(uow):
    assert await uow.save_changes() == 0


async def test_save_changes_failure_rolls_back(uow, seed, session_factory):
    await seed(widget(1))
    await uow.repository(Widget).add_range([widget(1), widget(2)])
    with pytest.raises(DataAccessFailure) as exc_info:
        await uow.save_changes()
    assert exc_info.value.operation == "save_changes"
    assert uow.state is UnitOfWorkState.ROLLED_BACK
    assert await _count_widgets(session_factory) == 1


async def test_save_changes_wraps_flush_errors():
    session = _mock_session()
    session.flush.side_effect = OperationalError("INSERT", {}, Exception("disk full"))
    uow = SqlUnitOfWork(session)
    with pytest.raises(DataAccessFailure):
        await uow.save_changes()
    session.rollback.assert_awaited_once()
    session.commit.assert_not_awaited()
    assert uow.state is UnitOfWorkState.ROLLED_BACK


async def test_save_changes_commit_failure_raises_transaction_failure():
    session = _mock_session()
    session.commit.side_effect = OperationalError("COMMIT", {}, Exception("serialization failure"))
    uow = SqlUnitOfWork(session)
    with pytest.raises(TransactionFailure) as exc_info:
        await uow.save_changes()
    assert exc_info.value.operation == "save_changes"
    session.flush.assert_awaited_once()
    session.rollback.assert_awaited_once()
    assert uow.state is UnitOfWorkState.ROLLED_BACK


async def test_cancelled_save_rolls_back_and_propagates():
    session = _mock_session()
    session.flush.side_effect = asyncio.CancelledError()
    uow = SqlUnitOfWork(session)
    with pytest.raises(asyncio.CancelledError):
        await uow.save_changes()
    session.rollback.assert_awaited_once()
    assert uow.state is UnitOfWorkState.ROLLED_BACK


async def test_unit_of_work_disables_autoflush():
    session = _mock_session()
    SqlUnitOfWork(session)
    assert session.sync_session.autoflush is False


# --- transactions ---

async def test_transaction_defers_commit_until_commit(uow, session_factory):
    transaction = await uow.begin_transaction()
    await uow.repository(Widget).add(widget(1))
    assert await uow.save_changes() == 1
    assert uow.state is UnitOfWorkState.OPEN
    await transaction.commit()
    assert uow.state is UnitOfWorkState.COMMITTED
    assert not transaction.is_active
    assert await _count_widgets(session_factory) == 1


async def test_transaction_rollback_discards_saved_work(uow, session_factory):
    transaction = await uow.begin_transaction()
    await uow.repository(Widget).add(widget(1))
    await uow.save_changes()
    await transaction.rollback()
    assert uow.state is UnitOfWorkState.ROLLED_BACK
    assert await _count_widgets(session_factory) == 0


async def test_rollback_is_idempotent(uow):
    transaction = await uow.begin_transaction()
    await transaction.rollback()
    await transaction.rollback()
    assert not uow.has_active_transaction


async def test_commit_after_completion_is_invalid(uow):
    transaction = await uow.begin_transaction()
    await transaction.commit()
    with pytest.raises(InvalidOperationError):
        await transaction.commit()


async def test_nested_transaction_is_rejected(uow):
    await uow.begin_transaction()
    with pytest.raises(InvalidOperationError):
        await uow.begin_transaction()


async def test_transaction_context_manager(uow, session_factory):
    async with await uow.begin_transaction():
        await uow.repository(Widget).add(widget(1))
        await uow.save_changes()
    assert uow.state is UnitOfWorkState.COMMITTED
    assert await _count_widgets(session_factory) == 1


async def test_commit_failure_raises_transaction_failure():
    session = _mock_session()
    session.commit.side_effect = OperationalError("COMMIT", {}, Exception("lock timeout"))
    uow = SqlUnitOfWork(session)
    transaction = await uow.begin_transaction()
    with pytest.raises(TransactionFailure):
        await transaction.commit()
    session.rollback.assert_awaited_once()
    assert uow.state is UnitOfWorkState.ROLLED_BACK
    assert not transaction.is_active


async def test_execute_in_transaction_commits(uow, session_factory):
    async def work():
        await uow.repository(Widget).add_range([widget(1), widget(2)])
        return await uow.save_changes()

    assert await uow.execute_in_transaction(work) == 2
    assert uow.state is UnitOfWorkState.COMMITTED
    assert await _count_widgets(session_factory) == 2


async def test_execute_in_transaction_rolls_back_on_error(uow, session_factory):
    async def work():
        await uow.repository(Widget).add(widget(1))
        await uow.save_changes()
        raise RuntimeError("abort")

    with pytest.raises(RuntimeError):
        await uow.execute_in_transaction(work)
    assert uow.state is UnitOfWorkState.ROLLED_BACK
    assert await _count_widgets(session_factory) == 0


# --- lifecycle ---

async def test_closed_unit_of_work_rejects_use(session_factory):
    uow = SqlUnitOfWork(session_factory())
    await uow.close()
    assert uow.is_closed
    with pytest.raises(InvalidOperationError):
        uow.repository(Widget)
    with pytest.raises(InvalidOperationError):
        await uow.save_changes()
    with pytest.raises(InvalidOperationError):
        await uow.begin_transaction()


async def test_context_exit_on_error_rolls_back_and_closes():
    session = _mock_session()
    with pytest.raises(ValueError):
        async with SqlUnitOfWork(session) as uow:
            raise ValueError("boom")
    session.rollback.assert_awaited()
    session.close.assert_awaited_once()
    assert uow.state is UnitOfWorkState.ROLLED_BACK
    assert uow.is_closed


async def test_close_rolls_back_open_transaction():
    session = _mock_session()
    uow = SqlUnitOfWork(session)
    transaction = await uow.begin_transaction()
    await uow.close()
    assert not transaction.is_active
    session.rollback.assert_awaited_once()
    session.close.assert_awaited_once()


async def test_get_unit_of_work_yields_and_closes(session_factory):
    generator = get_unit_of_work(session_factory)
    uow = await generator.__anext__()
    assert isinstance(uow, SqlUnitOfWork)
    assert await uow.repository(Widget).get_by_id(WidgetId(1)) is None
    with pytest.raises(StopAsyncIteration):
        await generator.__anext__()
    assert uow.is_closed
