"""Shared fixtures: an in-memory SQLite database with the sample tables."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from repokit.infrastructure.database import Base, Settings, build_session_factory
from repokit.infrastructure.persistence.unit_of_work import SqlUnitOfWork

import sample_entities  # noqa: F401  (registers the mapped tables)

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(async_engine)


@pytest_asyncio.fixture
async def test_settings() -> Settings:
    return Settings(default_page_size=10, max_page_size=50)


@pytest_asyncio.fixture
async def uow(session_factory, test_settings) -> AsyncGenerator[SqlUnitOfWork, None]:
    async with SqlUnitOfWork(session_factory(), test_settings) as unit_of_work:
        yield unit_of_work


@pytest_asyncio.fixture
async def seed(session_factory, test_settings):
    """Insert entities through a separate unit of work and commit them."""

    async def _seed(*entities) -> None:
        async with SqlUnitOfWork(session_factory(), test_settings) as unit_of_work:
            for entity in entities:
                await unit_of_work.repository(type(entity)).add(entity)
            await unit_of_work.save_changes()

    return _seed
