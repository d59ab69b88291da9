"""
Pytest fixtures for test database, client, and seeded events.

Each test gets a fresh schema. By default that is a throwaway SQLite
file; set TEST_DATABASE_URL to run the suite against PostgreSQL.
"""

import os

# Tests never need Redis or the background sweep
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("RECONCILIATION_ENABLED", "false")

from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app.main import app
from app.db.base import Base
from app.db.session import get_db, transaction
from app.models.event import Event
from app.schemas.capacity import CapacityConfigure
from app.services import capacity_service


def _test_database_url(tmp_path) -> str:
    return os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create tables, yield the engine, then drop tables for isolation."""
    url = _test_database_url(tmp_path)
    options = {"connect_args": {"timeout": 30}} if url.startswith("sqlite") else {}
    engine = create_async_engine(url, echo=False, **options)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get their own test-database session."""

    async def override_get_db():
        async with transaction(session_factory) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _create_event(db_session: AsyncSession, title: str) -> Event:
    event = Event(
        title=title,
        description="A test event",
        date=datetime.now(timezone.utc) + timedelta(days=30),
        location="Test Venue",
        organizer_id=1,
    )
    db_session.add(event)
    await db_session.commit()
    await db_session.refresh(event)
    return event


async def _configure(db_session: AsyncSession, event_id: int, **config) -> None:
    await capacity_service.configure_capacity(db_session, event_id, CapacityConfigure(**config))
    await db_session.commit()


@pytest_asyncio.fixture
async def test_event(db_session: AsyncSession) -> Event:
    """Event with 100 seats and no overbooking."""
    event = await _create_event(db_session, "Test Concert")
    await _configure(db_session, event.id, total_capacity=100)
    return event


@pytest_asyncio.fixture
async def overbooked_event(db_session: AsyncSession) -> Event:
    """Event with 100 seats and 10% overbooking (ceiling 110)."""
    event = await _create_event(db_session, "Overbooked Show")
    await _configure(
        db_session,
        event.id,
        total_capacity=100,
        overbooking_enabled=True,
        overbooking_percentage=10,
    )
    return event


@pytest_asyncio.fixture
async def unconfigured_event(db_session: AsyncSession) -> Event:
    """Event without a capacity record."""
    return await _create_event(db_session, "Unconfigured Meetup")
