"""
Concurrent reservations against one event, each in its own session.
"""

import asyncio

import pytest

from app.core.errors import CapacityExceeded, ReservationContention
from app.services import capacity_service


async def _attempt(session_factory, event_id: int, quantity: int) -> bool:
    async with session_factory() as session:
        try:
            await capacity_service.reserve(session, event_id, quantity)
            await session.commit()
            return True
        except (CapacityExceeded, ReservationContention):
            await session.rollback()
            return False


@pytest.mark.asyncio
async def test_concurrent_reserves_never_oversell(session_factory, db_session, test_event):
    results = await asyncio.gather(
        *[_attempt(session_factory, test_event.id, 10) for _ in range(15)]
    )

    capacity = await capacity_service.get_capacity(db_session, test_event.id)
    assert sum(results) * 10 == capacity.blocked_capacity
    assert capacity.blocked_capacity <= capacity.ceiling
    assert capacity.available_capacity >= 0
    assert capacity.available_capacity + capacity.blocked_capacity <= capacity.ceiling


@pytest.mark.asyncio
async def test_concurrent_reserves_respect_overbooking_ceiling(
    session_factory, db_session, overbooked_event
):
    results = await asyncio.gather(
        *[_attempt(session_factory, overbooked_event.id, 5) for _ in range(30)]
    )

    capacity = await capacity_service.get_capacity(db_session, overbooked_event.id)
    assert sum(results) * 5 == capacity.blocked_capacity
    assert capacity.blocked_capacity <= 110


@pytest.mark.asyncio
async def test_concurrent_release_returns_units_once(session_factory, db_session, test_event):
    hold = await capacity_service.reserve(db_session, test_event.id, 20)
    await db_session.commit()

    async def _release():
        async with session_factory() as session:
            _, changed = await capacity_service.release_hold(session, hold.id)
            await session.commit()
            return changed

    results = await asyncio.gather(*[_release() for _ in range(5)])

    assert sum(results) == 1
    capacity = await capacity_service.get_capacity(db_session, test_event.id)
    assert capacity.blocked_capacity == 0
    assert capacity.available_capacity == 100
