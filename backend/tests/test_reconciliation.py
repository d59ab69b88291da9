"""
Tests for the expired-hold reconciliation sweep.
"""

import pytest
from datetime import timedelta

from app.db.base import utcnow
from app.models.group_registration import GroupRegistrationStatus
from app.models.hold import HoldStatus, ReleaseReason
from app.schemas.reservation import ReservationCreate
from app.services import capacity_service, reservation_service
from app.services.reconciliation_service import run_reconciliation


@pytest.mark.asyncio
async def test_sweep_releases_only_expired_holds(db_session, test_event):
    start = utcnow()
    old = await capacity_service.reserve(db_session, test_event.id, 10, now=start)
    fresh = await capacity_service.reserve(
        db_session, test_event.id, 5, now=start + timedelta(minutes=10)
    )

    summary = await run_reconciliation(db_session, now=start + timedelta(minutes=16))

    assert summary["scanned"] == 1
    assert summary["released"] == 1
    old = await capacity_service.get_hold(db_session, old.id)
    fresh = await capacity_service.get_hold(db_session, fresh.id)
    assert old.status == HoldStatus.RELEASED.value
    assert old.released_reason == ReleaseReason.EXPIRED.value
    assert fresh.status == HoldStatus.ACTIVE.value

    capacity = await capacity_service.get_capacity(db_session, test_event.id)
    assert capacity.blocked_capacity == 5
    assert capacity.available_capacity == 95


@pytest.mark.asyncio
async def test_sweep_expires_registration_and_restores_capacity(db_session, test_event):
    start = utcnow()
    registration = await reservation_service.create_reservation(
        db_session,
        ReservationCreate(event_id=test_event.id, quantity=8, organizer_id=3),
        now=start,
    )
    assert registration.status == GroupRegistrationStatus.PENDIENTE_PAGO.value

    summary = await run_reconciliation(db_session, now=start + timedelta(hours=1))
    assert summary["expired_registrations"] == 1

    registration = await reservation_service.get_reservation(db_session, registration.group_code)
    assert registration.status == GroupRegistrationStatus.EXPIRADO.value
    capacity = await capacity_service.get_capacity(db_session, test_event.id)
    assert capacity.available_capacity == 100


@pytest.mark.asyncio
async def test_second_sweep_is_a_noop(db_session, test_event):
    start = utcnow()
    await capacity_service.reserve(db_session, test_event.id, 4, now=start)
    later = start + timedelta(hours=1)

    first = await run_reconciliation(db_session, now=later)
    second = await run_reconciliation(db_session, now=later)

    assert first["released"] == 1
    assert second["scanned"] == 0
    capacity = await capacity_service.get_capacity(db_session, test_event.id)
    assert capacity.blocked_capacity == 0


@pytest.mark.asyncio
async def test_sweep_skips_consumed_holds(db_session, test_event):
    start = utcnow()
    registration = await reservation_service.create_reservation(
        db_session,
        ReservationCreate(event_id=test_event.id, quantity=2, organizer_id=3),
        now=start,
    )
    await reservation_service.confirm_reservation(
        db_session, registration.group_code, now=start + timedelta(minutes=1)
    )

    summary = await run_reconciliation(db_session, now=start + timedelta(hours=1))
    assert summary["scanned"] == 0

    registration = await reservation_service.get_reservation(db_session, registration.group_code)
    assert registration.status == GroupRegistrationStatus.CONFIRMADO.value


@pytest.mark.asyncio
async def test_sweep_respects_batch_size(db_session, test_event):
    start = utcnow()
    for _ in range(3):
        await capacity_service.reserve(db_session, test_event.id, 1, now=start)

    summary = await run_reconciliation(db_session, now=start + timedelta(hours=1), batch_size=2)
    assert summary["released"] == 2

    capacity = await capacity_service.get_capacity(db_session, test_event.id)
    assert capacity.blocked_capacity == 1
