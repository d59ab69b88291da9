"""
Tests for capacity accounting: reserve, release, confirm and configuration.
"""

import pytest
from datetime import timedelta

from app.core.errors import (
    CapacityConfigurationError,
    CapacityExceeded,
    CapacityNotConfigured,
    HoldExpired,
    InvalidHoldTransition,
)
from app.db.base import utcnow
from app.models.capacity import capacity_ceiling
from app.models.hold import HOLD_TRANSITIONS, HoldStatus, ReleaseReason
from app.schemas.capacity import CapacityConfigure
from app.services import capacity_service


@pytest.mark.asyncio
async def test_fill_to_capacity_then_reject(db_session, test_event):
    """total=100, no overbooking: 100 fits, the 101st unit does not."""
    await capacity_service.reserve(db_session, test_event.id, 100)

    capacity = await capacity_service.get_capacity(db_session, test_event.id)
    assert capacity.available_capacity == 0
    assert capacity.blocked_capacity == 100

    with pytest.raises(CapacityExceeded):
        await capacity_service.reserve(db_session, test_event.id, 1)


@pytest.mark.asyncio
async def test_overbooking_allowance(db_session, overbooked_event):
    """total=100 with 10% overbooking: 100 + 10 fit, one more does not."""
    await capacity_service.reserve(db_session, overbooked_event.id, 100)
    await capacity_service.reserve(db_session, overbooked_event.id, 10)

    capacity = await capacity_service.get_capacity(db_session, overbooked_event.id)
    assert capacity.blocked_capacity == 110
    assert capacity.available_capacity == 0
    assert capacity.is_full

    with pytest.raises(CapacityExceeded) as exc_info:
        await capacity_service.reserve(db_session, overbooked_event.id, 1)
    assert exc_info.value.context["ceiling"] == 110


def test_overbooking_allowance_rounds_down():
    assert capacity_ceiling(15, True, 10) == 16
    assert capacity_ceiling(15, False, 10) == 15
    assert capacity_ceiling(100, True, 0) == 100


@pytest.mark.asyncio
async def test_reserve_creates_active_hold(db_session, test_event):
    now = utcnow()
    hold = await capacity_service.reserve(db_session, test_event.id, 4, now=now)

    assert hold.status == HoldStatus.ACTIVE.value
    assert hold.quantity == 4
    assert hold.expires_at == now + timedelta(minutes=15)


@pytest.mark.asyncio
async def test_reserve_then_release_restores_available(db_session, test_event):
    before = await capacity_service.get_capacity(db_session, test_event.id)
    available_before = before.available_capacity

    hold = await capacity_service.reserve(db_session, test_event.id, 7)
    await capacity_service.release(db_session, hold.id, ReleaseReason.CANCELLED)

    after = await capacity_service.get_capacity(db_session, test_event.id)
    assert after.available_capacity == available_before
    assert after.blocked_capacity == 0


@pytest.mark.asyncio
async def test_release_is_idempotent(db_session, test_event):
    hold = await capacity_service.reserve(db_session, test_event.id, 5)

    _, changed = await capacity_service.release_hold(db_session, hold.id)
    assert changed is True
    _, changed = await capacity_service.release_hold(db_session, hold.id)
    assert changed is False

    capacity = await capacity_service.get_capacity(db_session, test_event.id)
    assert capacity.blocked_capacity == 0
    assert capacity.available_capacity == 100


@pytest.mark.asyncio
async def test_confirm_keeps_counters(db_session, test_event):
    hold = await capacity_service.reserve(db_session, test_event.id, 3)

    consumed = await capacity_service.confirm(db_session, hold.id)
    assert consumed.status == HoldStatus.CONSUMED.value
    assert consumed.consumed_at is not None

    capacity = await capacity_service.get_capacity(db_session, test_event.id)
    assert capacity.blocked_capacity == 3
    assert capacity.available_capacity == 97


@pytest.mark.asyncio
async def test_expired_hold_cannot_be_consumed(db_session, test_event):
    now = utcnow()
    hold = await capacity_service.reserve(db_session, test_event.id, 2, now=now)

    with pytest.raises(HoldExpired):
        await capacity_service.confirm(db_session, hold.id, now=hold.expires_at)

    hold = await capacity_service.get_hold(db_session, hold.id)
    assert hold.status == HoldStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_terminal_holds_reject_transitions(db_session, test_event):
    released = await capacity_service.reserve(db_session, test_event.id, 1)
    await capacity_service.release(db_session, released.id)
    with pytest.raises(InvalidHoldTransition):
        await capacity_service.confirm(db_session, released.id)

    consumed = await capacity_service.reserve(db_session, test_event.id, 1)
    await capacity_service.confirm(db_session, consumed.id)
    with pytest.raises(InvalidHoldTransition):
        await capacity_service.confirm(db_session, consumed.id)
    with pytest.raises(InvalidHoldTransition):
        await capacity_service.release(db_session, consumed.id)


@pytest.mark.asyncio
async def test_hold_transition_table_is_enforced(db_session, test_event, monkeypatch):
    """Services consult HOLD_TRANSITIONS rather than hard-coded statuses."""
    hold = await capacity_service.reserve(db_session, test_event.id, 2)
    monkeypatch.setitem(HOLD_TRANSITIONS, HoldStatus.ACTIVE, frozenset({HoldStatus.RELEASED}))

    with pytest.raises(InvalidHoldTransition):
        await capacity_service.confirm(db_session, hold.id)
    hold = await capacity_service.get_hold(db_session, hold.id)
    assert hold.status == HoldStatus.ACTIVE.value

    monkeypatch.setitem(HOLD_TRANSITIONS, HoldStatus.ACTIVE, frozenset({HoldStatus.CONSUMED}))
    with pytest.raises(InvalidHoldTransition):
        await capacity_service.release(db_session, hold.id)
    capacity = await capacity_service.get_capacity(db_session, test_event.id)
    assert capacity.blocked_capacity == 2


@pytest.mark.asyncio
async def test_reserve_without_capacity_record(db_session, unconfigured_event):
    with pytest.raises(CapacityNotConfigured):
        await capacity_service.reserve(db_session, unconfigured_event.id, 1)


@pytest.mark.asyncio
async def test_reconfigure_below_held_capacity_is_refused(db_session, test_event):
    await capacity_service.reserve(db_session, test_event.id, 60)

    with pytest.raises(CapacityConfigurationError):
        await capacity_service.configure_capacity(
            db_session, test_event.id, CapacityConfigure(total_capacity=50)
        )

    capacity = await capacity_service.configure_capacity(
        db_session, test_event.id, CapacityConfigure(total_capacity=80)
    )
    assert capacity.total_capacity == 80
    assert capacity.blocked_capacity == 60
    assert capacity.available_capacity == 20


@pytest.mark.asyncio
async def test_validate_capacity_hints(db_session, overbooked_event):
    await capacity_service.reserve(db_session, overbooked_event.id, 100)

    result = await capacity_service.validate_capacity(db_session, overbooked_event.id, 5)
    assert result["is_valid"] is True
    assert result["uses_overbooking"] is True
    assert result["available_spots"] == 10

    result = await capacity_service.validate_capacity(db_session, overbooked_event.id, 11)
    assert result["is_valid"] is False
    assert result["waitlist_available"] is True


@pytest.mark.asyncio
async def test_alert_level_rises_with_utilization(db_session, test_event):
    await capacity_service.reserve(db_session, test_event.id, 85)
    status = await capacity_service.get_capacity_status(db_session, test_event.id)
    assert status["utilization_percentage"] == 85
    assert status["current_alert_level"] == "low"

    await capacity_service.reserve(db_session, test_event.id, 10)
    status = await capacity_service.get_capacity_status(db_session, test_event.id)
    assert status["current_alert_level"] == "high"
    assert status["held_capacity"] == 95
    assert status["active_holds"] == 2


@pytest.mark.asyncio
async def test_deactivated_capacity_is_not_found(db_session, test_event):
    await capacity_service.deactivate_capacity(db_session, test_event.id)
    with pytest.raises(CapacityNotConfigured):
        await capacity_service.get_capacity(db_session, test_event.id)
