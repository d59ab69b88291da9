"""
Tests for the event waitlist: queueing, offers, expiry and claims.
"""

import pytest
from datetime import timedelta
from httpx import AsyncClient

from app.core.errors import (
    AlreadyOnWaitlist,
    CapacityExceeded,
    InvalidWaitlistTransition,
    WaitlistDisabled,
    WaitlistOfferExpired,
)
from app.db.base import utcnow
from app.models.waitlist import WaitlistStatus
from app.schemas.capacity import CapacityConfigure
from app.services import capacity_service, reservation_service, waitlist_service
from app.services.reconciliation_service import run_reconciliation


async def _join(client: AsyncClient, event_id: int, organizer_id: int, quantity: int = 1):
    return await client.post(
        f"/api/v1/waitlist/events/{event_id}",
        json={"organizer_id": organizer_id, "quantity": quantity},
    )


@pytest.mark.asyncio
async def test_positions_follow_join_order(db_session, test_event):
    entries = [
        await waitlist_service.join_waitlist(db_session, test_event.id, organizer_id)
        for organizer_id in (1, 2, 3)
    ]
    assert [entry.position for entry in entries] == [1, 2, 3]

    position = await waitlist_service.get_position(db_session, test_event.id, 2)
    assert position["position"] == 2
    assert position["total"] == 3

    await waitlist_service.leave_waitlist(db_session, entries[0].id)
    position = await waitlist_service.get_position(db_session, test_event.id, 2)
    assert position["position"] == 1
    assert position["total"] == 2


@pytest.mark.asyncio
async def test_organizer_waits_once_per_event(db_session, test_event):
    await waitlist_service.join_waitlist(db_session, test_event.id, 1)
    with pytest.raises(AlreadyOnWaitlist):
        await waitlist_service.join_waitlist(db_session, test_event.id, 1)


@pytest.mark.asyncio
async def test_left_organizer_can_join_again(db_session, test_event):
    entry = await waitlist_service.join_waitlist(db_session, test_event.id, 1)
    await waitlist_service.leave_waitlist(db_session, entry.id)

    again = await waitlist_service.join_waitlist(db_session, test_event.id, 1)
    assert again.position == 2
    with pytest.raises(InvalidWaitlistTransition):
        await waitlist_service.leave_waitlist(db_session, entry.id)


@pytest.mark.asyncio
async def test_disabled_waitlist_refuses_joins(db_session, unconfigured_event):
    await capacity_service.configure_capacity(
        db_session,
        unconfigured_event.id,
        CapacityConfigure(total_capacity=10, waitlist_enabled=False),
    )
    with pytest.raises(WaitlistDisabled):
        await waitlist_service.join_waitlist(db_session, unconfigured_event.id, 1)


@pytest.mark.asyncio
async def test_release_notifies_head_of_queue(db_session, test_event):
    now = utcnow()
    hold = await capacity_service.reserve(db_session, test_event.id, 100, now=now)
    first = await waitlist_service.join_waitlist(db_session, test_event.id, 1, quantity=5)
    second = await waitlist_service.join_waitlist(db_session, test_event.id, 2, quantity=5)

    await capacity_service.release(db_session, hold.id, now=now)

    first = await waitlist_service.get_entry(db_session, first.id)
    second = await waitlist_service.get_entry(db_session, second.id)
    assert first.status == WaitlistStatus.NOTIFIED.value
    assert first.notified_at == now
    assert first.offer_expires_at == now + timedelta(hours=24)
    assert second.status == WaitlistStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_head_too_large_blocks_the_queue(db_session, test_event):
    big = await capacity_service.reserve(db_session, test_event.id, 90)
    small = await capacity_service.reserve(db_session, test_event.id, 10)
    head = await waitlist_service.join_waitlist(db_session, test_event.id, 1, quantity=20)
    behind = await waitlist_service.join_waitlist(db_session, test_event.id, 2, quantity=5)

    await capacity_service.release(db_session, small.id)
    head = await waitlist_service.get_entry(db_session, head.id)
    behind = await waitlist_service.get_entry(db_session, behind.id)
    assert head.status == WaitlistStatus.ACTIVE.value
    assert behind.status == WaitlistStatus.ACTIVE.value

    await capacity_service.release(db_session, big.id)
    head = await waitlist_service.get_entry(db_session, head.id)
    assert head.status == WaitlistStatus.NOTIFIED.value


@pytest.mark.asyncio
async def test_sweep_expires_lapsed_offer_and_passes_it_on(db_session, test_event):
    start = utcnow()
    hold = await capacity_service.reserve(db_session, test_event.id, 100, now=start)
    first = await waitlist_service.join_waitlist(db_session, test_event.id, 1, quantity=5)
    second = await waitlist_service.join_waitlist(db_session, test_event.id, 2, quantity=5)
    await capacity_service.release(db_session, hold.id, now=start)

    summary = await run_reconciliation(db_session, now=start + timedelta(hours=23))
    assert summary["expired_waitlist_offers"] == 0

    later = start + timedelta(hours=25)
    summary = await run_reconciliation(db_session, now=later)
    assert summary["expired_waitlist_offers"] == 1

    first = await waitlist_service.get_entry(db_session, first.id)
    second = await waitlist_service.get_entry(db_session, second.id)
    assert first.status == WaitlistStatus.EXPIRED.value
    assert second.status == WaitlistStatus.NOTIFIED.value
    assert second.offer_expires_at == later + timedelta(hours=24)


@pytest.mark.asyncio
async def test_expired_hold_in_sweep_notifies_waitlist(db_session, test_event):
    start = utcnow()
    await capacity_service.reserve(db_session, test_event.id, 100, now=start)
    entry = await waitlist_service.join_waitlist(db_session, test_event.id, 1, quantity=10)

    summary = await run_reconciliation(db_session, now=start + timedelta(minutes=16))
    assert summary["released"] == 1

    entry = await waitlist_service.get_entry(db_session, entry.id)
    assert entry.status == WaitlistStatus.NOTIFIED.value


@pytest.mark.asyncio
async def test_leaving_with_pending_offer_passes_it_on(db_session, test_event):
    hold = await capacity_service.reserve(db_session, test_event.id, 100)
    first = await waitlist_service.join_waitlist(db_session, test_event.id, 1)
    second = await waitlist_service.join_waitlist(db_session, test_event.id, 2)
    await capacity_service.release(db_session, hold.id)

    first = await waitlist_service.leave_waitlist(db_session, first.id)
    assert first.status == WaitlistStatus.CANCELLED.value
    assert first.cancelled_at is not None

    second = await waitlist_service.get_entry(db_session, second.id)
    assert second.status == WaitlistStatus.NOTIFIED.value


@pytest.mark.asyncio
async def test_lapsed_offer_cannot_be_claimed(db_session, test_event):
    now = utcnow()
    hold = await capacity_service.reserve(db_session, test_event.id, 100, now=now)
    entry = await waitlist_service.join_waitlist(db_session, test_event.id, 1, quantity=2)
    await capacity_service.release(db_session, hold.id, now=now)

    with pytest.raises(WaitlistOfferExpired):
        await reservation_service.claim_waitlist_offer(
            db_session, entry.id, now=now + timedelta(hours=24)
        )
    capacity = await capacity_service.get_capacity(db_session, test_event.id)
    assert capacity.blocked_capacity == 0


@pytest.mark.asyncio
async def test_offer_does_not_reserve_capacity(db_session, test_event):
    hold = await capacity_service.reserve(db_session, test_event.id, 100)
    entry = await waitlist_service.join_waitlist(db_session, test_event.id, 1, quantity=10)
    await capacity_service.release(db_session, hold.id)

    # Someone else takes the returned units before the offer is claimed
    await capacity_service.reserve(db_session, test_event.id, 95)
    with pytest.raises(CapacityExceeded):
        await reservation_service.claim_waitlist_offer(db_session, entry.id)


@pytest.mark.asyncio
async def test_waitlist_flow_over_http(client: AsyncClient, test_event):
    full = await client.post(
        "/api/v1/reservations/",
        json={"event_id": test_event.id, "quantity": 50, "organizer_id": 7},
    )
    rest = await client.post(
        "/api/v1/reservations/",
        json={"event_id": test_event.id, "quantity": 50, "organizer_id": 8},
    )
    assert full.status_code == rest.status_code == 201

    overflow = await client.post(
        "/api/v1/reservations/",
        json={"event_id": test_event.id, "quantity": 3, "organizer_id": 9},
    )
    assert overflow.status_code == 409
    assert overflow.json()["context"]["waitlist_available"] is True

    joined = await _join(client, test_event.id, 9, quantity=3)
    assert joined.status_code == 201
    entry = joined.json()
    assert entry["status"] == "active"
    assert entry["position"] == 1

    duplicate = await _join(client, test_event.id, 9)
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "ALREADY_ON_WAITLIST"

    cancelled = await client.post(f"/api/v1/reservations/{full.json()['group_code']}/cancel")
    assert cancelled.status_code == 200

    position = await client.get(
        f"/api/v1/waitlist/events/{test_event.id}/position", params={"organizer_id": 9}
    )
    assert position.status_code == 200
    assert position.json()["status"] == "notified"
    assert position.json()["position"] == 1
    assert position.json()["total"] == 1

    claimed = await client.post(
        f"/api/v1/waitlist/{entry['id']}/claim", json={"base_price": "10.00"}
    )
    assert claimed.status_code == 201
    assert claimed.json()["participant_count"] == 3
    assert claimed.json()["status"] == "PENDIENTE_PAGO"

    confirmed = await client.get(
        f"/api/v1/waitlist/events/{test_event.id}", params={"status": "confirmed"}
    )
    assert [e["group_code"] for e in confirmed.json()] == [claimed.json()["group_code"]]

    again = await client.post(f"/api/v1/waitlist/{entry['id']}/claim")
    assert again.status_code == 409
    assert again.json()["code"] == "INVALID_WAITLIST_STATUS"

    capacity = await client.get(f"/api/v1/capacity/events/{test_event.id}")
    assert capacity.json()["blocked_capacity"] == 53


@pytest.mark.asyncio
async def test_leave_and_missing_position_over_http(client: AsyncClient, test_event):
    entry = (await _join(client, test_event.id, 4)).json()

    left = await client.delete(f"/api/v1/waitlist/{entry['id']}")
    assert left.status_code == 200
    assert left.json()["status"] == "cancelled"

    position = await client.get(
        f"/api/v1/waitlist/events/{test_event.id}/position", params={"organizer_id": 4}
    )
    assert position.status_code == 404

    missing = await client.delete("/api/v1/waitlist/9999")
    assert missing.status_code == 404
