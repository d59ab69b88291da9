"""
Tests for the notifications emitted by reservations, the sweep and the waitlist.
"""

import pytest
from datetime import timedelta

from app.db.base import utcnow
from app.schemas.reservation import ReservationCreate
from app.services import capacity_service, notification_service, reservation_service, waitlist_service
from app.services.notification_service import (
    RESERVATION_EXPIRED,
    THRESHOLD_CROSSED,
    WAITLIST_OFFER,
)
from app.services.reconciliation_service import run_reconciliation


class RecordingPublisher:
    def __init__(self):
        self.sent = []

    async def publish(self, event_type, **payload):
        self.sent.append((event_type, payload))

    def of_type(self, event_type):
        return [payload for sent_type, payload in self.sent if sent_type == event_type]


@pytest.fixture
def notifier(monkeypatch):
    publisher = RecordingPublisher()
    monkeypatch.setattr(notification_service, "get_notifier", lambda: publisher)
    return publisher


@pytest.mark.asyncio
async def test_one_threshold_notification_per_level_rise(db_session, test_event, notifier):
    # Default thresholds: low 80, medium 90, high 95
    await capacity_service.reserve(db_session, test_event.id, 50)
    assert notifier.of_type(THRESHOLD_CROSSED) == []

    await capacity_service.reserve(db_session, test_event.id, 30)
    await capacity_service.reserve(db_session, test_event.id, 5)
    await capacity_service.reserve(db_session, test_event.id, 10)

    crossings = notifier.of_type(THRESHOLD_CROSSED)
    assert [(c["previous_level"], c["level"]) for c in crossings] == [("none", "low"), ("low", "high")]
    assert crossings[0]["event_id"] == test_event.id
    assert crossings[0]["utilization_percentage"] == 80
    assert crossings[1]["utilization_percentage"] == 95


@pytest.mark.asyncio
async def test_falling_utilization_is_not_a_crossing(db_session, test_event, notifier):
    hold = await capacity_service.reserve(db_session, test_event.id, 85)
    await capacity_service.release(db_session, hold.id)
    await capacity_service.reserve(db_session, test_event.id, 10)

    assert len(notifier.of_type(THRESHOLD_CROSSED)) == 1


@pytest.mark.asyncio
async def test_one_expiry_notification_per_expired_registration(db_session, test_event, notifier):
    start = utcnow()
    codes = set()
    for organizer_id in (1, 2):
        registration = await reservation_service.create_reservation(
            db_session,
            ReservationCreate(event_id=test_event.id, quantity=3, organizer_id=organizer_id),
            now=start,
        )
        codes.add(registration.group_code)
    # A bare hold without a registration expires silently
    await capacity_service.reserve(db_session, test_event.id, 2, now=start)

    summary = await run_reconciliation(db_session, now=start + timedelta(hours=1))
    assert summary["released"] == 3
    assert summary["expired_registrations"] == 2

    expired = notifier.of_type(RESERVATION_EXPIRED)
    assert {payload["group_code"] for payload in expired} == codes
    assert all(payload["quantity"] == 3 for payload in expired)

    await run_reconciliation(db_session, now=start + timedelta(hours=2))
    assert len(notifier.of_type(RESERVATION_EXPIRED)) == 2


@pytest.mark.asyncio
async def test_waitlist_offer_notification(db_session, test_event, notifier):
    hold = await capacity_service.reserve(db_session, test_event.id, 100)
    entry = await waitlist_service.join_waitlist(db_session, test_event.id, organizer_id=9, quantity=4)

    await capacity_service.release(db_session, hold.id)

    offers = notifier.of_type(WAITLIST_OFFER)
    assert len(offers) == 1
    assert offers[0]["entry_id"] == entry.id
    assert offers[0]["organizer_id"] == 9
    assert offers[0]["quantity"] == 4
