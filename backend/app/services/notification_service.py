"""
Fire-and-forget notifications for capacity events.

Every notification is logged; when Redis is available it is also
published as JSON on NOTIFICATIONS_CHANNEL for the notification service
to pick up. Failures are logged and swallowed: a lost alert must never
fail a reservation.
"""

import json
from typing import Any

from app.core.config import get_settings
from app.core.logging import get_logger
from app.db.base import utcnow
from app.infrastructure.redis_client import get_redis

logger = get_logger(__name__)

THRESHOLD_CROSSED = "capacity.threshold_crossed"
RESERVATION_EXPIRED = "reservation.expired"
WAITLIST_OFFER = "waitlist.offer"


class NotificationPublisher:
    def __init__(self, channel: str | None = None):
        self.channel = channel or get_settings().NOTIFICATIONS_CHANNEL

    async def publish(self, event_type: str, **payload: Any) -> None:
        message = {"type": event_type, "sent_at": utcnow().isoformat(), **payload}
        logger.info("notification_emitted", notification_type=event_type, **payload)
        try:
            client = await get_redis()
            if client is not None:
                await client.publish(self.channel, json.dumps(message, default=str))
        except Exception as e:
            logger.warning("notification_publish_failed", notification_type=event_type, error=str(e))


_publisher: NotificationPublisher | None = None


def get_notifier() -> NotificationPublisher:
    global _publisher
    if _publisher is None:
        _publisher = NotificationPublisher()
    return _publisher


async def notify_threshold_crossed(
    event_id: int, previous_level: str, level: str, utilization: int
) -> None:
    await get_notifier().publish(
        THRESHOLD_CROSSED,
        event_id=event_id,
        previous_level=previous_level,
        level=level,
        utilization_percentage=utilization,
    )


async def notify_reservation_expired(event_id: int, group_code: str, hold_id: int, quantity: int) -> None:
    await get_notifier().publish(
        RESERVATION_EXPIRED,
        event_id=event_id,
        group_code=group_code,
        hold_id=hold_id,
        quantity=quantity,
    )


async def notify_waitlist_offer(
    event_id: int, entry_id: int, organizer_id: int, quantity: int, offer_expires_at
) -> None:
    await get_notifier().publish(
        WAITLIST_OFFER,
        event_id=event_id,
        entry_id=entry_id,
        organizer_id=organizer_id,
        quantity=quantity,
        offer_expires_at=offer_expires_at.isoformat(),
    )
