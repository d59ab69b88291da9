"""
Waitlist service: a FIFO queue of organizers for events that ran out of room.

When a hold is released and units return to the pool, the first waiting
entry whose group fits is notified and given WAITLIST_OFFER_HOURS to
claim the offer. The offer does not reserve anything; claiming it goes
through the normal reservation path. Lapsed offers are expired by the
reconciliation sweep, which passes the offer on to the next entry.

Status changes are conditional UPDATEs on the expected current status,
like hold transitions, so the sweep and a user racing on one entry
cannot both win.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.errors import (
    AlreadyOnWaitlist,
    CapacityNotConfigured,
    InvalidWaitlistTransition,
    ResourceNotFound,
    WaitlistDisabled,
    WaitlistOfferExpired,
)
from app.core.logging import get_logger
from app.core.metrics import record_waitlist_transition
from app.db.base import utcnow
from app.models.capacity import CapacityRecord
from app.models.waitlist import WAITING_STATUSES, WaitlistEntry, WaitlistStatus
from app.services.notification_service import notify_waitlist_offer

logger = get_logger(__name__)


async def _live_capacity(db: AsyncSession, event_id: int) -> Optional[CapacityRecord]:
    result = await db.execute(
        select(CapacityRecord)
        .where(
            CapacityRecord.event_id == event_id,
            CapacityRecord.deleted_at.is_(None),
            CapacityRecord.is_active.is_(True),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_entry(db: AsyncSession, entry_id: int) -> WaitlistEntry:
    result = await db.execute(
        select(WaitlistEntry)
        .where(WaitlistEntry.id == entry_id)
        .execution_options(populate_existing=True)
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        raise ResourceNotFound(f"Waitlist entry {entry_id} not found", entry_id=entry_id)
    return entry


async def _move(
    db: AsyncSession,
    entry: WaitlistEntry,
    target: WaitlistStatus,
    **values,
) -> bool:
    """Write a status change only if the entry is still in the state we read."""
    if not entry.can_transition(target):
        raise InvalidWaitlistTransition(
            f"Waitlist entry {entry.id} cannot move from {entry.status} to {target.value}",
            entry_id=entry.id,
            status=entry.status,
            target=target.value,
        )
    update_result = await db.execute(
        update(WaitlistEntry)
        .where(WaitlistEntry.id == entry.id, WaitlistEntry.status == entry.status)
        .values(status=target.value, updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if update_result.rowcount == 0:
        return False
    record_waitlist_transition(target.value)
    logger.info(
        "waitlist_status_changed",
        entry_id=entry.id,
        event_id=entry.event_id,
        from_status=entry.status,
        to_status=target.value,
    )
    return True


async def join_waitlist(
    db: AsyncSession,
    event_id: int,
    organizer_id: int,
    quantity: int = 1,
) -> WaitlistEntry:
    """Append an organizer to the event's queue."""
    capacity = await _live_capacity(db, event_id)
    if capacity is None:
        raise CapacityNotConfigured(
            f"Capacity is not configured for event {event_id}",
            event_id=event_id,
        )
    if not capacity.waitlist_enabled:
        raise WaitlistDisabled(
            f"Event {event_id} does not keep a waitlist",
            event_id=event_id,
        )

    existing = await db.execute(
        select(WaitlistEntry.id).where(
            WaitlistEntry.event_id == event_id,
            WaitlistEntry.organizer_id == organizer_id,
            WaitlistEntry.status.in_(WAITING_STATUSES),
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise AlreadyOnWaitlist(
            f"Organizer {organizer_id} is already waiting for event {event_id}",
            event_id=event_id,
            organizer_id=organizer_id,
        )

    last_position = await db.execute(
        select(func.coalesce(func.max(WaitlistEntry.position), 0)).where(
            WaitlistEntry.event_id == event_id
        )
    )
    entry = WaitlistEntry(
        event_id=event_id,
        organizer_id=organizer_id,
        quantity=quantity,
        position=last_position.scalar_one() + 1,
        status=WaitlistStatus.ACTIVE.value,
    )
    db.add(entry)
    try:
        await db.flush()
    except IntegrityError:
        # A concurrent join by the same organizer won the unique index
        raise AlreadyOnWaitlist(
            f"Organizer {organizer_id} is already waiting for event {event_id}",
            event_id=event_id,
            organizer_id=organizer_id,
        )
    await db.refresh(entry)

    record_waitlist_transition(WaitlistStatus.ACTIVE.value)
    logger.info(
        "waitlist_joined",
        entry_id=entry.id,
        event_id=event_id,
        organizer_id=organizer_id,
        quantity=quantity,
        position=entry.position,
    )
    return entry


async def get_position(db: AsyncSession, event_id: int, organizer_id: int) -> dict:
    """Where an organizer stands in the event's queue."""
    result = await db.execute(
        select(WaitlistEntry)
        .where(
            WaitlistEntry.event_id == event_id,
            WaitlistEntry.organizer_id == organizer_id,
            WaitlistEntry.status.in_(WAITING_STATUSES),
        )
        .execution_options(populate_existing=True)
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        raise ResourceNotFound(
            f"Organizer {organizer_id} is not waiting for event {event_id}",
            event_id=event_id,
            organizer_id=organizer_id,
        )

    waiting = and_(
        WaitlistEntry.event_id == event_id,
        WaitlistEntry.status.in_(WAITING_STATUSES),
    )
    ahead = await db.execute(
        select(func.count(WaitlistEntry.id)).where(
            waiting,
            or_(
                WaitlistEntry.position < entry.position,
                and_(WaitlistEntry.position == entry.position, WaitlistEntry.id < entry.id),
            ),
        )
    )
    total = await db.execute(select(func.count(WaitlistEntry.id)).where(waiting))

    return {
        "entry_id": entry.id,
        "event_id": event_id,
        "organizer_id": organizer_id,
        "quantity": entry.quantity,
        "status": entry.status,
        "position": ahead.scalar_one() + 1,
        "total": total.scalar_one(),
        "offer_expires_at": entry.offer_expires_at,
    }


async def leave_waitlist(
    db: AsyncSession,
    entry_id: int,
    now: Optional[datetime] = None,
) -> WaitlistEntry:
    """
    Take an entry out of the queue. A pending offer passes to the next
    entry in line.
    """
    now = now or utcnow()
    entry = await get_entry(db, entry_id)
    had_offer = entry.waitlist_status is WaitlistStatus.NOTIFIED

    if not await _move(db, entry, WaitlistStatus.CANCELLED, cancelled_at=now):
        entry = await get_entry(db, entry_id)
        raise InvalidWaitlistTransition(
            f"Waitlist entry {entry_id} is already {entry.status}",
            entry_id=entry_id,
            status=entry.status,
        )

    if had_offer:
        await notify_next_in_waitlist(db, entry.event_id, now=now)
    return await get_entry(db, entry_id)


async def notify_next_in_waitlist(
    db: AsyncSession,
    event_id: int,
    now: Optional[datetime] = None,
) -> Optional[WaitlistEntry]:
    """
    Offer returned units to the head of the queue.

    Strict FIFO: when the first waiting group is larger than what is
    sellable right now, nobody is notified. Returns the notified entry.
    """
    now = now or utcnow()
    capacity = await _live_capacity(db, event_id)
    if capacity is None or not capacity.waitlist_enabled:
        return None

    result = await db.execute(
        select(WaitlistEntry)
        .where(
            WaitlistEntry.event_id == event_id,
            WaitlistEntry.status == WaitlistStatus.ACTIVE.value,
        )
        .order_by(WaitlistEntry.position.asc(), WaitlistEntry.id.asc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        return None

    remaining = max(capacity.ceiling - capacity.blocked_capacity, 0)
    if entry.quantity > remaining:
        logger.debug(
            "waitlist_head_does_not_fit",
            entry_id=entry.id,
            event_id=event_id,
            quantity=entry.quantity,
            remaining=remaining,
        )
        return None

    offer_expires_at = now + timedelta(hours=get_settings().WAITLIST_OFFER_HOURS)
    if not await _move(
        db, entry, WaitlistStatus.NOTIFIED, notified_at=now, offer_expires_at=offer_expires_at
    ):
        return None

    entry = await get_entry(db, entry.id)
    await notify_waitlist_offer(
        event_id, entry.id, entry.organizer_id, entry.quantity, entry.offer_expires_at
    )
    return entry


def ensure_claimable(entry: WaitlistEntry, now: datetime) -> None:
    """An offer can be claimed while it is pending and has not lapsed."""
    if not entry.can_transition(WaitlistStatus.CONFIRMED):
        raise InvalidWaitlistTransition(
            f"Waitlist entry {entry.id} has no pending offer",
            entry_id=entry.id,
            status=entry.status,
        )
    if now >= entry.offer_expires_at:
        raise WaitlistOfferExpired(
            f"The offer for waitlist entry {entry.id} expired at {entry.offer_expires_at.isoformat()}",
            entry_id=entry.id,
            offer_expires_at=entry.offer_expires_at.isoformat(),
        )


async def confirm_waitlist_entry(
    db: AsyncSession,
    entry_id: int,
    group_code: Optional[str] = None,
    now: Optional[datetime] = None,
) -> WaitlistEntry:
    """Mark a pending offer as claimed, linking the reservation it produced."""
    now = now or utcnow()
    entry = await get_entry(db, entry_id)
    ensure_claimable(entry, now)

    if not await _move(
        db, entry, WaitlistStatus.CONFIRMED, confirmed_at=now, group_code=group_code
    ):
        entry = await get_entry(db, entry_id)
        raise InvalidWaitlistTransition(
            f"Waitlist entry {entry_id} is already {entry.status}",
            entry_id=entry_id,
            status=entry.status,
        )
    return await get_entry(db, entry_id)


async def expire_waitlist_offers(
    db: AsyncSession,
    now: Optional[datetime] = None,
    limit: int = 500,
) -> int:
    """Expire lapsed offers and pass each one on. Returns how many expired."""
    now = now or utcnow()
    result = await db.execute(
        select(WaitlistEntry)
        .where(
            WaitlistEntry.status == WaitlistStatus.NOTIFIED.value,
            WaitlistEntry.offer_expires_at <= now,
        )
        .order_by(WaitlistEntry.offer_expires_at.asc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    expired = 0
    for entry in result.scalars().all():
        if not await _move(db, entry, WaitlistStatus.EXPIRED):
            continue
        expired += 1
        await notify_next_in_waitlist(db, entry.event_id, now=now)
    return expired


async def list_waitlist(
    db: AsyncSession,
    event_id: int,
    status: Optional[WaitlistStatus] = None,
) -> list[WaitlistEntry]:
    query = select(WaitlistEntry).where(WaitlistEntry.event_id == event_id)
    if status is not None:
        query = query.where(WaitlistEntry.status == status.value)
    result = await db.execute(query.order_by(WaitlistEntry.position.asc(), WaitlistEntry.id.asc()))
    return list(result.scalars().all())
