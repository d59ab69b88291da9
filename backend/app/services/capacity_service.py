"""
Capacity service: the only code path allowed to move capacity counters.

CONCURRENCY STRATEGY: Optimistic Locking with Retry
====================================================

Problem:
  Two organizers try to reserve the last 10 seats simultaneously.
  Both read blocked_capacity=90, both write 100, both succeed.
  Result: 110 seats held against a ceiling of 100.

Solution:
  reserve() reads the CapacityRecord, then issues

    UPDATE capacities
       SET blocked_capacity = :new_blocked,
           available_capacity = :new_available,
           version = version + 1
     WHERE id = :id AND version = :v AND blocked_capacity + :q <= :ceiling

  If rows_affected == 0 someone else changed the row first: re-read and
  retry, up to MAX_RETRY_ATTEMPTS. The CHECK constraints on the table are
  the final safety net.

release() and confirm() move a hold out of 'active' with a conditional
UPDATE on status = 'active'. Exactly one caller wins that update, so the
reconciliation sweep, a user cancellation and a payment webhook can race
on the same hold without double-releasing capacity.

Counter semantics:
  blocked_capacity   units withdrawn by holds that were not released
  available_capacity max(total_capacity - blocked_capacity, 0)
  ceiling            total + floor(total * overbooking% / 100) if enabled
"""

import time
from datetime import datetime, timedelta

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    CapacityConfigurationError,
    CapacityExceeded,
    CapacityNotConfigured,
    HoldExpired,
    InvalidHoldTransition,
    ReservationContention,
    ResourceNotFound,
)
from app.core.logging import get_logger
from app.core.metrics import (
    db_retries,
    reservation_latency,
    record_hold_transition,
    record_reservation_attempt,
    record_threshold_alert,
)
from app.db.base import utcnow
from app.models.capacity import ALERT_LEVELS, CapacityRecord, capacity_ceiling
from app.models.event import Event
from app.models.hold import HoldStatus, ReleaseReason, ReservationHold
from app.schemas.capacity import CapacityConfigure
from app.services.notification_service import notify_threshold_crossed
from app.services.strategy_factory import defer_sync, get_admission, track_admitted
from app.services.waitlist_service import notify_next_in_waitlist

logger = get_logger(__name__)

MAX_RETRY_ATTEMPTS = 3


async def get_capacity(db: AsyncSession, event_id: int) -> CapacityRecord:
    """Live capacity record for an event, freshly read from the database."""
    result = await db.execute(
        select(CapacityRecord)
        .where(
            CapacityRecord.event_id == event_id,
            CapacityRecord.deleted_at.is_(None),
            CapacityRecord.is_active.is_(True),
        )
        .execution_options(populate_existing=True)
    )
    capacity = result.scalar_one_or_none()
    if capacity is None:
        raise CapacityNotConfigured(
            f"Capacity is not configured for event {event_id}",
            event_id=event_id,
        )
    return capacity


async def get_hold(db: AsyncSession, hold_id: int) -> ReservationHold:
    result = await db.execute(
        select(ReservationHold)
        .where(ReservationHold.id == hold_id)
        .execution_options(populate_existing=True)
    )
    hold = result.scalar_one_or_none()
    if hold is None:
        raise ResourceNotFound(f"Hold {hold_id} not found", hold_id=hold_id)
    return hold


async def configure_capacity(
    db: AsyncSession,
    event_id: int,
    config: CapacityConfigure,
    user_id: int | None = None,
) -> CapacityRecord:
    """
    Create or update the capacity configuration of an event.

    An update keeps every unit already held; it is refused if the new
    ceiling would sit below the current blocked_capacity.
    """
    event = await db.get(Event, event_id)
    if event is None:
        raise ResourceNotFound(f"Event {event_id} not found", event_id=event_id)

    new_ceiling = capacity_ceiling(
        config.total_capacity, config.overbooking_enabled, config.overbooking_percentage
    )
    values = {
        "total_capacity": config.total_capacity,
        "overbooking_percentage": config.overbooking_percentage,
        "overbooking_enabled": config.overbooking_enabled,
        "waitlist_enabled": config.waitlist_enabled,
        "lock_timeout_minutes": config.lock_timeout_minutes,
        "alert_thresholds": config.alert_thresholds.model_dump(),
    }

    try:
        capacity = await get_capacity(db, event_id)
    except CapacityNotConfigured:
        capacity = CapacityRecord(
            event_id=event_id,
            available_capacity=config.total_capacity,
            blocked_capacity=0,
            created_by=user_id,
            **values,
        )
        db.add(capacity)
        await db.flush()
        await db.refresh(capacity)
        logger.info(
            "capacity_configured",
            event_id=event_id,
            total=capacity.total_capacity,
            ceiling=capacity.ceiling,
            created=True,
        )
        defer_sync(db, event_id, capacity.ceiling)
        return capacity

    for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
        if capacity.blocked_capacity > new_ceiling:
            raise CapacityConfigurationError(
                f"{capacity.blocked_capacity} units are already held; "
                f"a ceiling of {new_ceiling} is too low",
                event_id=event_id,
                blocked=capacity.blocked_capacity,
                requested_ceiling=new_ceiling,
            )

        update_result = await db.execute(
            update(CapacityRecord)
            .where(
                CapacityRecord.id == capacity.id,
                CapacityRecord.version == capacity.version,
            )
            .values(
                available_capacity=max(config.total_capacity - capacity.blocked_capacity, 0),
                version=CapacityRecord.version + 1,
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        if update_result.rowcount == 1:
            capacity = await get_capacity(db, event_id)
            logger.info(
                "capacity_configured",
                event_id=event_id,
                total=capacity.total_capacity,
                ceiling=capacity.ceiling,
                created=False,
            )
            defer_sync(db, event_id, capacity.ceiling - capacity.blocked_capacity)
            return capacity

        db_retries.inc()
        logger.info("capacity_configure_retry", event_id=event_id, attempt=attempt)
        capacity = await get_capacity(db, event_id)

    raise ReservationContention(
        "Capacity is being modified concurrently. Please try again.",
        event_id=event_id,
    )


async def reserve(
    db: AsyncSession,
    event_id: int,
    quantity: int,
    now: datetime | None = None,
) -> ReservationHold:
    """
    Withdraw `quantity` units from the event's pool and create an active hold.

    Raises CapacityExceeded when the ceiling would be crossed, and
    ReservationContention when optimistic retries run out.
    """
    now = now or utcnow()
    start = time.perf_counter()
    admission = get_admission()

    if not await admission.admit(event_id, quantity):
        record_reservation_attempt("rejected")
        logger.warning("reservation_rejected_at_gate", event_id=event_id, requested=quantity)
        raise CapacityExceeded(
            f"Not enough capacity for {quantity} participants",
            event_id=event_id,
            requested=quantity,
        )

    try:
        hold, capacity, previous_level = await _reserve_with_retry(db, event_id, quantity, now)
    except Exception:
        await admission.release(event_id, quantity)
        raise

    track_admitted(db, event_id, quantity)
    defer_sync(db, event_id, capacity.ceiling - capacity.blocked_capacity)
    record_reservation_attempt("success")
    reservation_latency.observe(time.perf_counter() - start)

    level = capacity.current_alert_level
    if ALERT_LEVELS.index(level) > ALERT_LEVELS.index(previous_level):
        record_threshold_alert(level)
        logger.warning(
            "capacity_threshold_crossed",
            event_id=event_id,
            previous_level=previous_level,
            level=level,
            utilization=capacity.utilization_percentage,
        )
        await notify_threshold_crossed(
            event_id, previous_level, level, capacity.utilization_percentage
        )

    return hold


async def _reserve_with_retry(
    db: AsyncSession,
    event_id: int,
    quantity: int,
    now: datetime,
) -> tuple[ReservationHold, CapacityRecord, str]:
    for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
        # Step 1: Read current capacity state
        capacity = await get_capacity(db, event_id)

        if not capacity.can_reserve(quantity):
            record_reservation_attempt("exceeded")
            logger.warning(
                "reservation_failed_capacity_exceeded",
                event_id=event_id,
                requested=quantity,
                available=capacity.available_capacity,
                blocked=capacity.blocked_capacity,
                ceiling=capacity.ceiling,
            )
            raise CapacityExceeded(
                f"Not enough capacity. Requested: {quantity}, "
                f"remaining: {max(capacity.ceiling - capacity.blocked_capacity, 0)}",
                event_id=event_id,
                requested=quantity,
                available=capacity.available_capacity,
                blocked=capacity.blocked_capacity,
                ceiling=capacity.ceiling,
                waitlist_available=bool(capacity.waitlist_enabled),
            )

        # Step 2: Optimistic lock - update only if version matches
        previous_level = capacity.current_alert_level
        ceiling = capacity.ceiling
        new_blocked = capacity.blocked_capacity + quantity
        update_result = await db.execute(
            update(CapacityRecord)
            .where(
                CapacityRecord.id == capacity.id,
                CapacityRecord.version == capacity.version,
                CapacityRecord.blocked_capacity + quantity <= ceiling,
            )
            .values(
                blocked_capacity=new_blocked,
                available_capacity=max(capacity.total_capacity - new_blocked, 0),
                version=CapacityRecord.version + 1,
            )
            .execution_options(synchronize_session=False)
        )

        if update_result.rowcount == 0:
            # Version conflict - another transaction modified this record
            db_retries.inc()
            logger.info(
                "reservation_retry",
                event_id=event_id,
                attempt=attempt,
                reason="version_conflict",
            )
            continue

        # Step 3: Create the hold
        hold = ReservationHold(
            event_id=event_id,
            capacity_id=capacity.id,
            quantity=quantity,
            status=HoldStatus.ACTIVE.value,
            expires_at=now + timedelta(minutes=capacity.lock_timeout_minutes),
        )
        db.add(hold)
        await db.flush()
        await db.refresh(hold)

        capacity = await get_capacity(db, event_id)
        logger.info(
            "hold_created",
            hold_id=hold.id,
            event_id=event_id,
            quantity=quantity,
            expires_at=hold.expires_at.isoformat(),
            blocked=capacity.blocked_capacity,
            attempt=attempt,
        )
        return hold, capacity, previous_level

    record_reservation_attempt("contention")
    raise ReservationContention(
        "Reservation failed due to high demand. Please try again.",
        event_id=event_id,
        requested=quantity,
    )


async def release_hold(
    db: AsyncSession,
    hold_id: int,
    reason: ReleaseReason = ReleaseReason.CANCELLED,
    now: datetime | None = None,
) -> tuple[ReservationHold, bool]:
    """
    Move an active hold to 'released' and return its units to the pool.

    Returns (hold, changed). changed is False when the hold had already
    been released. Raises InvalidHoldTransition for a consumed hold.
    When units come back and the event keeps a waitlist, the next
    waiting entry is offered a place.
    """
    now = now or utcnow()
    hold = await get_hold(db, hold_id)

    if not hold.can_transition(HoldStatus.RELEASED):
        return _unreleasable(hold), False

    update_result = await db.execute(
        update(ReservationHold)
        .where(
            ReservationHold.id == hold_id,
            ReservationHold.status == HoldStatus.ACTIVE.value,
        )
        .values(
            status=HoldStatus.RELEASED.value,
            released_reason=reason.value,
            released_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )

    if update_result.rowcount == 0:
        # Lost the race; report whatever state the winner left behind
        return _unreleasable(await get_hold(db, hold_id)), False

    # Return the units; available is re-derived from the new blocked value
    remaining_blocked = CapacityRecord.blocked_capacity - hold.quantity
    await db.execute(
        update(CapacityRecord)
        .where(CapacityRecord.id == hold.capacity_id)
        .values(
            blocked_capacity=remaining_blocked,
            available_capacity=case(
                (CapacityRecord.total_capacity - remaining_blocked > 0,
                 CapacityRecord.total_capacity - remaining_blocked),
                else_=0,
            ),
            version=CapacityRecord.version + 1,
        )
        .execution_options(synchronize_session=False)
    )

    hold = await get_hold(db, hold_id)
    record_hold_transition(HoldStatus.RELEASED.value, reason.value)
    logger.info(
        "hold_released",
        hold_id=hold_id,
        event_id=hold.event_id,
        quantity=hold.quantity,
        reason=reason.value,
    )

    capacity = await db.get(CapacityRecord, hold.capacity_id, populate_existing=True)
    defer_sync(db, hold.event_id, capacity.ceiling - capacity.blocked_capacity)
    await notify_next_in_waitlist(db, hold.event_id, now=now)
    return hold, True


def _unreleasable(hold: ReservationHold) -> ReservationHold:
    """A released hold is returned as a no-op; any other state is refused."""
    if hold.hold_status is not HoldStatus.RELEASED:
        raise InvalidHoldTransition(
            f"Hold {hold.id} is {hold.status} and cannot be released",
            hold_id=hold.id,
            status=hold.status,
        )
    logger.debug("hold_release_noop", hold_id=hold.id, status=hold.status)
    return hold


async def release(
    db: AsyncSession,
    hold_id: int,
    reason: ReleaseReason = ReleaseReason.CANCELLED,
    now: datetime | None = None,
) -> ReservationHold:
    """Idempotent release: releasing a released hold is a no-op."""
    hold, _ = await release_hold(db, hold_id, reason, now)
    return hold


async def confirm(
    db: AsyncSession,
    hold_id: int,
    now: datetime | None = None,
) -> ReservationHold:
    """
    Make a hold permanent. Counters do not change: the units left the
    sellable pool at reservation time.
    """
    now = now or utcnow()
    hold = await get_hold(db, hold_id)

    if not hold.can_transition(HoldStatus.CONSUMED):
        raise InvalidHoldTransition(
            f"Hold {hold_id} is already {hold.status}",
            hold_id=hold_id,
            status=hold.status,
        )
    if now >= hold.expires_at:
        raise HoldExpired(
            f"Hold {hold_id} expired at {hold.expires_at.isoformat()}",
            hold_id=hold_id,
            expires_at=hold.expires_at.isoformat(),
        )

    update_result = await db.execute(
        update(ReservationHold)
        .where(
            ReservationHold.id == hold_id,
            ReservationHold.status == HoldStatus.ACTIVE.value,
            ReservationHold.expires_at > now,
        )
        .values(
            status=HoldStatus.CONSUMED.value,
            consumed_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    hold = await get_hold(db, hold_id)

    if update_result.rowcount == 0:
        # Lost the race against the sweep or a cancellation
        raise InvalidHoldTransition(
            f"Hold {hold_id} is already {hold.status}",
            hold_id=hold_id,
            status=hold.status,
        )

    record_hold_transition(HoldStatus.CONSUMED.value, "payment")
    logger.info("hold_consumed", hold_id=hold_id, event_id=hold.event_id, quantity=hold.quantity)
    return hold


async def get_capacity_status(db: AsyncSession, event_id: int) -> dict:
    """Counters, derived values and hold breakdown for one event."""
    capacity = await get_capacity(db, event_id)

    result = await db.execute(
        select(
            ReservationHold.status,
            func.count(ReservationHold.id),
            func.coalesce(func.sum(ReservationHold.quantity), 0),
        )
        .where(ReservationHold.capacity_id == capacity.id)
        .group_by(ReservationHold.status)
    )
    breakdown = {status: (count, int(total)) for status, count, total in result.all()}
    active_count, active_quantity = breakdown.get(HoldStatus.ACTIVE.value, (0, 0))
    _, consumed_quantity = breakdown.get(HoldStatus.CONSUMED.value, (0, 0))

    return {
        "event_id": capacity.event_id,
        "total_capacity": capacity.total_capacity,
        "available_capacity": capacity.available_capacity,
        "blocked_capacity": capacity.blocked_capacity,
        "confirmed_capacity": consumed_quantity,
        "held_capacity": active_quantity,
        "active_holds": active_count,
        "overbooking_enabled": capacity.overbooking_enabled,
        "overbooking_percentage": float(capacity.overbooking_percentage),
        "max_capacity_with_overbooking": capacity.ceiling,
        "waitlist_enabled": capacity.waitlist_enabled,
        "lock_timeout_minutes": capacity.lock_timeout_minutes,
        "alert_thresholds": capacity.alert_thresholds,
        "utilization_percentage": capacity.utilization_percentage,
        "current_alert_level": capacity.current_alert_level,
        "is_full": capacity.is_full,
        "updated_at": capacity.updated_at,
    }


async def validate_capacity(db: AsyncSession, event_id: int, quantity: int) -> dict:
    """Non-mutating check of whether `quantity` units could be reserved now."""
    capacity = await get_capacity(db, event_id)
    is_valid = capacity.can_reserve(quantity)
    return {
        "event_id": event_id,
        "requested": quantity,
        "is_valid": is_valid,
        "available_spots": max(capacity.ceiling - capacity.blocked_capacity, 0),
        "uses_overbooking": is_valid and capacity.blocked_capacity + quantity > capacity.total_capacity,
        "waitlist_available": not is_valid and bool(capacity.waitlist_enabled),
        "current_alert_level": capacity.current_alert_level,
    }


async def deactivate_capacity(db: AsyncSession, event_id: int) -> CapacityRecord:
    """Soft-delete the event's capacity record. Existing holds keep their row."""
    capacity = await get_capacity(db, event_id)
    capacity.is_active = False
    capacity.deleted_at = utcnow()
    await db.flush()
    logger.info("capacity_deactivated", event_id=event_id, capacity_id=capacity.id)
    return capacity
