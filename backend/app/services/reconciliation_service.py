"""
Capacity reconciliation: release holds whose expiry has passed and expire
waitlist offers nobody claimed in time.

The sweep is the only component that changes a hold's state without a
direct user action, so every transition it makes is logged.

Safety:
  - Against itself: release_hold() is a conditional UPDATE on
    status = 'active'; a second sweep touching the same hold sees
    changed=False and skips it.
  - Against confirm(): a hold that was consumed first raises
    InvalidHoldTransition, reported as a ReconciliationConflict and skipped.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.errors import InvalidHoldTransition, ReconciliationConflict
from app.core.logging import get_logger
from app.core.metrics import reconciliation_released
from app.db.base import utcnow
from app.models.hold import HoldStatus, ReleaseReason, ReservationHold
from app.services import capacity_service, reservation_service, waitlist_service
from app.services.notification_service import notify_reservation_expired

logger = get_logger(__name__)


async def find_expired_hold_ids(
    db: AsyncSession, now: datetime, limit: int
) -> list[int]:
    result = await db.execute(
        select(ReservationHold.id)
        .where(
            ReservationHold.status == HoldStatus.ACTIVE.value,
            ReservationHold.expires_at < now,
        )
        .order_by(ReservationHold.expires_at.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def run_reconciliation(
    db: AsyncSession,
    now: Optional[datetime] = None,
    batch_size: Optional[int] = None,
) -> dict:
    """
    One sweep over active holds past their expiry.

    Does not commit; the caller owns the transaction.
    """
    now = now or utcnow()
    batch_size = batch_size or get_settings().RECONCILIATION_BATCH_SIZE

    hold_ids = await find_expired_hold_ids(db, now, batch_size)
    summary = {
        "scanned": len(hold_ids),
        "released": 0,
        "expired_registrations": 0,
        "skipped": 0,
        "expired_waitlist_offers": 0,
        "ran_at": now,
    }

    for hold_id in hold_ids:
        try:
            hold, changed = await capacity_service.release_hold(
                db, hold_id, ReleaseReason.EXPIRED, now=now
            )
        except InvalidHoldTransition as e:
            conflict = ReconciliationConflict(str(e), hold_id=hold_id)
            logger.debug("reconciliation_conflict", code=conflict.code, hold_id=hold_id, detail=conflict.detail)
            summary["skipped"] += 1
            continue

        if not changed:
            logger.debug("reconciliation_conflict", hold_id=hold_id, status=hold.status)
            summary["skipped"] += 1
            continue

        summary["released"] += 1
        reconciliation_released.inc()
        logger.info(
            "reconciliation_hold_released",
            hold_id=hold_id,
            event_id=hold.event_id,
            quantity=hold.quantity,
            expired_at=hold.expires_at.isoformat(),
        )

        registration = await reservation_service.expire_registration_for_hold(db, hold_id)
        if registration is not None:
            summary["expired_registrations"] += 1
            logger.info(
                "reconciliation_registration_expired",
                group_code=registration.group_code,
                hold_id=hold_id,
                event_id=registration.event_id,
            )
            await notify_reservation_expired(
                registration.event_id, registration.group_code, hold_id, hold.quantity
            )

    # Lapsed waitlist offers pass to the next entry, which can use the units
    # released above
    summary["expired_waitlist_offers"] = await waitlist_service.expire_waitlist_offers(
        db, now=now, limit=batch_size
    )

    if hold_ids or summary["expired_waitlist_offers"]:
        logger.info(
            "reconciliation_completed",
            scanned=summary["scanned"],
            released=summary["released"],
            expired_registrations=summary["expired_registrations"],
            skipped=summary["skipped"],
            expired_waitlist_offers=summary["expired_waitlist_offers"],
        )
    else:
        logger.debug("reconciliation_completed", scanned=0)
    return summary
