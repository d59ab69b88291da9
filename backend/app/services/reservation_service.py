"""
Group reservation service: a multi-seat purchase, its pricing and its hold.

The registration status and the hold status move in lockstep:
  - CONFIRMADO is only written after confirm() consumed the hold
  - EXPIRADO is only written after the hold was released
Both writes happen in the same transaction as the hold transition, so a
failure in either rolls back both.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidHoldTransition, ResourceNotFound
from app.core.logging import get_logger
from app.db.base import utcnow
from app.models.event import Event
from app.models.group_registration import (
    EXPIRABLE_STATUSES,
    GroupRegistration,
    GroupRegistrationStatus,
    compute_pricing,
    generate_group_code,
    tiered_group_discount,
)
from app.models.hold import HoldStatus, ReleaseReason
from app.schemas.reservation import ReservationCreate
from app.schemas.waitlist import WaitlistClaim
from app.services import capacity_service, waitlist_service

logger = get_logger(__name__)

GROUP_CODE_ATTEMPTS = 5


def _transition(registration: GroupRegistration, target: GroupRegistrationStatus) -> None:
    current = registration.registration_status
    if not current.can_transition_to(target):
        raise InvalidHoldTransition(
            f"Reservation {registration.group_code} cannot move from {current.value} to {target.value}",
            group_code=registration.group_code,
            status=current.value,
            target=target.value,
        )
    registration.status = target.value
    logger.info(
        "registration_status_changed",
        group_code=registration.group_code,
        from_status=current.value,
        to_status=target.value,
    )


async def _unique_group_code(db: AsyncSession) -> str:
    for _ in range(GROUP_CODE_ATTEMPTS):
        code = generate_group_code()
        exists = await db.execute(
            select(GroupRegistration.id).where(GroupRegistration.group_code == code)
        )
        if exists.scalar_one_or_none() is None:
            return code
    raise RuntimeError("Could not generate a unique group code")


async def get_reservation(db: AsyncSession, group_code: str) -> GroupRegistration:
    result = await db.execute(
        select(GroupRegistration)
        .where(GroupRegistration.group_code == group_code)
        .execution_options(populate_existing=True)
    )
    registration = result.scalar_one_or_none()
    if registration is None:
        raise ResourceNotFound(f"Reservation {group_code} not found", group_code=group_code)
    return registration


async def _refresh(db: AsyncSession, registration: GroupRegistration) -> GroupRegistration:
    """Flush pending changes and reload the registration with its hold."""
    await db.flush()
    return await get_reservation(db, registration.group_code)


async def create_reservation(
    db: AsyncSession,
    data: ReservationCreate,
    now: Optional[datetime] = None,
) -> GroupRegistration:
    """
    Hold capacity for a group and open its registration.

    The registration starts in PENDIENTE_PAGO, or BORRADOR for drafts.
    """
    now = now or utcnow()
    event = await db.get(Event, data.event_id)
    if event is None:
        raise ResourceNotFound(f"Event {data.event_id} not found", event_id=data.event_id)

    hold = await capacity_service.reserve(db, data.event_id, data.quantity, now=now)

    discount_percent = data.group_discount_percent
    if discount_percent is None:
        discount_percent = tiered_group_discount(data.quantity)
    pricing = compute_pricing(data.base_price, data.quantity, discount_percent)

    status = GroupRegistrationStatus.BORRADOR if data.draft else GroupRegistrationStatus.PENDIENTE_PAGO
    registration = GroupRegistration(
        group_code=await _unique_group_code(db),
        event_id=data.event_id,
        organizer_id=data.organizer_id,
        hold_id=hold.id,
        participant_count=data.quantity,
        status=status.value,
        reservation_expires_at=hold.expires_at,
        company_name=data.company_name,
        contact_email=data.contact_email,
        notes=data.notes,
        **pricing,
    )
    db.add(registration)
    registration = await _refresh(db, registration)

    logger.info(
        "reservation_created",
        group_code=registration.group_code,
        event_id=data.event_id,
        organizer_id=data.organizer_id,
        participants=data.quantity,
        hold_id=hold.id,
        final_price=str(registration.final_price),
        status=registration.status,
    )
    return registration


async def claim_waitlist_offer(
    db: AsyncSession,
    entry_id: int,
    data: Optional[WaitlistClaim] = None,
    now: Optional[datetime] = None,
) -> GroupRegistration:
    """
    Turn a pending waitlist offer into a reservation for the queued group.

    The offer reserves nothing by itself, so CapacityExceeded is still
    possible when others took the returned units first.
    """
    now = now or utcnow()
    data = data or WaitlistClaim()
    entry = await waitlist_service.get_entry(db, entry_id)
    waitlist_service.ensure_claimable(entry, now)

    registration = await create_reservation(
        db,
        ReservationCreate(
            event_id=entry.event_id,
            quantity=entry.quantity,
            organizer_id=entry.organizer_id,
            **data.model_dump(),
        ),
        now=now,
    )
    await waitlist_service.confirm_waitlist_entry(db, entry_id, registration.group_code, now=now)
    logger.info(
        "waitlist_offer_claimed",
        entry_id=entry_id,
        group_code=registration.group_code,
        event_id=entry.event_id,
    )
    return registration


async def submit_payment_intent(db: AsyncSession, group_code: str) -> GroupRegistration:
    """Organizer submits a draft for payment: BORRADOR -> PENDIENTE_PAGO."""
    registration = await get_reservation(db, group_code)
    _transition(registration, GroupRegistrationStatus.PENDIENTE_PAGO)
    return await _refresh(db, registration)


async def confirm_reservation(
    db: AsyncSession,
    group_code: str,
    payment_reference: Optional[str] = None,
    now: Optional[datetime] = None,
) -> GroupRegistration:
    """
    Payment captured: PENDIENTE_PAGO -> PAGADO -> CONFIRMADO.

    The hold is consumed before any status is written; HoldExpired or
    InvalidHoldTransition from confirm() leaves the registration untouched.
    """
    now = now or utcnow()
    registration = await get_reservation(db, group_code)

    current = registration.registration_status
    if not current.can_transition_to(GroupRegistrationStatus.PAGADO):
        raise InvalidHoldTransition(
            f"Reservation {group_code} cannot be confirmed from {current.value}",
            group_code=group_code,
            status=current.value,
        )

    await capacity_service.confirm(db, registration.hold_id, now=now)

    if payment_reference:
        registration.payment_reference = payment_reference
    _transition(registration, GroupRegistrationStatus.PAGADO)
    _transition(registration, GroupRegistrationStatus.CONFIRMADO)
    registration = await _refresh(db, registration)

    logger.info(
        "reservation_confirmed",
        group_code=group_code,
        hold_id=registration.hold_id,
        payment_reference=payment_reference,
    )
    return registration


async def cancel_reservation(
    db: AsyncSession,
    group_code: str,
    now: Optional[datetime] = None,
) -> GroupRegistration:
    """
    Explicit cancellation. An active hold goes back to the pool; a
    consumed hold stays consumed.
    """
    registration = await get_reservation(db, group_code)
    current = registration.registration_status
    if not current.can_transition_to(GroupRegistrationStatus.CANCELADO):
        raise InvalidHoldTransition(
            f"Reservation {group_code} cannot be cancelled from {current.value}",
            group_code=group_code,
            status=current.value,
        )

    hold = await capacity_service.get_hold(db, registration.hold_id)
    if hold.hold_status is HoldStatus.ACTIVE:
        await capacity_service.release(db, hold.id, ReleaseReason.CANCELLED, now=now)

    _transition(registration, GroupRegistrationStatus.CANCELADO)
    registration = await _refresh(db, registration)
    logger.info("reservation_cancelled", group_code=group_code, hold_id=hold.id)
    return registration


async def refund_reservation(db: AsyncSession, group_code: str) -> GroupRegistration:
    """Mark a paid reservation as refunded. The consumed hold is kept."""
    registration = await get_reservation(db, group_code)
    _transition(registration, GroupRegistrationStatus.REEMBOLSADO)
    registration = await _refresh(db, registration)
    logger.info("reservation_refunded", group_code=group_code)
    return registration


async def expire_registration_for_hold(
    db: AsyncSession, hold_id: int
) -> Optional[GroupRegistration]:
    """
    Move the registration owning a released hold to EXPIRADO, if it was
    still waiting for payment. Returns the registration when it changed.
    """
    result = await db.execute(
        select(GroupRegistration)
        .where(GroupRegistration.hold_id == hold_id)
        .execution_options(populate_existing=True)
    )
    registration = result.scalar_one_or_none()
    if registration is None:
        return None

    hold = await capacity_service.get_hold(db, hold_id)
    if hold.hold_status is not HoldStatus.RELEASED:
        raise InvalidHoldTransition(
            f"Reservation {registration.group_code} cannot expire while its hold is {hold.status}",
            group_code=registration.group_code,
            hold_status=hold.status,
        )
    if registration.registration_status not in EXPIRABLE_STATUSES:
        return None

    _transition(registration, GroupRegistrationStatus.EXPIRADO)
    await db.flush()
    return registration


async def list_event_reservations(
    db: AsyncSession,
    event_id: int,
    status: Optional[GroupRegistrationStatus] = None,
) -> list[GroupRegistration]:
    query = select(GroupRegistration).where(GroupRegistration.event_id == event_id)
    if status is not None:
        query = query.where(GroupRegistration.status == status.value)
    result = await db.execute(query.order_by(GroupRegistration.created_at.desc()))
    return list(result.scalars().all())
