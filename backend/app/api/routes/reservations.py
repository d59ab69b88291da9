"""
Group reservation endpoints.

Every mutation runs in the request transaction opened by get_db: a
domain error raised mid-way rolls back the hold and the registration
together.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.models.group_registration import GroupRegistrationStatus
from app.schemas.reservation import (
    GroupRegistrationResponse,
    ReservationConfirm,
    ReservationCreate,
    ReservationCreatedResponse,
)
from app.services import reservation_service
from app.services.cache_service import invalidate_event_cache
from app.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/reservations", tags=["Reservations"])


@router.post("/", response_model=ReservationCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation_endpoint(
    data: ReservationCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Hold capacity for a group.

    The hold expires after the event's lock timeout unless the
    reservation is confirmed first. Returns 409 CAPACITY_EXCEEDED when
    the event cannot take the group.
    """
    registration = await reservation_service.create_reservation(db, data)
    await invalidate_event_cache()
    return ReservationCreatedResponse(
        group_code=registration.group_code,
        hold_id=registration.hold_id,
        expires_at=registration.reservation_expires_at,
        status=registration.status,
        participant_count=registration.participant_count,
        base_price=registration.base_price,
        group_discount_percent=registration.group_discount_percent,
        discount_amount=registration.discount_amount,
        final_price=registration.final_price,
    )


@router.get("/", response_model=list[GroupRegistrationResponse])
async def list_reservations_endpoint(
    event_id: int = Query(...),
    status_filter: Optional[GroupRegistrationStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    return await reservation_service.list_event_reservations(db, event_id, status_filter)


@router.get("/{group_code}", response_model=GroupRegistrationResponse)
async def get_reservation_endpoint(
    group_code: str,
    db: AsyncSession = Depends(get_db),
):
    return await reservation_service.get_reservation(db, group_code)


@router.post("/{group_code}/submit", response_model=GroupRegistrationResponse)
async def submit_reservation_endpoint(
    group_code: str,
    db: AsyncSession = Depends(get_db),
):
    """Move a draft to PENDIENTE_PAGO."""
    return await reservation_service.submit_payment_intent(db, group_code)


@router.post("/{group_code}/confirm", response_model=GroupRegistrationResponse)
async def confirm_reservation_endpoint(
    group_code: str,
    data: Optional[ReservationConfirm] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Record a captured payment and consume the hold.
    410 HOLD_EXPIRED when the hold ran out first.
    """
    payment_reference = data.payment_reference if data else None
    return await reservation_service.confirm_reservation(db, group_code, payment_reference)


@router.post("/{group_code}/cancel", response_model=GroupRegistrationResponse)
async def cancel_reservation_endpoint(
    group_code: str,
    db: AsyncSession = Depends(get_db),
):
    """Cancel a reservation and return its held capacity."""
    registration = await reservation_service.cancel_reservation(db, group_code)
    await invalidate_event_cache()
    return registration


@router.post("/{group_code}/refund", response_model=GroupRegistrationResponse)
async def refund_reservation_endpoint(
    group_code: str,
    db: AsyncSession = Depends(get_db),
):
    return await reservation_service.refund_reservation(db, group_code)
