"""
Waitlist endpoints: join, check position, leave, and claim an offer.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.models.waitlist import WaitlistStatus
from app.schemas.reservation import ReservationCreatedResponse
from app.schemas.waitlist import (
    WaitlistClaim,
    WaitlistEntryResponse,
    WaitlistJoin,
    WaitlistPositionResponse,
)
from app.services import reservation_service, waitlist_service
from app.services.cache_service import invalidate_event_cache
from app.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/waitlist", tags=["Waitlist"])


@router.post(
    "/events/{event_id}",
    response_model=WaitlistEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def join_waitlist_endpoint(
    event_id: int,
    data: WaitlistJoin,
    db: AsyncSession = Depends(get_db),
):
    """
    Queue an organizer for an event.
    409 WAITLIST_DISABLED or ALREADY_ON_WAITLIST.
    """
    return await waitlist_service.join_waitlist(db, event_id, data.organizer_id, data.quantity)


@router.get("/events/{event_id}", response_model=list[WaitlistEntryResponse])
async def list_waitlist_endpoint(
    event_id: int,
    status_filter: Optional[WaitlistStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    return await waitlist_service.list_waitlist(db, event_id, status_filter)


@router.get("/events/{event_id}/position", response_model=WaitlistPositionResponse)
async def waitlist_position_endpoint(
    event_id: int,
    organizer_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    return await waitlist_service.get_position(db, event_id, organizer_id)


@router.delete("/{entry_id}", response_model=WaitlistEntryResponse)
async def leave_waitlist_endpoint(
    entry_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Leave the queue. A pending offer passes to the next entry."""
    return await waitlist_service.leave_waitlist(db, entry_id)


@router.post(
    "/{entry_id}/claim",
    response_model=ReservationCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def claim_waitlist_offer_endpoint(
    entry_id: int,
    data: Optional[WaitlistClaim] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Reserve capacity for a notified entry.
    410 WAITLIST_EXPIRED when the offer lapsed, 409 CAPACITY_EXCEEDED
    when the returned units were taken first.
    """
    registration = await reservation_service.claim_waitlist_offer(db, entry_id, data)
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
