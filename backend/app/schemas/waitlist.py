"""
Pydantic schemas for the event waitlist.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.reservation import MAX_PARTICIPANTS


class WaitlistJoin(BaseModel):
    organizer_id: int
    quantity: int = Field(1, gt=0, le=MAX_PARTICIPANTS)


class WaitlistClaim(BaseModel):
    """Reservation details supplied when an offer is claimed."""
    base_price: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    group_discount_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    company_name: Optional[str] = Field(None, min_length=2, max_length=255)
    contact_email: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=1000)


class WaitlistEntryResponse(BaseModel):
    id: int
    event_id: int
    organizer_id: int
    quantity: int
    position: int
    status: str
    notified_at: Optional[datetime] = None
    offer_expires_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    group_code: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class WaitlistPositionResponse(BaseModel):
    entry_id: int
    event_id: int
    organizer_id: int
    quantity: int
    status: str
    position: int
    total: int
    offer_expires_at: Optional[datetime] = None
