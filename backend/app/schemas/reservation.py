"""
Pydantic schemas for group reservations.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from app.core.config import get_settings

MAX_PARTICIPANTS = get_settings().MAX_GROUP_PARTICIPANTS


class ReservationCreate(BaseModel):
    event_id: int
    quantity: int = Field(..., gt=0, le=MAX_PARTICIPANTS)
    organizer_id: int
    base_price: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    # None applies the tiered group discount
    group_discount_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    draft: bool = False
    company_name: Optional[str] = Field(None, min_length=2, max_length=255)
    contact_email: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=1000)


class ReservationCreatedResponse(BaseModel):
    group_code: str
    hold_id: int
    expires_at: datetime
    status: str
    participant_count: int
    base_price: float
    group_discount_percent: float
    discount_amount: float
    final_price: float


class ReservationConfirm(BaseModel):
    payment_reference: Optional[str] = Field(None, max_length=100)


class HoldResponse(BaseModel):
    id: int
    event_id: int
    quantity: int
    status: str
    expires_at: datetime
    released_reason: Optional[str] = None
    released_at: Optional[datetime] = None
    consumed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class GroupRegistrationResponse(BaseModel):
    id: int
    group_code: str
    event_id: int
    organizer_id: int
    participant_count: int
    base_price: float
    group_discount_percent: float
    discount_amount: float
    final_price: float
    status: str
    payment_reference: Optional[str] = None
    reservation_expires_at: Optional[datetime] = None
    company_name: Optional[str] = None
    contact_email: Optional[str] = None
    notes: Optional[str] = None
    hold: Optional[HoldResponse] = None
    created_at: datetime

    model_config = {"from_attributes": True}
