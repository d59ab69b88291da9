"""
Pydantic schemas for capacity configuration and status.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from app.core.config import get_settings


class AlertThresholds(BaseModel):
    low: int = Field(80, ge=0, le=100)
    medium: int = Field(90, ge=0, le=100)
    high: int = Field(95, ge=0, le=100)

    @model_validator(mode="after")
    def check_progressive(self) -> "AlertThresholds":
        if not (self.low < self.medium < self.high):
            raise ValueError("Alert thresholds must be progressive: low < medium < high")
        return self


class CapacityConfigure(BaseModel):
    total_capacity: int = Field(..., gt=0, le=100000)
    overbooking_percentage: float = Field(0, ge=0, le=50)
    overbooking_enabled: bool = False
    waitlist_enabled: bool = True
    lock_timeout_minutes: int = Field(get_settings().DEFAULT_LOCK_TIMEOUT_MINUTES, ge=5, le=60)
    alert_thresholds: AlertThresholds = Field(default_factory=AlertThresholds)


class CapacityResponse(BaseModel):
    id: int
    event_id: int
    total_capacity: int
    available_capacity: int
    blocked_capacity: int
    overbooking_percentage: float
    overbooking_enabled: bool
    waitlist_enabled: bool
    lock_timeout_minutes: int
    alert_thresholds: AlertThresholds
    ceiling: int
    utilization_percentage: int
    current_alert_level: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class CapacityStatusResponse(BaseModel):
    event_id: int
    total_capacity: int
    available_capacity: int
    blocked_capacity: int
    confirmed_capacity: int
    held_capacity: int
    active_holds: int
    overbooking_enabled: bool
    overbooking_percentage: float
    max_capacity_with_overbooking: int
    waitlist_enabled: bool
    lock_timeout_minutes: int
    alert_thresholds: AlertThresholds
    utilization_percentage: int
    current_alert_level: str
    is_full: bool
    updated_at: Optional[datetime] = None


class CapacityValidationResponse(BaseModel):
    event_id: int
    requested: int
    is_valid: bool
    available_spots: int
    uses_overbooking: bool
    waitlist_available: bool
    current_alert_level: str


class ReconciliationResponse(BaseModel):
    scanned: int
    released: int
    expired_registrations: int
    skipped: int
    expired_waitlist_offers: int = 0
    ran_at: datetime
