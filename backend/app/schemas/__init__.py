from app.schemas.event import EventCreate, EventResponse, EventListResponse
from app.schemas.capacity import (
    AlertThresholds, CapacityConfigure, CapacityResponse, CapacityStatusResponse,
    CapacityValidationResponse, ReconciliationResponse,
)
from app.schemas.reservation import (
    ReservationCreate, ReservationCreatedResponse, ReservationConfirm,
    HoldResponse, GroupRegistrationResponse,
)
from app.schemas.waitlist import (
    WaitlistJoin, WaitlistClaim, WaitlistEntryResponse, WaitlistPositionResponse,
)

__all__ = [
    "EventCreate", "EventResponse", "EventListResponse",
    "AlertThresholds", "CapacityConfigure", "CapacityResponse", "CapacityStatusResponse",
    "CapacityValidationResponse", "ReconciliationResponse",
    "ReservationCreate", "ReservationCreatedResponse", "ReservationConfirm",
    "HoldResponse", "GroupRegistrationResponse",
    "WaitlistJoin", "WaitlistClaim", "WaitlistEntryResponse", "WaitlistPositionResponse",
]
