from app.models.event import Event
from app.models.capacity import CapacityRecord
from app.models.hold import ReservationHold, HoldStatus, ReleaseReason
from app.models.group_registration import GroupRegistration, GroupRegistrationStatus
from app.models.waitlist import WaitlistEntry, WaitlistStatus

__all__ = [
    "Event",
    "CapacityRecord",
    "ReservationHold", "HoldStatus", "ReleaseReason",
    "GroupRegistration", "GroupRegistrationStatus",
    "WaitlistEntry", "WaitlistStatus",
]
