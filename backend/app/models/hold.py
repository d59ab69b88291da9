"""
ReservationHold: a temporary, expiring withdrawal of capacity.

State machine: active -> {consumed, released}. Both targets are terminal.
Terminal transitions are written with a conditional UPDATE on
status = 'active', so a sweep and a payment confirmation racing on the
same hold can never both win.
"""

import enum

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, String

from app.db.base import Base, TimestampMixin, UTCDateTime


class HoldStatus(str, enum.Enum):
    ACTIVE = "active"
    RELEASED = "released"
    CONSUMED = "consumed"


HOLD_TRANSITIONS: dict[HoldStatus, frozenset[HoldStatus]] = {
    HoldStatus.ACTIVE: frozenset({HoldStatus.CONSUMED, HoldStatus.RELEASED}),
    HoldStatus.RELEASED: frozenset(),
    HoldStatus.CONSUMED: frozenset(),
}


class ReleaseReason(str, enum.Enum):
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ReservationHold(Base, TimestampMixin):
    __tablename__ = "reservation_holds"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    capacity_id = Column(Integer, ForeignKey("capacities.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=HoldStatus.ACTIVE.value)
    expires_at = Column(UTCDateTime, nullable=False)
    released_reason = Column(String(20), nullable=True)
    released_at = Column(UTCDateTime, nullable=True)
    consumed_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_hold_quantity_positive"),
        CheckConstraint(
            "status IN ('active', 'released', 'consumed')",
            name="check_hold_status",
        ),
        CheckConstraint(
            "released_reason IS NULL OR released_reason IN ('cancelled', 'expired')",
            name="check_hold_released_reason",
        ),
        # The sweep scans active holds ordered by expiry
        Index("ix_reservation_holds_status_expires", "status", "expires_at"),
    )

    @property
    def hold_status(self) -> HoldStatus:
        return HoldStatus(self.status)

    def can_transition(self, target: HoldStatus) -> bool:
        return target in HOLD_TRANSITIONS[self.hold_status]

    def __repr__(self) -> str:
        return f"<ReservationHold(id={self.id}, event={self.event_id}, qty={self.quantity}, status={self.status})>"
