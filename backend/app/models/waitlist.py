"""
WaitlistEntry: an organizer queued for an event that had no room.

State machine:
  active   -> notified (units came back and this entry is next in line)
  active   -> cancelled (the organizer left the queue)
  notified -> confirmed (the offer was claimed before it lapsed)
  notified -> expired   (the offer lapsed; the next entry is notified)
  notified -> cancelled

`position` is the join order within the event and is never rewritten.
The rank an organizer sees is the number of waiting entries ahead of it
plus one.
"""

import enum

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, String, text

from app.db.base import Base, TimestampMixin, UTCDateTime


class WaitlistStatus(str, enum.Enum):
    ACTIVE = "active"
    NOTIFIED = "notified"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


WAITLIST_TRANSITIONS: dict[WaitlistStatus, frozenset[WaitlistStatus]] = {
    WaitlistStatus.ACTIVE: frozenset({WaitlistStatus.NOTIFIED, WaitlistStatus.CANCELLED}),
    WaitlistStatus.NOTIFIED: frozenset(
        {WaitlistStatus.CONFIRMED, WaitlistStatus.EXPIRED, WaitlistStatus.CANCELLED}
    ),
    WaitlistStatus.CONFIRMED: frozenset(),
    WaitlistStatus.EXPIRED: frozenset(),
    WaitlistStatus.CANCELLED: frozenset(),
}

# Entries still holding a place in the queue
WAITING_STATUSES = (WaitlistStatus.ACTIVE.value, WaitlistStatus.NOTIFIED.value)


class WaitlistEntry(Base, TimestampMixin):
    __tablename__ = "waitlist_entries"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    organizer_id = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    position = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=WaitlistStatus.ACTIVE.value, index=True)
    notified_at = Column(UTCDateTime, nullable=True)
    offer_expires_at = Column(UTCDateTime, nullable=True, index=True)
    confirmed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    group_code = Column(String(20), nullable=True)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_waitlist_quantity_positive"),
        CheckConstraint("position >= 1", name="check_waitlist_position_positive"),
        CheckConstraint(
            "status IN ('active', 'notified', 'confirmed', 'expired', 'cancelled')",
            name="check_waitlist_status",
        ),
        Index("ix_waitlist_entries_event_status", "event_id", "status"),
        Index("ix_waitlist_entries_event_position", "event_id", "position"),
        # One place in the queue per organizer and event
        Index(
            "uq_waitlist_entries_organizer_waiting",
            "event_id",
            "organizer_id",
            unique=True,
            postgresql_where=text("status IN ('active', 'notified')"),
            sqlite_where=text("status IN ('active', 'notified')"),
        ),
    )

    @property
    def waitlist_status(self) -> WaitlistStatus:
        return WaitlistStatus(self.status)

    def can_transition(self, target: WaitlistStatus) -> bool:
        return target in WAITLIST_TRANSITIONS[self.waitlist_status]

    def __repr__(self) -> str:
        return (
            f"<WaitlistEntry(id={self.id}, event={self.event_id}, "
            f"position={self.position}, status={self.status})>"
        )
