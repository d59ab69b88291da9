"""
CapacityRecord: the authoritative counter of sellable inventory for one event.

Key design decisions:
- `blocked_capacity` counts every unit withdrawn by a hold that was not
  released (active or consumed). Confirming a hold does not touch it.
- `available_capacity` is cached as max(total - blocked, 0) so listing
  queries never aggregate holds.
- `version` enables optimistic locking: reserve() updates the row only if
  nobody else changed it since it was read.
- Overbooking allowance is floor(total * percentage / 100).
- Soft delete via `deleted_at`; at most one live record per event.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    text,
)

from app.db.base import Base, TimestampMixin, UTCDateTime

DEFAULT_ALERT_THRESHOLDS = {"low": 80, "medium": 90, "high": 95}
ALERT_LEVELS = ("none", "low", "medium", "high")


def overbooking_allowance(total_capacity: int, percentage) -> int:
    """Extra units granted by overbooking, rounded down."""
    return int(total_capacity * float(percentage or 0) // 100)


def capacity_ceiling(total_capacity: int, overbooking_enabled: bool, percentage) -> int:
    if not overbooking_enabled:
        return total_capacity
    return total_capacity + overbooking_allowance(total_capacity, percentage)


def alert_level_for(utilization: float, thresholds: dict) -> str:
    if utilization >= thresholds["high"]:
        return "high"
    if utilization >= thresholds["medium"]:
        return "medium"
    if utilization >= thresholds["low"]:
        return "low"
    return "none"


class CapacityRecord(Base, TimestampMixin):
    __tablename__ = "capacities"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    total_capacity = Column(Integer, nullable=False)
    available_capacity = Column(Integer, nullable=False, default=0)
    blocked_capacity = Column(Integer, nullable=False, default=0)
    overbooking_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    overbooking_enabled = Column(Boolean, nullable=False, default=False)
    waitlist_enabled = Column(Boolean, nullable=False, default=True)
    lock_timeout_minutes = Column(Integer, nullable=False, default=15)
    alert_thresholds = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_ALERT_THRESHOLDS))
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_by = Column(Integer, nullable=True)
    deleted_at = Column(UTCDateTime, nullable=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("total_capacity > 0", name="check_total_capacity_positive"),
        CheckConstraint("available_capacity >= 0", name="check_available_capacity_non_negative"),
        CheckConstraint("blocked_capacity >= 0", name="check_blocked_capacity_non_negative"),
        CheckConstraint(
            "overbooking_percentage >= 0 AND overbooking_percentage <= 50",
            name="check_overbooking_percentage_range",
        ),
        CheckConstraint(
            "lock_timeout_minutes >= 5 AND lock_timeout_minutes <= 60",
            name="check_lock_timeout_range",
        ),
        # One live capacity configuration per event
        Index(
            "uq_capacities_event_live",
            "event_id",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    @property
    def ceiling(self) -> int:
        return capacity_ceiling(self.total_capacity, self.overbooking_enabled, self.overbooking_percentage)

    @property
    def utilization_percentage(self) -> int:
        if not self.total_capacity:
            return 0
        return round(self.blocked_capacity / self.total_capacity * 100)

    @property
    def current_alert_level(self) -> str:
        return alert_level_for(self.utilization_percentage, self.alert_thresholds or DEFAULT_ALERT_THRESHOLDS)

    @property
    def is_full(self) -> bool:
        return self.blocked_capacity >= self.ceiling

    def can_reserve(self, quantity: int) -> bool:
        return self.blocked_capacity + quantity <= self.ceiling

    def __repr__(self) -> str:
        return (
            f"<CapacityRecord(event={self.event_id}, available={self.available_capacity}, "
            f"blocked={self.blocked_capacity}/{self.total_capacity})>"
        )
