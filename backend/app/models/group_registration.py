"""
GroupRegistration: a multi-seat purchase by one organizer, its pricing
and its capacity hold.

Pricing fields are stored, never recomputed on read, so historical
prices survive later changes to the discount tiers.
"""

import enum
import secrets
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin, UTCDateTime, utcnow


class GroupRegistrationStatus(str, enum.Enum):
    BORRADOR = "BORRADOR"
    PENDIENTE_PAGO = "PENDIENTE_PAGO"
    PAGADO = "PAGADO"
    CONFIRMADO = "CONFIRMADO"
    CANCELADO = "CANCELADO"
    EXPIRADO = "EXPIRADO"
    REEMBOLSADO = "REEMBOLSADO"

    def can_transition_to(self, target: "GroupRegistrationStatus") -> bool:
        return target in GROUP_TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        return not GROUP_TRANSITIONS[self]


S = GroupRegistrationStatus

GROUP_TRANSITIONS: dict[GroupRegistrationStatus, frozenset[GroupRegistrationStatus]] = {
    S.BORRADOR: frozenset({S.PENDIENTE_PAGO, S.CANCELADO, S.EXPIRADO}),
    S.PENDIENTE_PAGO: frozenset({S.PAGADO, S.CANCELADO, S.EXPIRADO}),
    S.PAGADO: frozenset({S.CONFIRMADO, S.CANCELADO, S.REEMBOLSADO}),
    S.CONFIRMADO: frozenset({S.CANCELADO, S.REEMBOLSADO}),
    S.CANCELADO: frozenset(),
    S.EXPIRADO: frozenset(),
    S.REEMBOLSADO: frozenset(),
}

# Registrations the sweep may expire when their hold lapses
EXPIRABLE_STATUSES = (S.BORRADOR, S.PENDIENTE_PAGO)

# (minimum participants, discount percent), highest tier first
GROUP_DISCOUNT_TIERS = ((21, 20), (11, 15), (6, 10), (2, 5))

CENTS = Decimal("0.01")


def tiered_group_discount(participant_count: int) -> Decimal:
    for minimum, percent in GROUP_DISCOUNT_TIERS:
        if participant_count >= minimum:
            return Decimal(percent)
    return Decimal(0)


def compute_pricing(base_price, participant_count: int, discount_percent) -> dict:
    base = Decimal(str(base_price))
    percent = Decimal(str(discount_percent))
    gross = base * participant_count
    discount = (gross * percent / 100).quantize(CENTS, rounding=ROUND_HALF_UP)
    return {
        "base_price": base.quantize(CENTS, rounding=ROUND_HALF_UP),
        "group_discount_percent": percent,
        "discount_amount": discount,
        "final_price": (gross - discount).quantize(CENTS, rounding=ROUND_HALF_UP),
    }


def generate_group_code(now: datetime | None = None) -> str:
    """GRP-YYYYMMDD-XXXXX"""
    now = now or utcnow()
    return f"GRP-{now:%Y%m%d}-{secrets.randbelow(100000):05d}"


class GroupRegistration(Base, TimestampMixin):
    __tablename__ = "group_registrations"

    id = Column(Integer, primary_key=True, index=True)
    group_code = Column(String(20), nullable=False, unique=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    organizer_id = Column(Integer, nullable=False, index=True)
    hold_id = Column(Integer, ForeignKey("reservation_holds.id"), nullable=True, unique=True)
    participant_count = Column(Integer, nullable=False)
    base_price = Column(Numeric(10, 2), nullable=False, default=0)
    group_discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    final_price = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=S.BORRADOR.value, index=True)
    payment_reference = Column(String(100), nullable=True)
    reservation_expires_at = Column(UTCDateTime, nullable=True, index=True)
    company_name = Column(String(255), nullable=True)
    contact_email = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    hold = relationship("ReservationHold", lazy="selectin")

    __table_args__ = (
        CheckConstraint("participant_count > 0", name="check_group_participants_positive"),
        CheckConstraint("final_price >= 0", name="check_group_final_price_non_negative"),
        CheckConstraint(
            "status IN ('BORRADOR', 'PENDIENTE_PAGO', 'PAGADO', 'CONFIRMADO', "
            "'CANCELADO', 'EXPIRADO', 'REEMBOLSADO')",
            name="check_group_status",
        ),
        Index("ix_group_registrations_event_status", "event_id", "status"),
    )

    @property
    def registration_status(self) -> GroupRegistrationStatus:
        return GroupRegistrationStatus(self.status)

    def __repr__(self) -> str:
        return f"<GroupRegistration(code={self.group_code}, event={self.event_id}, status={self.status})>"
