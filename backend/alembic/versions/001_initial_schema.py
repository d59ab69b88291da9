"""Initial schema: events, capacities, reservation holds, group registrations.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Events table
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("organizer_id", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_organizer_id", "events", ["organizer_id"])
    # Events are almost always listed by date range ("upcoming events")
    op.create_index("ix_events_date", "events", ["date"])

    # Capacities table: one live row per event, counters guarded by version
    op.create_table(
        "capacities",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("total_capacity", sa.Integer(), nullable=False),
        sa.Column("available_capacity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("blocked_capacity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("overbooking_percentage", sa.Numeric(5, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("overbooking_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("waitlist_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("lock_timeout_minutes", sa.Integer(), nullable=False, server_default=sa.text("15")),
        sa.Column("alert_thresholds", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("total_capacity > 0", name="check_total_capacity_positive"),
        sa.CheckConstraint("available_capacity >= 0", name="check_available_capacity_non_negative"),
        sa.CheckConstraint("blocked_capacity >= 0", name="check_blocked_capacity_non_negative"),
        sa.CheckConstraint(
            "overbooking_percentage >= 0 AND overbooking_percentage <= 50",
            name="check_overbooking_percentage_range",
        ),
        sa.CheckConstraint(
            "lock_timeout_minutes >= 5 AND lock_timeout_minutes <= 60",
            name="check_lock_timeout_range",
        ),
    )
    op.create_index("ix_capacities_id", "capacities", ["id"])
    op.create_index("ix_capacities_event_id", "capacities", ["event_id"])
    op.create_index("ix_capacities_is_active", "capacities", ["is_active"])
    op.create_index(
        "uq_capacities_event_live",
        "capacities",
        ["event_id"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
    )

    # Reservation holds table
    op.create_table(
        "reservation_holds",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("capacity_id", sa.Integer(), sa.ForeignKey("capacities.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("released_reason", sa.String(20), nullable=True),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0", name="check_hold_quantity_positive"),
        sa.CheckConstraint("status IN ('active', 'released', 'consumed')", name="check_hold_status"),
        sa.CheckConstraint(
            "released_reason IS NULL OR released_reason IN ('cancelled', 'expired')",
            name="check_hold_released_reason",
        ),
    )
    op.create_index("ix_reservation_holds_id", "reservation_holds", ["id"])
    op.create_index("ix_reservation_holds_event_id", "reservation_holds", ["event_id"])
    op.create_index("ix_reservation_holds_capacity_id", "reservation_holds", ["capacity_id"])
    # The reconciliation sweep scans WHERE status = 'active' AND expires_at < now
    op.create_index("ix_reservation_holds_status_expires", "reservation_holds", ["status", "expires_at"])

    # Group registrations table
    op.create_table(
        "group_registrations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("group_code", sa.String(20), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("organizer_id", sa.Integer(), nullable=False),
        sa.Column("hold_id", sa.Integer(), sa.ForeignKey("reservation_holds.id"), nullable=True),
        sa.Column("participant_count", sa.Integer(), nullable=False),
        sa.Column("base_price", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("group_discount_percent", sa.Numeric(5, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("final_price", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'BORRADOR'")),
        sa.Column("payment_reference", sa.String(100), nullable=True),
        sa.Column("reservation_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("company_name", sa.String(255), nullable=True),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("hold_id", name="uq_group_registrations_hold_id"),
        sa.CheckConstraint("participant_count > 0", name="check_group_participants_positive"),
        sa.CheckConstraint("final_price >= 0", name="check_group_final_price_non_negative"),
        sa.CheckConstraint(
            "status IN ('BORRADOR', 'PENDIENTE_PAGO', 'PAGADO', 'CONFIRMADO', "
            "'CANCELADO', 'EXPIRADO', 'REEMBOLSADO')",
            name="check_group_status",
        ),
    )
    op.create_index("ix_group_registrations_id", "group_registrations", ["id"])
    op.create_index("ix_group_registrations_group_code", "group_registrations", ["group_code"], unique=True)
    op.create_index("ix_group_registrations_event_id", "group_registrations", ["event_id"])
    op.create_index("ix_group_registrations_organizer_id", "group_registrations", ["organizer_id"])
    op.create_index("ix_group_registrations_status", "group_registrations", ["status"])
    op.create_index(
        "ix_group_registrations_reservation_expires_at", "group_registrations", ["reservation_expires_at"]
    )
    op.create_index("ix_group_registrations_event_status", "group_registrations", ["event_id", "status"])


def downgrade() -> None:
    op.drop_table("group_registrations")
    op.drop_table("reservation_holds")
    op.drop_table("capacities")
    op.drop_table("events")
