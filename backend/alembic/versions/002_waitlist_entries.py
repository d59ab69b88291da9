"""Waitlist entries.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

WAITING = "status IN ('active', 'notified')"


def upgrade() -> None:
    op.create_table(
        "waitlist_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("organizer_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("offer_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("group_code", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("quantity > 0", name="check_waitlist_quantity_positive"),
        sa.CheckConstraint("position >= 1", name="check_waitlist_position_positive"),
        sa.CheckConstraint(
            "status IN ('active', 'notified', 'confirmed', 'expired', 'cancelled')",
            name="check_waitlist_status",
        ),
    )
    op.create_index("ix_waitlist_entries_id", "waitlist_entries", ["id"])
    op.create_index("ix_waitlist_entries_event_id", "waitlist_entries", ["event_id"])
    op.create_index("ix_waitlist_entries_status", "waitlist_entries", ["status"])
    # The sweep scans notified entries by offer expiry
    op.create_index("ix_waitlist_entries_offer_expires_at", "waitlist_entries", ["offer_expires_at"])
    op.create_index("ix_waitlist_entries_event_status", "waitlist_entries", ["event_id", "status"])
    op.create_index("ix_waitlist_entries_event_position", "waitlist_entries", ["event_id", "position"])
    op.create_index(
        "uq_waitlist_entries_organizer_waiting",
        "waitlist_entries",
        ["event_id", "organizer_id"],
        unique=True,
        postgresql_where=sa.text(WAITING),
        sqlite_where=sa.text(WAITING),
    )


def downgrade() -> None:
    op.drop_table("waitlist_entries")
