"""Initial PostgreSQL schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create candidate registry, registration history and notifications."""

    op.create_table(
        "candidates",
        sa.Column("contact_id", sa.String(length=20), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("created_by", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("call_status", sa.String(length=100), nullable=True),
        sa.Column(
            "is_locked", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("lock_expiry", sa.DateTime(timezone=True), nullable=True),
        sa.Column("lock_stage", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("contact_id"),
        sa.CheckConstraint("version >= 0", name="ck_candidates_version"),
    )
    op.create_index("idx_candidates_owner", "candidates", ["owner_id"])
    op.create_index("idx_candidates_lock", "candidates", ["is_locked", "lock_expiry"])

    op.create_table(
        "registration_history",
        sa.Column("contact_id", sa.String(length=20), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.PrimaryKeyConstraint("contact_id", "seq"),
        sa.ForeignKeyConstraint(
            ["contact_id"], ["candidates.contact_id"], ondelete="CASCADE"
        ),
        sa.CheckConstraint(
            "status IN ('Active', 'Expired')", name="ck_registration_history_status"
        ),
    )
    op.create_index(
        "idx_registration_history_owner", "registration_history", ["owner_id"]
    )
    # At most one Active claim per candidate
    op.create_index(
        "uq_registration_history_active",
        "registration_history",
        ["contact_id"],
        unique=True,
        postgresql_where=sa.text("status = 'Active'"),
    )

    op.create_table(
        "notifications",
        sa.Column("notification_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("recipient_id", sa.String(length=64), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("kind", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("contact_id", sa.String(length=20), nullable=True),
        sa.Column("acting_employee_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("notification_id"),
    )
    op.create_index(
        "idx_notifications_recipient", "notifications", ["recipient_id", "expires_at"]
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index("idx_notifications_recipient", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("uq_registration_history_active", table_name="registration_history")
    op.drop_index("idx_registration_history_owner", table_name="registration_history")
    op.drop_table("registration_history")
    op.drop_index("idx_candidates_lock", table_name="candidates")
    op.drop_index("idx_candidates_owner", table_name="candidates")
    op.drop_table("candidates")
