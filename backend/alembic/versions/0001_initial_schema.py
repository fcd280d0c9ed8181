"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Creates all tables for the reservations service:
users, events, audit_history.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

event_status = sa.Enum("draft", "pending", "published", "rejected", "deleted", name="eventstatus")


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="requester"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- events ---
    op.create_table(
        "events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), nullable=False),
        sa.Column("status", event_status, nullable=False, server_default="draft"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("previous_status", event_status, nullable=True),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("status_history", sa.JSON, nullable=False),
        sa.Column("pending_edit_request", sa.JSON, nullable=True),
        sa.Column("external_sync", sa.JSON, nullable=True),
        sa.Column("calendar_data", sa.JSON, nullable=False),
        sa.Column("created_by", sa.String(36), nullable=False),
        sa.Column("requester_email", sa.String(255), nullable=True),
        sa.Column("calendar_owner", sa.String(255), nullable=True),
        sa.Column("calendar_id", sa.String(255), nullable=True),
        sa.Column("resubmission_allowed", sa.Boolean, nullable=False, server_default="1"),
        sa.Column("edit_request_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.String(255), nullable=True),
        sa.Column("rejection_reason", sa.String(1000), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("last_modified_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("last_modified_by", sa.String(255), nullable=True),
    )
    op.create_index("ix_events_event_id", "events", ["event_id"], unique=True)
    op.create_index("ix_events_status", "events", ["status"])

    # --- audit_history ---
    op.create_table(
        "audit_history",
        sa.Column("audit_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("performed_by", sa.String(36), nullable=False),
        sa.Column("performed_by_email", sa.String(255), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("previous_state", sa.JSON, nullable=True),
        sa.Column("new_state", sa.JSON, nullable=True),
        sa.Column("changes", sa.JSON, nullable=True),
        sa.Column("metadata", sa.JSON, nullable=True),
    )
    op.create_index("ix_audit_history_event_id", "audit_history", ["event_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_history_event_id", table_name="audit_history")
    op.drop_table("audit_history")
    op.drop_index("ix_events_status", table_name="events")
    op.drop_index("ix_events_event_id", table_name="events")
    op.drop_table("events")
    op.drop_table("users")
    event_status.drop(op.get_bind(), checkfirst=True)
