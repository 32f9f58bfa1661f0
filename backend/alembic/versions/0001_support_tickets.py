"""support tickets and conversation log

Revision ID: 0001_support_tickets
Revises:
Create Date: 2026-10-19 10:00:00
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_support_tickets"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    support_ticket_status = postgresql.ENUM("open", "in-progress", "closed", name="support_ticket_status", create_type=False)
    support_ticket_status.create(op.get_bind(), checkfirst=True)
    support_sender_kind = postgresql.ENUM("admin", "user", "anonymous", name="support_sender_kind", create_type=False)
    support_sender_kind.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "support_tickets",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("user_name", sa.String(length=120), nullable=False),
        sa.Column("user_email", sa.String(length=320), nullable=False),
        sa.Column("project_id", sa.String(length=64), nullable=True),
        sa.Column("project_name", sa.String(length=200), nullable=False),
        sa.Column("status", support_ticket_status, nullable=False, server_default=sa.text("'open'")),
        sa.Column("is_anonymous", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("attachments_json", sa.JSON(), nullable=True),
        sa.Column("last_message_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_support_tickets_status", "support_tickets", ["status"], unique=False)
    op.create_index("ix_support_tickets_user_email", "support_tickets", ["user_email"], unique=False)
    op.create_index("ix_support_tickets_updated_at", "support_tickets", ["updated_at"], unique=False)

    op.create_table(
        "support_ticket_messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("ticket_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("support_tickets.id"), nullable=False),
        sa.Column("sender_kind", support_sender_kind, nullable=False),
        sa.Column("sender", sa.String(length=120), nullable=False),
        sa.Column("sender_info", sa.String(length=320), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_support_ticket_messages_ticket_id_timestamp",
        "support_ticket_messages",
        ["ticket_id", "timestamp"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_support_ticket_messages_ticket_id_timestamp", table_name="support_ticket_messages")
    op.drop_table("support_ticket_messages")

    op.drop_index("ix_support_tickets_updated_at", table_name="support_tickets")
    op.drop_index("ix_support_tickets_user_email", table_name="support_tickets")
    op.drop_index("ix_support_tickets_status", table_name="support_tickets")
    op.drop_table("support_tickets")

    support_sender_kind = postgresql.ENUM("admin", "user", "anonymous", name="support_sender_kind", create_type=False)
    support_sender_kind.drop(op.get_bind(), checkfirst=True)
    support_ticket_status = postgresql.ENUM("open", "in-progress", "closed", name="support_ticket_status", create_type=False)
    support_ticket_status.drop(op.get_bind(), checkfirst=True)
