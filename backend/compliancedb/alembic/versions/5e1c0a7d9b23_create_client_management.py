"""create accounts, client management, audit and email log tables

Revision ID: 5e1c0a7d9b23
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "5e1c0a7d9b23"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return (
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_accounts_id", "accounts", ["id"])
    op.create_index("ix_accounts_email", "accounts", ["email"], unique=True)
    op.create_index("ix_accounts_role", "accounts", ["role"])
    op.create_index("ix_accounts_is_active", "accounts", ["is_active"])
    op.create_index("ix_accounts_role_active", "accounts", ["role", "is_active"])

    op.create_table(
        "client_management",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "manager_id",
            sa.String(length=36),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("client_limit", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("active_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_client_management_id", "client_management", ["id"])
    op.create_index("ix_client_management_manager_id", "client_management", ["manager_id"], unique=True)

    op.create_table(
        "client_entries",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "relationship_id",
            sa.String(length=36),
            sa.ForeignKey("client_management.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "client_id",
            sa.String(length=36),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("relationship_id", "client_id", name="uq_client_entries_relationship_client"),
    )
    op.create_index("ix_client_entries_id", "client_entries", ["id"])
    op.create_index("ix_client_entries_relationship_id", "client_entries", ["relationship_id"])
    op.create_index("ix_client_entries_client_id", "client_entries", ["client_id"])
    op.create_index("ix_client_entries_status", "client_entries", ["status"])
    op.create_index("ix_client_entries_relationship_status", "client_entries", ["relationship_id", "status"])
    # At most one live entry per client across every manager.
    op.create_index(
        "uq_client_entries_live_client",
        "client_entries",
        ["client_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'REVOKED'"),
        sqlite_where=sa.text("status <> 'REVOKED'"),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column(
            "actor_account_id",
            sa.String(length=36),
            sa.ForeignKey("accounts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(length=64), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id"])
    op.create_index("ix_audit_events_action", "audit_events", ["entity_type", "action"])
    op.create_index("ix_audit_events_actor_account_id", "audit_events", ["actor_account_id"])
    op.create_index("ix_audit_events_correlation_id", "audit_events", ["correlation_id"])
    op.create_index("ix_audit_events_time_desc", "audit_events", [sa.text("occurred_at DESC")])

    op.create_table(
        "email_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "account_id",
            sa.String(length=36),
            sa.ForeignKey("accounts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recipient", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.String(length=255), nullable=False),
        sa.Column("template_key", sa.String(length=128), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("context_json", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(length=64), nullable=True),
    )
    op.create_index("ix_email_logs_account_created", "email_logs", ["account_id", "created_at"])
    op.create_index("ix_email_logs_status", "email_logs", ["status"])
    op.create_index("ix_email_logs_template_recipient", "email_logs", ["template_key", "recipient"])


def downgrade() -> None:
    op.drop_table("email_logs")
    op.drop_table("audit_events")
    op.drop_index("uq_client_entries_live_client", table_name="client_entries")
    op.drop_table("client_entries")
    op.drop_table("client_management")
    op.drop_table("accounts")
