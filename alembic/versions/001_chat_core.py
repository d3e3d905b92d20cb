"""Chat core tables for the global region.

Creates users, blocked_users, reports, contacts, email_verification_codes,
devices, revoked_sessions, workspace_members, conversations,
conversation_members and messages.

Revision ID: 001_chat_core
Revises: None
Create Date: 2026-10-17
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "001_chat_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_ID = sa.String(32)


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    """Create the chat core schema."""
    # --- Users and social graph ---
    op.create_table(
        "users",
        sa.Column("id", _ID, primary_key=True),
        sa.Column("email", sa.String(320), nullable=True, unique=True),
        sa.Column("username", sa.String(64), nullable=False, server_default=""),
        sa.Column("full_name", sa.String(128), nullable=False, server_default=""),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("password_hash", sa.String(256), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="offline"),
        _ts("last_seen_at"),
        sa.Column("region", sa.String(16), nullable=False, server_default="global"),
        sa.Column("allow_non_friend_messages", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("status IN ('online', 'offline', 'away', 'busy')", name="ck_users_status"),
        sa.CheckConstraint("region IN ('cn', 'global')", name="ck_users_region"),
    )

    op.create_table(
        "blocked_users",
        sa.Column("id", _ID, primary_key=True),
        sa.Column("blocker_id", _ID, nullable=False),
        sa.Column("blocked_id", _ID, nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        _ts("created_at"),
        sa.UniqueConstraint("blocker_id", "blocked_id", name="uq_blocked_users_pair"),
    )
    op.create_index("ix_blocked_users_blocker_id", "blocked_users", ["blocker_id"])
    op.create_index("ix_blocked_users_blocked_id", "blocked_users", ["blocked_id"])

    op.create_table(
        "reports",
        sa.Column("id", _ID, primary_key=True),
        sa.Column("reporter_id", _ID, nullable=False),
        sa.Column("reported_user_id", _ID, nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("handled_by", _ID, nullable=True),
        _ts("handled_at"),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint(
            "status IN ('pending', 'reviewing', 'resolved', 'dismissed')",
            name="ck_reports_status",
        ),
    )
    op.create_index("ix_reports_reporter_id", "reports", ["reporter_id"])
    op.create_index("ix_reports_reported_user_id", "reports", ["reported_user_id"])
    op.create_index("ix_reports_status", "reports", ["status"])

    op.create_table(
        "contacts",
        sa.Column("id", _ID, primary_key=True),
        sa.Column("user_id", _ID, nullable=False),
        sa.Column("contact_user_id", _ID, nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("user_id", "contact_user_id", name="uq_contacts_pair"),
    )
    op.create_index("ix_contacts_user_id", "contacts", ["user_id"])
    op.create_index("ix_contacts_contact_user_id", "contacts", ["contact_user_id"])

    # --- Verification codes and sessions ---
    op.create_table(
        "email_verification_codes",
        sa.Column("id", _ID, primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("code_hash", sa.String(128), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ip_address", sa.String(64), nullable=True),
        _ts("created_at", nullable=False),
        _ts("expires_at", nullable=False),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("verified_at"),
    )
    op.create_index(
        "ix_email_verification_codes_lookup",
        "email_verification_codes",
        ["email", "type", "created_at"],
    )

    op.create_table(
        "devices",
        sa.Column("id", _ID, primary_key=True),
        sa.Column("user_id", _ID, nullable=False),
        sa.Column("device_name", sa.String(128), nullable=False),
        sa.Column("device_type", sa.String(16), nullable=False),
        sa.Column("browser", sa.String(64), nullable=True),
        sa.Column("os", sa.String(64), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("location", sa.String(128), nullable=True),
        sa.Column("session_token", sa.String(128), nullable=True),
        _ts("last_active_at"),
        _ts("created_at"),
    )
    op.create_index("ix_devices_user_id", "devices", ["user_id"])
    op.create_index("ix_devices_session_token", "devices", ["session_token"])

    op.create_table(
        "revoked_sessions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", _ID, nullable=True),
        _ts("revoked_at", nullable=False),
    )

    # --- Workspaces and conversations ---
    op.create_table(
        "workspace_members",
        sa.Column("id", _ID, primary_key=True),
        sa.Column("workspace_id", _ID, nullable=False),
        sa.Column("user_id", _ID, nullable=False),
        sa.Column("role", sa.String(16), nullable=False, server_default="member"),
        _ts("joined_at"),
        sa.UniqueConstraint("workspace_id", "user_id", name="uq_workspace_members_pair"),
    )
    op.create_index("ix_workspace_members_workspace_id", "workspace_members", ["workspace_id"])
    op.create_index("ix_workspace_members_user_id", "workspace_members", ["user_id"])

    op.create_table(
        "conversations",
        sa.Column("id", _ID, primary_key=True),
        sa.Column("workspace_id", _ID, nullable=False),
        sa.Column("type", sa.String(16), nullable=False, server_default="direct"),
        sa.Column("name", sa.String(128), nullable=True),
        sa.Column("is_private", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_by", _ID, nullable=False),
        _ts("created_at"),
        _ts("last_message_at"),
    )
    op.create_index("ix_conversations_workspace_id", "conversations", ["workspace_id"])

    op.create_table(
        "conversation_members",
        sa.Column("id", _ID, primary_key=True),
        sa.Column("conversation_id", _ID, nullable=False),
        sa.Column("user_id", _ID, nullable=False),
        sa.Column("role", sa.String(16), nullable=False, server_default="member"),
        _ts("joined_at"),
        sa.UniqueConstraint("conversation_id", "user_id", name="uq_conversation_members_pair"),
    )
    op.create_index("ix_conversation_members_conversation_id", "conversation_members", ["conversation_id"])
    op.create_index("ix_conversation_members_user_id", "conversation_members", ["user_id"])

    op.create_table(
        "messages",
        sa.Column("id", _ID, primary_key=True),
        sa.Column("conversation_id", _ID, nullable=False),
        sa.Column("sender_id", _ID, nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False, server_default="text"),
        sa.Column("extra", sa.JSON(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
    )
    op.create_index("ix_messages_conversation_created", "messages", ["conversation_id", "created_at"])


def downgrade() -> None:
    """Drop the chat core schema."""
    for table in (
        "messages",
        "conversation_members",
        "conversations",
        "workspace_members",
        "revoked_sessions",
        "devices",
        "email_verification_codes",
        "contacts",
        "reports",
        "blocked_users",
        "users",
    ):
        op.drop_table(table)
