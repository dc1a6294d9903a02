"""initial schema

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "system_users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="viewer"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("role IN ('admin', 'editor', 'senior', 'viewer')", name="ck_system_users_role"),
    )
    op.create_index("ix_system_users_email", "system_users", ["email"], unique=True)

    op.create_table(
        "sessions",
        sa.Column("session_id", sa.String(128), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("system_users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])
    op.create_index("ix_sessions_expires_at", "sessions", ["expires_at"])

    op.create_table(
        "table_entities",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("table_name", sa.String(63), nullable=False),
        sa.Column("partition_key", sa.String(255), nullable=False),
        sa.Column("row_key", sa.String(255), nullable=False),
        sa.Column("data", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("table_name", "partition_key", "row_key", name="uq_table_entities_key"),
    )
    op.create_index("ix_table_entities_table_name", "table_entities", ["table_name"])


def downgrade() -> None:
    op.drop_index("ix_table_entities_table_name", table_name="table_entities")
    op.drop_table("table_entities")
    op.drop_index("ix_sessions_expires_at", table_name="sessions")
    op.drop_index("ix_sessions_user_id", table_name="sessions")
    op.drop_table("sessions")
    op.drop_index("ix_system_users_email", table_name="system_users")
    op.drop_table("system_users")
