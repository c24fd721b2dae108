"""initial crm schema

Revision ID: 4e2a9c7b1d03
Revises:
Create Date: 2026-10-16 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4e2a9c7b1d03'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    """Create users, companies, contacts, company_assignments, activity_logs, and user_sessions."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("username", sa.String(150), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("email", sa.String(320), nullable=True),
            sa.Column("role", sa.String(16), nullable=False, server_default="user"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.CheckConstraint("role IN ('admin', 'user')", name="ck_users_role"),
        )
        op.create_index("ix_users_deleted_at", "users", ["deleted_at"])

    if "companies" not in existing_tables:
        op.create_table(
            "companies",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("name_kana", sa.String(255), nullable=True),
            sa.Column("postal_code", sa.String(32), nullable=True),
            sa.Column("address", sa.Text(), nullable=True),
            sa.Column("phone", sa.String(64), nullable=True),
            sa.Column("fax", sa.String(64), nullable=True),
            sa.Column("email", sa.String(320), nullable=True),
            sa.Column("website", sa.String(512), nullable=True),
            sa.Column("industry", sa.String(128), nullable=True),
            sa.Column("employee_count", sa.Integer(), nullable=True),
            sa.Column("capital", sa.BigInteger(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_companies_name", "companies", ["name"])
        op.create_index("ix_companies_deleted_at", "companies", ["deleted_at"])

    if "contacts" not in existing_tables:
        op.create_table(
            "contacts",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("name_kana", sa.String(255), nullable=True),
            sa.Column("department", sa.String(255), nullable=True),
            sa.Column("position", sa.String(255), nullable=True),
            sa.Column("phone", sa.String(64), nullable=True),
            sa.Column("mobile", sa.String(64), nullable=True),
            sa.Column("email", sa.String(320), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_contacts_company_id", "contacts", ["company_id"])
        op.create_index("ix_contacts_deleted_at", "contacts", ["deleted_at"])

    if "company_assignments" not in existing_tables:
        op.create_table(
            "company_assignments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("assigned_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("notes", sa.Text(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_company_assignments_company_id", "company_assignments", ["company_id"])
        op.create_index("idx_company_assignments_user_id", "company_assignments", ["user_id"])
        op.create_index("ix_company_assignments_deleted_at", "company_assignments", ["deleted_at"])

    if "activity_logs" not in existing_tables:
        op.create_table(
            "activity_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("activity_date", sa.DateTime(), nullable=False),
            sa.Column("activity_type", sa.String(32), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("next_action_date", sa.DateTime(), nullable=True),
            sa.Column("next_action_content", sa.Text(), nullable=True),
            *_timestamps(),
            sa.CheckConstraint(
                "activity_type IN ('visit', 'phone', 'email', 'web_meeting', 'other')",
                name="ck_activity_logs_activity_type",
            ),
        )
        op.create_index("idx_activity_logs_company_id", "activity_logs", ["company_id"])
        op.create_index("idx_activity_logs_user_id", "activity_logs", ["user_id"])
        op.create_index("idx_activity_logs_activity_date", "activity_logs", ["activity_date"])
        op.create_index("idx_activity_logs_next_action_date", "activity_logs", ["next_action_date"])
        op.create_index("ix_activity_logs_deleted_at", "activity_logs", ["deleted_at"])

    if "user_sessions" not in existing_tables:
        op.create_table(
            "user_sessions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("username", sa.String(150), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("role", sa.String(16), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("last_seen_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
        )
        op.create_index("idx_user_sessions_user_id", "user_sessions", ["user_id"])
        op.create_index("idx_user_sessions_expires_at", "user_sessions", ["expires_at"])


def downgrade() -> None:
    """Drop all CRM tables (children first)."""
    op.drop_table("user_sessions")
    op.drop_table("activity_logs")
    op.drop_table("company_assignments")
    op.drop_table("contacts")
    op.drop_table("companies")
    op.drop_table("users")
