"""initial: users, dtr_entries, import_history, nap_reports

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column(
            "role",
            sa.Enum("intern", "staff", "unit_manager", "admin", name="user_role"),
            nullable=False,
            server_default="intern",
        ),
        sa.Column("supervisor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("required_hours", sa.Float(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("zoom_access_token", sa.Text(), nullable=True),
        sa.Column("zoom_refresh_token", sa.Text(), nullable=True),
        sa.Column("zoom_token_expiry", sa.DateTime(timezone=True), nullable=True),
        sa.Column("zoom_user_id", sa.String(255), nullable=True),
        sa.Column("zoom_email", sa.String(255), nullable=True),
        sa.Column("zoom_connected", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("zoom_connected_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["supervisor_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_supervisor_id", "users", ["supervisor_id"])

    # --- dtr_entries ---
    op.create_table(
        "dtr_entries",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time_in", sa.DateTime(timezone=True), nullable=False),
        sa.Column("time_out", sa.DateTime(timezone=True), nullable=True),
        sa.Column("hours_worked", sa.Float(), nullable=False, server_default="0"),
        sa.Column("accomplishment", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "time_in", name="uq_dtr_entry_dedup"),
    )
    op.create_index("ix_dtr_entries_user_date", "dtr_entries", ["user_id", "date"])

    # --- import_history ---
    op.create_table(
        "import_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("uploaded_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "uploaded_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("success", "partial", "failed", name="import_status_enum"),
            nullable=False,
        ),
        sa.Column("logs", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.ForeignKeyConstraint(["uploaded_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )

    # --- nap_reports ---
    op.create_table(
        "nap_reports",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("agent_name", sa.String(255), nullable=False),
        sa.Column("agent_code", sa.String(64), nullable=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("report_start_date", sa.Date(), nullable=False),
        sa.Column("report_end_date", sa.Date(), nullable=False),
        sa.Column("monthly", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("total_cc", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_sale", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_lapsed", sa.Float(), nullable=False, server_default="0"),
        sa.Column("active_months", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("source_filename", sa.String(255), nullable=True),
        sa.Column(
            "parsed_by",
            sa.Enum("gemini", "regex", "manual", name="nap_parsed_by_enum"),
            nullable=False,
            server_default="gemini",
        ),
        sa.Column("confidence", sa.Float(), nullable=False, server_default="1"),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_nap_reports_agent_period",
        "nap_reports",
        ["agent_name", "report_start_date", "report_end_date"],
    )
    op.create_index("ix_nap_reports_agent_code", "nap_reports", ["agent_code"])


def downgrade() -> None:
    op.drop_index("ix_nap_reports_agent_code", table_name="nap_reports")
    op.drop_index("ix_nap_reports_agent_period", table_name="nap_reports")
    op.drop_table("nap_reports")
    op.drop_table("import_history")
    op.drop_index("ix_dtr_entries_user_date", table_name="dtr_entries")
    op.drop_table("dtr_entries")
    op.drop_index("ix_users_supervisor_id", table_name="users")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS nap_parsed_by_enum")
    op.execute("DROP TYPE IF EXISTS import_status_enum")
    op.execute("DROP TYPE IF EXISTS user_role")
