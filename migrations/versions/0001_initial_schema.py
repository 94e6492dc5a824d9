"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    insp = inspect(bind)
    existing_tables = set(insp.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=320), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("role", sa.String(length=32), nullable=False, server_default="USER"),
            sa.Column("status", sa.String(length=32), nullable=False, server_default="PENDING"),
            sa.Column("is_blocked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("telegram", sa.String(length=128), nullable=True),
            sa.Column("last_login_at", sa.DateTime(timezone=False), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("email", name="uq_users_email"),
        )
        op.create_index("idx_users_role", "users", ["role"])
        op.create_index("idx_users_status", "users", ["status"])

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
            sa.Column("request_id", sa.String(length=64), nullable=True),
            sa.Column("client_ip", sa.String(length=64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_user_email", sa.String(length=320), nullable=True),
            sa.Column("action", sa.String(length=128), nullable=False),
            sa.Column("entity_type", sa.String(length=128), nullable=True),
            sa.Column("entity_id", sa.String(length=128), nullable=True),
            sa.Column("reason", sa.String(length=512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
        )
        op.create_index("idx_audit_events_action", "audit_events", ["action"])

    # Shifts
    if "shift_settings" not in existing_tables:
        op.create_table(
            "shift_settings",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("shift_type", sa.String(length=16), nullable=False),
            sa.Column("name", sa.String(length=128), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("start_hour", sa.Integer(), nullable=False),
            sa.Column("start_minute", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("end_hour", sa.Integer(), nullable=False),
            sa.Column("end_minute", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("timezone", sa.String(length=8), nullable=False, server_default="+3"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            *_timestamps(),
            sa.UniqueConstraint("shift_type", name="uq_shift_settings_shift_type"),
        )

    if "processor_shifts" not in existing_tables:
        op.create_table(
            "processor_shifts",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("processor_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("shift_type", sa.String(length=16), nullable=False),
            sa.Column("shift_date", sa.Date(), nullable=False),
            sa.Column("scheduled_start", sa.DateTime(timezone=False), nullable=False),
            sa.Column("scheduled_end", sa.DateTime(timezone=False), nullable=False),
            sa.Column("actual_start", sa.DateTime(timezone=False), nullable=True),
            sa.Column("actual_end", sa.DateTime(timezone=False), nullable=True),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="SCHEDULED"),
            sa.Column("notes", sa.Text(), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("processor_id", "shift_date", name="uq_processor_shifts_processor_date"),
        )
        op.create_index("idx_processor_shifts_status", "processor_shifts", ["status"])
        op.create_index("idx_processor_shifts_date", "processor_shifts", ["shift_date"])

    # Salary
    if "salary_settings" not in existing_tables:
        op.create_table(
            "salary_settings",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("hourly_rate", sa.Float(), nullable=False, server_default="2.0"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        )

    if "salary_requests" not in existing_tables:
        op.create_table(
            "salary_requests",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("processor_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("period_start", sa.DateTime(timezone=False), nullable=False),
            sa.Column("period_end", sa.DateTime(timezone=False), nullable=False),
            sa.Column("requested_amount", sa.Float(), nullable=False),
            sa.Column("calculated_amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("payment_details", sa.Text(), nullable=True),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
            sa.Column("admin_comment", sa.Text(), nullable=True),
            sa.Column("reviewed_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(timezone=False), nullable=True),
            sa.Column("paid_at", sa.DateTime(timezone=False), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_salary_requests_processor", "salary_requests", ["processor_id"])
        op.create_index("idx_salary_requests_status", "salary_requests", ["status"])

    # Deposits
    if "deposits" not in existing_tables:
        op.create_table(
            "deposits",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("processor_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("player_id", sa.String(length=128), nullable=True),
            sa.Column("player_nick", sa.String(length=255), nullable=True),
            sa.Column("player_email", sa.String(length=320), nullable=False),
            sa.Column("amount", sa.Float(), nullable=False),
            sa.Column("currency", sa.String(length=16), nullable=False),
            sa.Column("currency_type", sa.String(length=8), nullable=False, server_default="FIAT"),
            sa.Column("payment_method", sa.String(length=128), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("bonus_rate", sa.Float(), nullable=False, server_default="0"),
            sa.Column("bonus_amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("platform_commission_percent", sa.Float(), nullable=False, server_default="0"),
            sa.Column("platform_commission_amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("processor_earnings", sa.Float(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
            *_timestamps(),
        )
        op.create_index("idx_deposits_processor_created", "deposits", ["processor_id", "created_at"])
        op.create_index("idx_deposits_status", "deposits", ["status"])
        op.create_index("idx_deposits_player_email", "deposits", ["player_email"])

    # Bonuses
    if "bonus_grid" not in existing_tables:
        op.create_table(
            "bonus_grid",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("min_amount", sa.Float(), nullable=False),
            sa.Column("max_amount", sa.Float(), nullable=True),
            sa.Column("bonus_percentage", sa.Float(), nullable=False),
            sa.Column("fixed_bonus", sa.Float(), nullable=True),
            sa.Column("fixed_bonus_min", sa.Float(), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            *_timestamps(),
        )
        op.create_index("idx_bonus_grid_min_amount", "bonus_grid", ["min_amount"])

    if "platform_commission" not in existing_tables:
        op.create_table(
            "platform_commission",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("commission_percent", sa.Float(), nullable=False, server_default="5.0"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        )

    if "monthly_bonus_plans" not in existing_tables:
        op.create_table(
            "monthly_bonus_plans",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("min_amount", sa.Float(), nullable=False),
            sa.Column("bonus_percent", sa.Float(), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            *_timestamps(),
        )

    if "bonus_payments" not in existing_tables:
        op.create_table(
            "bonus_payments",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("processor_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("deposit_id", sa.Integer(), sa.ForeignKey("deposits.id", ondelete="SET NULL"), nullable=True),
            sa.Column("type", sa.String(length=32), nullable=False),
            sa.Column("amount", sa.Float(), nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("period_start", sa.DateTime(timezone=False), nullable=True),
            sa.Column("period_end", sa.DateTime(timezone=False), nullable=True),
            sa.Column("held_until", sa.DateTime(timezone=False), nullable=True),
            sa.Column("paid_at", sa.DateTime(timezone=False), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_bonus_payments_processor", "bonus_payments", ["processor_id"])
        op.create_index("idx_bonus_payments_status", "bonus_payments", ["status"])

    # Documentation
    if "doc_sections" not in existing_tables:
        op.create_table(
            "doc_sections",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("key", sa.String(length=128), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_visible", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            *_timestamps(),
            sa.UniqueConstraint("key", name="uq_doc_sections_key"),
        )

    if "doc_pages" not in existing_tables:
        op.create_table(
            "doc_pages",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("slug", sa.String(length=255), nullable=False),
            sa.Column("content", sa.Text(), nullable=False, server_default=""),
            sa.Column("section_id", sa.Integer(), sa.ForeignKey("doc_sections.id", ondelete="CASCADE"), nullable=False),
            sa.Column("parent_id", sa.Integer(), sa.ForeignKey("doc_pages.id", ondelete="SET NULL"), nullable=True),
            sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            *_timestamps(),
            sa.UniqueConstraint("slug", name="uq_doc_pages_slug"),
            sa.UniqueConstraint("section_id", "title", name="uq_doc_pages_section_title"),
        )
        op.create_index("idx_doc_pages_section_order", "doc_pages", ["section_id", "order"])

    if "courses" not in existing_tables:
        op.create_table(
            "courses",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("slug", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=64), nullable=False, server_default="general"),
            sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            *_timestamps(),
            sa.UniqueConstraint("slug", name="uq_courses_slug"),
        )

    # Finance
    if "finance_accounts" not in existing_tables:
        op.create_table(
            "finance_accounts",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("type", sa.String(length=32), nullable=False, server_default="OTHER"),
            sa.Column("currency", sa.String(length=16), nullable=False, server_default="USD"),
            sa.Column("balance", sa.Float(), nullable=False, server_default="0"),
            sa.Column("commission", sa.Float(), nullable=False, server_default="0"),
            sa.Column("cryptocurrencies_json", sa.Text(), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            *_timestamps(),
        )

    if "finance_categories" not in existing_tables:
        op.create_table(
            "finance_categories",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("type", sa.String(length=16), nullable=False, server_default="EXPENSE"),
            sa.Column("color", sa.String(length=16), nullable=False, server_default="#3B82F6"),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            *_timestamps(),
        )

    if "finance_counterparties" not in existing_tables:
        op.create_table(
            "finance_counterparties",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("type", sa.String(length=32), nullable=False, server_default="CLIENT"),
            sa.Column("email", sa.String(length=320), nullable=True),
            sa.Column("phone", sa.String(length=64), nullable=True),
            sa.Column("address", sa.Text(), nullable=True),
            sa.Column("tax_number", sa.String(length=64), nullable=True),
            sa.Column("bank_details", sa.Text(), nullable=True),
            sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            *_timestamps(),
        )

    if "finance_projects" not in existing_tables:
        op.create_table(
            "finance_projects",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="ACTIVE"),
            sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            *_timestamps(),
        )

    if "finance_transactions" not in existing_tables:
        op.create_table(
            "finance_transactions",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("account_id", sa.Integer(), sa.ForeignKey("finance_accounts.id", ondelete="CASCADE"), nullable=False),
            sa.Column("category_id", sa.Integer(), sa.ForeignKey("finance_categories.id", ondelete="SET NULL"), nullable=True),
            sa.Column(
                "counterparty_id",
                sa.Integer(),
                sa.ForeignKey("finance_counterparties.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("project_id", sa.Integer(), sa.ForeignKey("finance_projects.id", ondelete="SET NULL"), nullable=True),
            sa.Column("type", sa.String(length=16), nullable=False),
            sa.Column("amount", sa.Float(), nullable=False),
            sa.Column("commission_percent", sa.Float(), nullable=False, server_default="0"),
            sa.Column("commission_amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("net_amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("date", sa.DateTime(timezone=False), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )
        op.create_index("idx_finance_transactions_account_date", "finance_transactions", ["account_id", "date"])
        op.create_index("idx_finance_transactions_date", "finance_transactions", ["date"])


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        "finance_transactions",
        "finance_projects",
        "finance_counterparties",
        "finance_categories",
        "finance_accounts",
        "courses",
        "doc_pages",
        "doc_sections",
        "bonus_payments",
        "monthly_bonus_plans",
        "platform_commission",
        "bonus_grid",
        "deposits",
        "salary_requests",
        "salary_settings",
        "processor_shifts",
        "shift_settings",
        "audit_events",
        "users",
    ):
        op.drop_table(table)
