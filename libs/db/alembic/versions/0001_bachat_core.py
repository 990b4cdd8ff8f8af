# ruff: noqa: I001
"""Local entity tables and the schema-version marker.

Revision ID: 0001_bachat_core
Revises: None
Create Date: 2025-11-16
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_bachat_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.String(), nullable=False),
        sa.Column("updated_at", sa.String(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "transactions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(), nullable=False),
        sa.Column("date", sa.String(), nullable=False),
        sa.Column("category_id", sa.String(), nullable=True),
        sa.Column("payment_method", sa.String(), nullable=False),
        sa.Column("encrypted_note", sa.Text(), nullable=True),
        sa.Column("encrypted_merchant", sa.Text(), nullable=True),
        sa.Column("encrypted_metadata", sa.Text(), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("recurring_rule", sa.Text(), nullable=True),
        sa.Column("source", sa.String(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("type in ('expense','income')", name="ck_transactions_type"),
    )
    op.create_index("ix_transactions_date", "transactions", ["date"])
    op.create_index("ix_transactions_category_id", "transactions", ["category_id"])

    op.create_table(
        "budgets",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("category_id", sa.String(), nullable=True),
        sa.Column("period", sa.String(), nullable=False),
        sa.Column("period_start_day", sa.Integer(), nullable=True),
        sa.Column("limit_amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(), nullable=False),
        sa.Column("alert_threshold_percent", sa.Float(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("period in ('monthly','weekly','custom')", name="ck_budgets_period"),
    )
    op.create_index("ix_budgets_category_id", "budgets", ["category_id"])

    op.create_table(
        "categories",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("icon", sa.String(), nullable=True),
        sa.Column("color_hex", sa.String(), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table(
        "user_settings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("currency", sa.String(), nullable=False),
        sa.Column("theme", sa.String(), nullable=False),
        sa.Column("pin_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("biometric_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "ai_suggestions_enabled", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column("budget_alerts_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "onboarding_completed", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        *_timestamps(),
    )

    op.create_table(
        "alert_rules",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("budget_id", sa.String(), nullable=True),
        sa.Column("category_id", sa.String(), nullable=True),
        sa.Column("threshold_percent", sa.Float(), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "ai_training_examples",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("transaction_id", sa.String(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("category_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.String(), nullable=False),
    )

    app_schema = op.create_table(
        "app_schema",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("version", sa.Integer(), nullable=False),
    )
    op.bulk_insert(app_schema, [{"id": 1, "version": 1}])


def downgrade() -> None:
    op.drop_table("app_schema")
    op.drop_table("ai_training_examples")
    op.drop_table("alert_rules")
    op.drop_table("user_settings")
    op.drop_table("categories")
    op.drop_index("ix_budgets_category_id", table_name="budgets")
    op.drop_table("budgets")
    op.drop_index("ix_transactions_category_id", table_name="transactions")
    op.drop_index("ix_transactions_date", table_name="transactions")
    op.drop_table("transactions")
