from __future__ import annotations

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Float,
    Integer,
    String,
    Text,
    false,
    true,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Bump together with a new Alembic revision that writes the same value into
# ``app_schema``. Snapshots carry this number as ``schemaVersion``.
SCHEMA_VERSION: int = 2


class Base(DeclarativeBase):
    pass


# Timestamps and calendar dates are stored as ISO-8601 text and kept verbatim,
# so snapshot rows are plain JSON values and restore byte-for-byte.


# ---------------------------
# Core: transactions
# ---------------------------


class TransactionRow(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    type: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String, nullable=False)
    date: Mapped[str] = mapped_column(String, nullable=False, index=True)
    category_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    payment_method: Mapped[str] = mapped_column(String, nullable=False)
    # Reserved for field-level encryption; currently plaintext.
    encrypted_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    encrypted_merchant: Mapped[str | None] = mapped_column(Text, nullable=True)
    encrypted_metadata: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_recurring: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=false()
    )
    # JSON text: {"frequency": ..., "weekdays"?: [...], "monthDay"?: n}
    recurring_rule: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        CheckConstraint("type in ('expense','income')", name="ck_transactions_type"),
    )


# ---------------------------
# Budgets and categories
# ---------------------------


class BudgetRow(Base):
    __tablename__ = "budgets"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # NULL means the overall budget.
    category_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    period: Mapped[str] = mapped_column(String, nullable=False)
    period_start_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    limit_amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String, nullable=False)
    alert_threshold_percent: Mapped[float] = mapped_column(Float, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=true())
    created_at: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "period in ('monthly','weekly','custom')", name="ck_budgets_period"
        ),
    )


class CategoryRow(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    icon: Mapped[str | None] = mapped_column(String, nullable=True)
    color_hex: Mapped[str | None] = mapped_column(String, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())
    created_at: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[str] = mapped_column(String, nullable=False)


# ---------------------------
# Settings, alerts, training data
# ---------------------------


class UserSettingsRow(Base):
    __tablename__ = "user_settings"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    currency: Mapped[str] = mapped_column(String, nullable=False)
    theme: Mapped[str] = mapped_column(String, nullable=False)
    pin_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())
    biometric_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=false()
    )
    ai_suggestions_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=true()
    )
    budget_alerts_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=true()
    )
    onboarding_completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=false()
    )
    # Added in schema version 2.
    avatar_base64: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[str] = mapped_column(String, nullable=False)


class AlertRuleRow(Base):
    __tablename__ = "alert_rules"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    type: Mapped[str] = mapped_column(String, nullable=False)
    budget_id: Mapped[str | None] = mapped_column(String, nullable=True)
    category_id: Mapped[str | None] = mapped_column(String, nullable=True)
    threshold_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=true())
    created_at: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[str] = mapped_column(String, nullable=False)


class TrainingExampleRow(Base):
    __tablename__ = "ai_training_examples"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    transaction_id: Mapped[str] = mapped_column(String, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[str] = mapped_column(String, nullable=False)


# ---------------------------
# Schema-version marker
# ---------------------------


class AppSchemaRow(Base):
    """Single-row table holding the integer schema version (id is always 1)."""

    __tablename__ = "app_schema"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)


# Snapshot key -> table, in restore order.
ENTITY_TABLES = {
    "categories": CategoryRow.__table__,
    "budgets": BudgetRow.__table__,
    "transactions": TransactionRow.__table__,
    "userSettings": UserSettingsRow.__table__,
    "alertRules": AlertRuleRow.__table__,
    "aiTrainingExamples": TrainingExampleRow.__table__,
}


__all__ = [
    "SCHEMA_VERSION",
    "Base",
    "ENTITY_TABLES",
    "AlertRuleRow",
    "AppSchemaRow",
    "BudgetRow",
    "CategoryRow",
    "TrainingExampleRow",
    "TransactionRow",
    "UserSettingsRow",
]
