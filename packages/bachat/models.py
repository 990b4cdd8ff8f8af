"""Data models and type aliases for ``bachat``.

Domain records are immutable dataclasses. Wire documents that cross a trust
boundary (the encrypted backup envelope and the decrypted snapshot) are
pydantic models so malformed input is rejected in one place.

Recurring rules are a tagged variant (``DailyRule | WeeklyRule |
MonthlyRule``). Their JSON text form exists only at the persistence edge; see
:mod:`bachat.rules`.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Recurring rules
# ---------------------------------------------------------------------------

WEEKDAY_TOKENS: tuple[str, ...] = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
"""Wire tokens indexed by ``date.weekday()`` (Monday is 0)."""


@dataclass(frozen=True, slots=True)
class DailyRule:
    frequency: Literal["daily"] = "daily"


@dataclass(frozen=True, slots=True)
class WeeklyRule:
    """Weekly recurrence.

    ``weekdays`` holds ``date.weekday()`` numbers. ``None`` means "the
    template's own weekday".
    """

    weekdays: frozenset[int] | None = None
    frequency: Literal["weekly"] = "weekly"


@dataclass(frozen=True, slots=True)
class MonthlyRule:
    """Monthly recurrence on ``day`` (1..31), clamped to short months.

    ``None`` means "the template's own day of month".
    """

    day: int | None = None
    frequency: Literal["monthly"] = "monthly"


type RecurringRule = DailyRule | WeeklyRule | MonthlyRule


# ---------------------------------------------------------------------------
# Occurrence identity
# ---------------------------------------------------------------------------

_OCCURRENCE_SEP = "__"


@dataclass(frozen=True, slots=True, order=True)
class OccurrenceId:
    """Identity of one computed occurrence of a template transaction.

    Serialized as ``"<template_id>__<YYYY-MM-DD>"``. Equality and ordering
    compare ``(template_id, occurrence_date)``.
    """

    template_id: str
    occurrence_date: date

    def __str__(self) -> str:
        return f"{self.template_id}{_OCCURRENCE_SEP}{self.occurrence_date.isoformat()}"

    @classmethod
    def parse(cls, text: str) -> OccurrenceId | None:
        """Inverse of ``str()``; returns ``None`` when ``text`` is not an occurrence id.

        Splits on the last separator so template ids may themselves contain
        ``"__"``.
        """

        template_id, sep, suffix = text.rpartition(_OCCURRENCE_SEP)
        if not sep or not template_id:
            return None
        try:
            return cls(template_id, date.fromisoformat(suffix))
        except ValueError:
            return None


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

type TransactionType = Literal["expense", "income"]
type TransactionSource = Literal["manual", "csv-import", "ai-generated"]
type BudgetPeriod = Literal["monthly", "weekly", "custom"]


@dataclass(frozen=True, slots=True)
class Transaction:
    """A persisted transaction, or a computed occurrence of a template.

    ``note``, ``merchant`` and ``metadata`` map to the ``encrypted_*`` columns,
    which currently hold plaintext. ``recurring_rule`` is already parsed; a row
    flagged recurring whose rule could not be parsed has ``recurring_rule``
    set to ``None`` and is treated as a one-off everywhere.
    """

    id: str
    type: TransactionType
    amount: float
    currency: str
    date: date
    payment_method: str = "Other"
    category_id: str | None = None
    note: str | None = None
    merchant: str | None = None
    metadata: str | None = None
    is_recurring: bool = False
    recurring_rule: RecurringRule | None = None
    source: TransactionSource = "manual"
    created_at: str = ""
    updated_at: str = ""
    occurrence_of: OccurrenceId | None = None

    @property
    def is_template(self) -> bool:
        return self.is_recurring and self.recurring_rule is not None

    @property
    def is_expense(self) -> bool:
        return self.type == "expense"


@dataclass(frozen=True, slots=True)
class Budget:
    id: str
    limit_amount: float
    category_id: str | None = None
    period: BudgetPeriod = "monthly"
    period_start_day: int | None = None
    currency: str = "INR"
    alert_threshold_percent: float = 80.0
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_overall(self) -> bool:
        return self.category_id is None


@dataclass(frozen=True, slots=True)
class Category:
    id: str
    name: str
    icon: str | None = None
    color_hex: str | None = None
    is_default: bool = False
    created_at: str = ""
    updated_at: str = ""


# ---------------------------------------------------------------------------
# Insights result
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TopCategory:
    id: str
    name: str
    amount: float


@dataclass(frozen=True, slots=True)
class Overview:
    current_month_spend: float
    last_month_spend: float
    percentage_change: float
    top_categories: tuple[TopCategory, ...] = ()


@dataclass(frozen=True, slots=True)
class Spike:
    category_name: str
    amount: float
    date: date


@dataclass(frozen=True, slots=True)
class Subscription:
    merchant: str
    amount: float


@dataclass(frozen=True, slots=True)
class Diagnostics:
    spikes: tuple[Spike, ...] = ()
    recurring_subscriptions: tuple[Subscription, ...] = ()


@dataclass(frozen=True, slots=True)
class BudgetOverrun:
    budget_id: str
    category_name: str
    excess_amount: float


@dataclass(frozen=True, slots=True)
class Predictions:
    expected_month_end_spend: float
    category_overruns: tuple[BudgetOverrun, ...] = ()


@dataclass(frozen=True, slots=True)
class InsightsResult:
    overview: Overview
    diagnostics: Diagnostics
    predictions: Predictions
    recommendations: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Plain JSON-ready mapping (dates rendered as ISO strings)."""

        data = asdict(self)
        for spike in data["diagnostics"]["spikes"]:
            spike["date"] = spike["date"].isoformat()
        data["recommendations"] = list(self.recommendations)
        return data


# ---------------------------------------------------------------------------
# Wire documents
# ---------------------------------------------------------------------------

ENVELOPE_VERSION_CBC: int = 1
ENVELOPE_VERSION_GCM: int = 2
SNAPSHOT_VERSION: int = 1


class Envelope(BaseModel):
    """Encrypted snapshot wrapper: ``{version, cipherText, iv, salt}`` (base64 fields)."""

    model_config = ConfigDict(
        strict=True, extra="forbid", frozen=True, populate_by_name=True
    )

    version: int
    cipher_text: str = Field(alias="cipherText")
    iv: str
    salt: str

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, text: str | bytes) -> Envelope:
        """Validate wire JSON; raises ``pydantic.ValidationError`` when malformed."""

        return cls.model_validate_json(text)


class Snapshot(BaseModel):
    """Full multi-table export of local state.

    Each list holds raw rows keyed by the local store's column names. Every
    table key is required so a truncated document can never silently empty a
    table on restore.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    version: int
    schema_version: int = Field(alias="schemaVersion")
    transactions: list[dict[str, Any]]
    categories: list[dict[str, Any]]
    budgets: list[dict[str, Any]]
    user_settings: list[dict[str, Any]] = Field(alias="userSettings")
    alert_rules: list[dict[str, Any]] = Field(alias="alertRules")
    ai_training_examples: list[dict[str, Any]] = Field(alias="aiTrainingExamples")

    @classmethod
    def from_tables(
        cls, tables: dict[str, list[dict[str, Any]]], *, schema_version: int
    ) -> Snapshot:
        return cls.model_validate(
            {"version": SNAPSHOT_VERSION, "schemaVersion": schema_version, **tables}
        )

    def tables(self) -> dict[str, list[dict[str, Any]]]:
        """Rows keyed by wire table name (``"userSettings"``, ...)."""

        dumped = self.model_dump(by_alias=True)
        dumped.pop("version")
        dumped.pop("schemaVersion")
        return dumped

    def row_counts(self) -> dict[str, int]:
        return {name: len(rows) for name, rows in self.tables().items()}

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


__all__ = [
    "ENVELOPE_VERSION_CBC",
    "ENVELOPE_VERSION_GCM",
    "SNAPSHOT_VERSION",
    "WEEKDAY_TOKENS",
    "Budget",
    "BudgetOverrun",
    "BudgetPeriod",
    "Category",
    "DailyRule",
    "Diagnostics",
    "Envelope",
    "InsightsResult",
    "MonthlyRule",
    "OccurrenceId",
    "Overview",
    "Predictions",
    "RecurringRule",
    "Snapshot",
    "Spike",
    "Subscription",
    "TopCategory",
    "Transaction",
    "TransactionSource",
    "TransactionType",
    "WeeklyRule",
]
