"""Local financial insights.

Four read-only sub-computations composed into one :class:`InsightsResult`:

- overview: this month's expense total against last month's, plus the top
  three categories this month;
- diagnostics: per-category spending spikes and distinct recurring
  subscriptions;
- predictions: a linear month-end projection and the budgets it would exceed;
- recommendations: a fixed, ordered rule list over the three results above.

Every function here is pure and takes ``today`` explicitly. Only
:func:`load_insights` touches the store, and only to read.

Ordering notes
--------------
``top_categories`` ranks by total descending; equal totals keep the order in
which their categories first appear in the input. That order is stable for a
given input but otherwise unspecified (store listings are date-descending).
"""

from __future__ import annotations

import calendar
import math
from collections.abc import Iterable, Sequence
from datetime import date, timedelta
from typing import TYPE_CHECKING

from .models import (
    Budget,
    BudgetOverrun,
    Category,
    Diagnostics,
    InsightsResult,
    Overview,
    Predictions,
    Spike,
    Subscription,
    TopCategory,
    Transaction,
)
from .recurrence import expand_for_range

if TYPE_CHECKING:  # pragma: no cover
    from .store import LocalStore

SPIKE_FACTOR = 2.0
SPENDING_INCREASE_THRESHOLD_PCT = 10.0
SUBSCRIPTION_REVIEW_THRESHOLD = 2
TOP_CATEGORY_LIMIT = 3
OVERALL_BUDGET_NAME = "Overall"
DEFAULT_SUBSCRIPTION_NAME = "Subscription"

REC_SPENDING_INCREASED = "Your spending has significantly increased compared to last month."
REC_UNUSUAL_SPIKES = "Unusual spikes in spending detected. Review recent large transactions."
REC_REVIEW_SUBSCRIPTIONS = (
    "You have multiple active subscriptions. Consider cancelling unused ones."
)
REC_LIKELY_OVER_BUDGET = (
    "You are likely to exceed some budget limits this month. Try reducing spend."
)


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


def month_bounds(d: date) -> tuple[date, date]:
    """First and last day of ``d``'s calendar month."""

    last = calendar.monthrange(d.year, d.month)[1]
    return d.replace(day=1), d.replace(day=last)


def _spend(transactions: Iterable[Transaction], start: date, end: date) -> float:
    return math.fsum(t.amount for t in transactions if t.is_expense and start <= t.date <= end)


def _category_names(categories: Iterable[Category]) -> dict[str, str]:
    return {c.id: c.name for c in categories}


# ---------------------------------------------------------------------------
# Overview
# ---------------------------------------------------------------------------


def percentage_change(current: float, previous: float) -> float:
    """Percent change from ``previous`` to ``current``; ``0.0`` when ``previous`` is zero."""

    if previous == 0:
        return 0.0
    return (current - previous) * 100 / previous


def top_categories(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
    *,
    limit: int = TOP_CATEGORY_LIMIT,
) -> tuple[TopCategory, ...]:
    names = _category_names(categories)
    totals: dict[str, float] = {}
    for t in transactions:
        if t.category_id in names:
            totals[t.category_id] = totals.get(t.category_id, 0.0) + t.amount
    # sorted() is stable, also with reverse=True
    ranked = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)
    return tuple(TopCategory(cid, names[cid], total) for cid, total in ranked[:limit])


def monthly_overview(
    transactions: Sequence[Transaction], categories: Sequence[Category], *, today: date
) -> Overview:
    cur_start, cur_end = month_bounds(today)
    prev_start, prev_end = month_bounds(cur_start - timedelta(days=1))

    current = _spend(transactions, cur_start, cur_end)
    previous = _spend(transactions, prev_start, prev_end)
    this_month = [t for t in transactions if t.is_expense and cur_start <= t.date <= cur_end]

    return Overview(
        current_month_spend=current,
        last_month_spend=previous,
        percentage_change=percentage_change(current, previous),
        top_categories=top_categories(this_month, categories),
    )


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


def detect_spikes(
    transactions: Sequence[Transaction], categories: Sequence[Category]
) -> tuple[Spike, ...]:
    """Transactions above ``SPIKE_FACTOR`` x their category's mean amount.

    Transactions without a known category are ignored.
    """

    names = _category_names(categories)
    rows = [t for t in transactions if t.category_id in names]

    amounts: dict[str, list[float]] = {}
    for t in rows:
        amounts.setdefault(t.category_id, []).append(t.amount)  # type: ignore[arg-type]
    means = {cid: math.fsum(vals) / len(vals) for cid, vals in amounts.items()}

    return tuple(
        Spike(category_name=names[t.category_id], amount=t.amount, date=t.date)  # type: ignore[index]
        for t in rows
        if t.amount > means[t.category_id] * SPIKE_FACTOR  # type: ignore[index]
    )


def detect_recurring_subscriptions(
    transactions: Iterable[Transaction],
) -> tuple[Subscription, ...]:
    """One entry per distinct ``(merchant, amount)`` among recurring rows.

    Rows flagged recurring without a usable rule do not count.
    """

    seen: dict[tuple[str | None, float], Subscription] = {}
    for t in transactions:
        if not t.is_template:
            continue
        merchant = (t.merchant or "").strip() or None
        key = (merchant, t.amount)
        if key not in seen:
            seen[key] = Subscription(merchant or DEFAULT_SUBSCRIPTION_NAME, t.amount)
    return tuple(seen.values())


# ---------------------------------------------------------------------------
# Predictions
# ---------------------------------------------------------------------------


def global_run_rate_overruns(
    expected_month_end_spend: float,
    budgets: Iterable[Budget],
    categories: Iterable[Category],
) -> tuple[BudgetOverrun, ...]:
    """Compare ONE overall month-end projection against EVERY active budget.

    A category budget is flagged when total projected spend (all categories)
    exceeds its limit, not when that category's own run-rate does. This is
    most likely unintended, but it is the established behaviour; a
    per-category projection should replace this function rather than change
    it in place.
    """

    names = _category_names(categories)
    overruns: list[BudgetOverrun] = []
    for b in budgets:
        if not b.is_active or b.limit_amount <= 0:
            continue
        if expected_month_end_spend > b.limit_amount:
            name = (
                OVERALL_BUDGET_NAME
                if b.category_id is None
                else names.get(b.category_id, b.category_id)
            )
            overruns.append(
                BudgetOverrun(
                    budget_id=b.id,
                    category_name=name,
                    excess_amount=expected_month_end_spend - b.limit_amount,
                )
            )
    return tuple(overruns)


def predict_month_end(
    transactions: Sequence[Transaction],
    budgets: Sequence[Budget],
    categories: Sequence[Category],
    *,
    today: date,
) -> Predictions:
    """Linear run-rate projection of this month's expenses.

    Spend so far covers expenses dated from the 1st through ``today``.
    """

    month_start, month_end = month_bounds(today)
    spent_so_far = _spend(transactions, month_start, today)
    daily_rate = spent_so_far / max(today.day, 1)
    expected = daily_rate * month_end.day

    return Predictions(
        expected_month_end_spend=expected,
        category_overruns=global_run_rate_overruns(expected, budgets, categories),
    )


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------


def generate_recommendations(
    overview: Overview, diagnostics: Diagnostics, predictions: Predictions
) -> tuple[str, ...]:
    recs: list[str] = []
    if overview.percentage_change > SPENDING_INCREASE_THRESHOLD_PCT:
        recs.append(REC_SPENDING_INCREASED)
    if diagnostics.spikes:
        recs.append(REC_UNUSUAL_SPIKES)
    if len(diagnostics.recurring_subscriptions) > SUBSCRIPTION_REVIEW_THRESHOLD:
        recs.append(REC_REVIEW_SUBSCRIPTIONS)
    if predictions.category_overruns:
        recs.append(REC_LIKELY_OVER_BUDGET)
    return tuple(recs)


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


def generate_insights(
    transactions: Iterable[Transaction],
    budgets: Iterable[Budget],
    categories: Iterable[Category],
    *,
    today: date,
    templates: Iterable[Transaction] | None = None,
) -> InsightsResult:
    """Compose every insight over ``transactions``.

    Subscriptions are read from ``templates`` when given (the stored rows),
    otherwise from ``transactions`` itself.
    """

    txs = list(transactions)
    buds = list(budgets)
    cats = list(categories)

    overview = monthly_overview(txs, cats, today=today)
    diagnostics = Diagnostics(
        spikes=detect_spikes(txs, cats),
        recurring_subscriptions=detect_recurring_subscriptions(
            txs if templates is None else templates
        ),
    )
    predictions = predict_month_end(txs, buds, cats, today=today)
    return InsightsResult(
        overview=overview,
        diagnostics=diagnostics,
        predictions=predictions,
        recommendations=generate_recommendations(overview, diagnostics, predictions),
    )


def load_insights(store: LocalStore, today: date | None = None) -> InsightsResult:
    """Read the store, expand recurring templates, and compute insights.

    Templates are expanded from the earliest stored transaction date through
    the end of the current month. Subscriptions come from the stored templates,
    so a template with no occurrence in that window still counts.
    """

    today = today or date.today()
    stored = store.list_transactions()
    _, month_end = month_bounds(today)
    expanded: list[Transaction] = []
    if stored:
        earliest = min(t.date for t in stored)
        expanded = expand_for_range(stored, min(earliest, month_end), month_end)
    return generate_insights(
        expanded,
        store.list_budgets(),
        store.list_categories(),
        today=today,
        templates=[t for t in stored if t.is_template],
    )


__all__ = [
    "detect_recurring_subscriptions",
    "detect_spikes",
    "generate_insights",
    "generate_recommendations",
    "global_run_rate_overruns",
    "load_insights",
    "month_bounds",
    "monthly_overview",
    "percentage_change",
    "predict_month_end",
    "top_categories",
]
