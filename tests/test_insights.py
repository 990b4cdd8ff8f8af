from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from bachat.insights import (
    REC_LIKELY_OVER_BUDGET,
    REC_REVIEW_SUBSCRIPTIONS,
    REC_SPENDING_INCREASED,
    REC_UNUSUAL_SPIKES,
    detect_recurring_subscriptions,
    detect_spikes,
    generate_insights,
    generate_recommendations,
    global_run_rate_overruns,
    load_insights,
    monthly_overview,
    predict_month_end,
)
from bachat.models import (
    Budget,
    BudgetOverrun,
    Category,
    Diagnostics,
    MonthlyRule,
    Overview,
    Predictions,
    Spike,
    Subscription,
    Transaction,
)
from bachat.store import LocalStore
from tests.helpers.db import bootstrap_sqlite_db, seed_fixture, transaction_row

CATS = [
    Category("food", "Food"),
    Category("travel", "Travel"),
    Category("ent", "Entertainment"),
    Category("health", "Health"),
]

_seq = iter(range(10_000))


def _tx(on: date, amount: float, category_id: str | None = "food", **kw) -> Transaction:
    return Transaction(
        id=kw.pop("id", f"tx-{next(_seq)}"),
        type=kw.pop("type", "expense"),
        amount=amount,
        currency="INR",
        date=on,
        category_id=category_id,
        **kw,
    )


# ---- Overview -----------------------------------------------------------------


def test_percentage_change_twenty_percent():
    txs = [
        _tx(date(2025, 3, 2), 700.0),
        _tx(date(2025, 3, 10), 500.0, "travel"),
        _tx(date(2025, 2, 14), 1000.0),
        # income never counts as spend
        _tx(date(2025, 3, 1), 50_000.0, type="income"),
    ]

    ov = monthly_overview(txs, CATS, today=date(2025, 3, 15))

    assert ov.current_month_spend == 1200.0
    assert ov.last_month_spend == 1000.0
    assert ov.percentage_change == 20.0


def test_percentage_change_is_zero_without_previous_spend():
    ov = monthly_overview([_tx(date(2025, 3, 2), 700.0)], CATS, today=date(2025, 3, 15))

    assert ov.last_month_spend == 0.0
    assert ov.percentage_change == 0.0


def test_previous_month_wraps_across_year_boundary():
    txs = [_tx(date(2024, 12, 31), 400.0), _tx(date(2025, 1, 3), 200.0)]

    ov = monthly_overview(txs, CATS, today=date(2025, 1, 20))

    assert (ov.current_month_spend, ov.last_month_spend) == (200.0, 400.0)
    assert ov.percentage_change == -50.0


def test_top_categories_descending_with_stable_ties():
    today = date(2025, 3, 20)
    txs = [
        _tx(date(2025, 3, 1), 100.0, "ent"),
        _tx(date(2025, 3, 2), 300.0, "food"),
        _tx(date(2025, 3, 3), 100.0, "health"),
        _tx(date(2025, 3, 4), 200.0, "travel"),
        _tx(date(2025, 3, 5), 100.0, "ent"),
        # last month and uncategorized rows are ignored
        _tx(date(2025, 2, 5), 9_999.0, "health"),
        _tx(date(2025, 3, 6), 9_999.0, None),
    ]

    top = monthly_overview(txs, CATS, today=today).top_categories

    assert [(t.name, t.amount) for t in top] == [
        ("Food", 300.0),
        ("Entertainment", 200.0),
        ("Travel", 200.0),
    ]


# ---- Diagnostics ----------------------------------------------------------------


def test_detect_spikes_flags_amounts_above_twice_the_mean():
    txs = [
        _tx(date(2025, 1, 1), 100.0),
        _tx(date(2025, 1, 2), 100.0),
        _tx(date(2025, 1, 3), 100.0),
        _tx(date(2025, 1, 4), 1000.0),
        _tx(date(2025, 1, 5), 500.0, "travel"),
        _tx(date(2025, 1, 6), 5000.0, None),
    ]

    spikes = detect_spikes(txs, CATS)

    assert spikes == (Spike("Food", 1000.0, date(2025, 1, 4)),)


def test_single_transaction_category_is_never_a_spike():
    assert detect_spikes([_tx(date(2025, 1, 1), 1_000_000.0)], CATS) == ()


def test_recurring_subscriptions_dedupe_by_merchant_and_amount():
    rule = MonthlyRule()
    txs = [
        _tx(date(2025, 1, 5), 649.0, "ent", merchant="Netflix", is_recurring=True, recurring_rule=rule),
        _tx(date(2025, 2, 5), 649.0, "ent", merchant="Netflix", is_recurring=True, recurring_rule=rule),
        _tx(date(2025, 1, 9), 119.0, "ent", merchant="Spotify", is_recurring=True, recurring_rule=rule),
        _tx(date(2025, 1, 9), 179.0, "ent", merchant="Spotify", is_recurring=True, recurring_rule=rule),
        _tx(date(2025, 1, 1), 999.0, "health", is_recurring=True, recurring_rule=rule),
        # flagged recurring but without a usable rule
        _tx(date(2025, 1, 1), 50.0, merchant="Broken", is_recurring=True),
        _tx(date(2025, 1, 1), 649.0, "ent", merchant="Netflix"),
    ]

    subs = detect_recurring_subscriptions(txs)

    assert subs == (
        Subscription("Netflix", 649.0),
        Subscription("Spotify", 119.0),
        Subscription("Spotify", 179.0),
        Subscription("Subscription", 999.0),
    )


# ---- Predictions ------------------------------------------------------------------


def test_month_end_projection_uses_spend_through_today():
    today = date(2025, 4, 10)  # April has 30 days
    txs = [
        _tx(date(2025, 4, 1), 400.0),
        _tx(date(2025, 4, 10), 600.0, "travel"),
        _tx(date(2025, 4, 12), 5_000.0),  # after today
        _tx(date(2025, 3, 31), 5_000.0),
    ]
    budgets = [
        Budget("overall", 2500.0),
        Budget("food", 5000.0, category_id="food"),
        Budget("off", 100.0, is_active=False),
        Budget("zero", 0.0, category_id="travel"),
    ]

    pred = predict_month_end(txs, budgets, CATS, today=today)

    assert pred.expected_month_end_spend == pytest.approx(3000.0)
    assert pred.category_overruns == (
        BudgetOverrun("overall", "Overall", pytest.approx(500.0)),
    )


def test_global_run_rate_is_compared_against_every_budget():
    budgets = [Budget("food", 1000.0, category_id="food"), Budget("ent", 1500.0, category_id="ent")]

    overruns = global_run_rate_overruns(1200.0, budgets, CATS)

    assert overruns == (BudgetOverrun("food", "Food", 200.0),)


# ---- Recommendations ----------------------------------------------------------------


def test_recommendations_follow_fixed_order():
    overview = Overview(1100.0, 1000.0, 10.000001)
    diagnostics = Diagnostics(
        spikes=(Spike("Food", 10.0, date(2025, 1, 1)),),
        recurring_subscriptions=tuple(Subscription(f"s{i}", 1.0) for i in range(3)),
    )
    predictions = Predictions(100.0, (BudgetOverrun("b", "Overall", 1.0),))

    assert generate_recommendations(overview, diagnostics, predictions) == (
        REC_SPENDING_INCREASED,
        REC_UNUSUAL_SPIKES,
        REC_REVIEW_SUBSCRIPTIONS,
        REC_LIKELY_OVER_BUDGET,
    )


def test_recommendations_thresholds_are_strict():
    overview = Overview(1100.0, 1000.0, 10.0)
    diagnostics = Diagnostics(recurring_subscriptions=(Subscription("a", 1.0), Subscription("b", 2.0)))

    assert generate_recommendations(overview, diagnostics, Predictions(0.0)) == ()


def test_generate_insights_composes_all_parts():
    today = date(2025, 3, 15)
    txs = [
        _tx(date(2025, 3, 1), 100.0),
        _tx(date(2025, 3, 2), 100.0),
        _tx(date(2025, 3, 3), 1300.0),
        _tx(date(2025, 2, 3), 100.0),
    ]

    result = generate_insights(txs, [Budget("overall", 1000.0)], CATS, today=today)

    assert result.overview.percentage_change == 1400.0
    assert len(result.diagnostics.spikes) == 1
    assert result.predictions.category_overruns[0].budget_id == "overall"
    assert result.recommendations == (
        REC_SPENDING_INCREASED,
        REC_UNUSUAL_SPIKES,
        REC_LIKELY_OVER_BUDGET,
    )

    as_dict = result.to_dict()
    assert as_dict["diagnostics"]["spikes"][0]["date"] == "2025-03-03"
    assert as_dict["overview"]["top_categories"][0]["name"] == "Food"


def test_empty_input_yields_empty_result():
    result = generate_insights([], [], [], today=date(2025, 3, 15))

    assert result.overview.current_month_spend == 0.0
    assert result.diagnostics == Diagnostics()
    assert result.predictions == Predictions(0.0)
    assert result.recommendations == ()


# ---- Store-backed ----------------------------------------------------------------------


def test_load_insights_expands_templates_and_never_writes(tmp_path: Path):
    url = bootstrap_sqlite_db(tmp_path / "local.db")
    seed_fixture(database_url=url)
    store = LocalStore(url)
    before = store.export_tables()

    result = load_insights(store, today=date(2025, 3, 20))

    # The monthly Netflix template (5th) materializes for Jan, Feb and Mar.
    assert result.overview.current_month_spend == 649.0
    assert result.overview.last_month_spend == 649.0
    assert result.diagnostics.recurring_subscriptions == (Subscription("Netflix", 649.0),)
    assert store.export_tables() == before


def test_load_insights_counts_templates_without_occurrences_in_window(tmp_path: Path):
    store = LocalStore(bootstrap_sqlite_db(tmp_path / "local.db"))
    # Anchored on the 20th but firing on the 5th: nothing falls in March.
    store.insert_row(
        "transactions",
        transaction_row(
            "gym",
            amount=499.0,
            date="2025-03-20",
            encrypted_merchant="Cult",
            is_recurring=True,
            recurring_rule='{"frequency":"monthly","monthDay":5}',
        ),
    )

    result = load_insights(store, today=date(2025, 3, 25))

    assert result.overview.current_month_spend == 0.0
    assert result.diagnostics.recurring_subscriptions == (Subscription("Cult", 499.0),)
