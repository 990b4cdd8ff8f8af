from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from bachat.errors import AtomicityFailure
from bachat.models import MonthlyRule, Transaction, WeeklyRule
from bachat.store import LocalStore, row_to_transaction, transaction_to_row
from bachat_db import SCHEMA_VERSION
from tests.helpers.db import TS, bootstrap_sqlite_db, seed_fixture, sqlite_url, transaction_row


@pytest.fixture
def store(tmp_path: Path) -> LocalStore:
    return LocalStore(bootstrap_sqlite_db(tmp_path / "local.db"))


def test_schema_version_marker(tmp_path: Path, store: LocalStore):
    assert store.schema_version() == SCHEMA_VERSION
    assert LocalStore(sqlite_url(tmp_path / "empty.db")).schema_version() == 0

    # init_schema is repeatable
    store.init_schema()
    assert store.schema_version() == SCHEMA_VERSION


def test_row_crud(store: LocalStore):
    store.insert_row("categories", {"id": "c1", "name": "Food", "is_default": False, "bogus": 1})

    row = store.get_row("categories", "c1")
    assert row is not None
    assert row["name"] == "Food"
    assert "bogus" not in row
    assert row["created_at"] and row["updated_at"]

    assert store.update_row("categories", "c1", {"name": "Groceries", "created_at": TS}) is True
    updated = store.get_row("categories", "c1")
    assert updated["name"] == "Groceries"
    assert updated["updated_at"] >= row["updated_at"]

    assert store.update_row("categories", "missing", {"name": "x"}) is False
    assert store.delete_row("categories", "c1") is True
    assert store.delete_row("categories", "c1") is False
    assert store.get_row("categories", "c1") is None


def test_unknown_table_raises_key_error(store: LocalStore):
    with pytest.raises(KeyError):
        store.list_rows("accounts")


def test_transaction_converters_round_trip(store: LocalStore):
    tx = Transaction(
        id="t1",
        type="expense",
        amount=499.0,
        currency="INR",
        date=date(2025, 2, 3),
        category_id="c1",
        payment_method="Card",
        note="gym",
        merchant="Cult",
        is_recurring=True,
        recurring_rule=WeeklyRule(frozenset({0, 2})),
        created_at=TS,
        updated_at=TS,
    )

    store.add_transaction(tx)

    assert store.list_transactions() == [tx]
    row = store.get_row("transactions", "t1")
    assert row["recurring_rule"] == '{"frequency":"weekly","weekdays":["mon","wed"]}'
    assert row["encrypted_merchant"] == "Cult"
    assert row_to_transaction(transaction_to_row(tx)) == tx


def test_unparseable_rule_reads_as_one_off(store: LocalStore):
    store.insert_row(
        "transactions",
        transaction_row("t1", is_recurring=True, recurring_rule='{"frequency":"fortnightly"}'),
    )

    (tx,) = store.list_transactions()

    assert tx.is_recurring is True
    assert tx.recurring_rule is None
    assert tx.is_template is False


def test_full_timestamp_dates_are_accepted(store: LocalStore):
    store.insert_row("transactions", transaction_row("t1", date="2025-01-31T18:30:00.000Z"))

    assert store.list_transactions()[0].date == date(2025, 1, 31)


def test_transactions_listed_newest_first(store: LocalStore):
    store.insert_rows(
        "transactions",
        [
            transaction_row("a", date="2025-01-01"),
            transaction_row("b", date="2025-03-01"),
            transaction_row("c", date="2025-02-01"),
        ],
    )

    assert [t.id for t in store.list_transactions()] == ["b", "c", "a"]


def test_insert_rows_is_all_or_nothing(store: LocalStore):
    rows = [transaction_row("a"), transaction_row("b"), transaction_row("a")]

    with pytest.raises(AtomicityFailure):
        store.insert_rows("transactions", rows)

    assert store.list_rows("transactions") == []


def test_typed_listings(tmp_path: Path, store: LocalStore):
    seed_fixture(database_url=store.database_url)

    budgets = store.list_budgets()
    assert [(b.id, b.is_overall, b.limit_amount) for b in budgets] == [("bud-overall", True, 20000.0)]
    assert {c.name for c in store.list_categories()} == {"Food", "Entertainment"}
    netflix = next(t for t in store.list_transactions() if t.id == "tx-netflix")
    assert netflix.recurring_rule == MonthlyRule(day=5)


def test_replace_all_swaps_contents_atomically(store: LocalStore):
    seed_fixture(database_url=store.database_url)
    before = store.export_tables()

    # Duplicate primary keys make the second insert fail after the clear.
    bad = {name: [] for name in before}
    bad["transactions"] = [transaction_row("dup"), transaction_row("dup")]

    with pytest.raises(AtomicityFailure):
        store.replace_all(bad)

    assert store.export_tables() == before


def test_replace_all_drops_unknown_columns(store: LocalStore):
    tables = {name: [] for name in store.export_tables()}
    tables["categories"] = [
        {"id": "c1", "name": "Food", "is_default": True, "created_at": TS, "updated_at": TS, "legacy": "x"}
    ]

    counts = store.replace_all(tables)

    assert counts["categories"] == 1
    assert store.list_rows("categories")[0]["created_at"] == TS


def test_wipe_local_data_keeps_settings(store: LocalStore):
    seed_fixture(database_url=store.database_url)

    store.wipe_local_data()

    tables = store.export_tables()
    assert tables["transactions"] == tables["budgets"] == tables["categories"] == []
    assert len(tables["userSettings"]) == 1
    assert len(tables["alertRules"]) == 1
    assert len(tables["aiTrainingExamples"]) == 1


def test_listeners_run_after_commits_but_not_on_restore(store: LocalStore):
    seen: list[str] = []
    store.add_listener(seen.append)

    store.insert_row("categories", {"id": "c1", "name": "Food"})
    store.update_row("categories", "c1", {"name": "Groceries"})
    store.delete_row("categories", "c1")
    store.insert_rows("budgets", [{"id": "b1", "limit_amount": 10.0, "period": "monthly", "currency": "INR", "alert_threshold_percent": 80.0}])
    assert seen == ["categories", "categories", "categories", "budgets"]

    seen.clear()
    store.replace_all({name: [] for name in store.export_tables()})
    assert seen == []

    store.remove_listener(seen.append)
    store.insert_row("categories", {"id": "c2", "name": "Travel"})
    assert seen == []


def test_failing_listener_does_not_break_writes(store: LocalStore, caplog: pytest.LogCaptureFixture):
    def boom(_table: str) -> None:
        raise RuntimeError("listener exploded")

    store.add_listener(boom)

    store.insert_row("categories", {"id": "c1", "name": "Food"})

    assert store.get_row("categories", "c1") is not None
    assert "listener failed" in caplog.text
