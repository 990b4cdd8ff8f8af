"""Persistent store adapter over the local SQL database.

Every public method opens its own ``session_scope`` and is therefore one
atomic unit. Rows cross this boundary as plain mappings keyed by column name
(the same shape a snapshot carries); the typed helpers convert to and from
the domain dataclasses and are the only place the recurring-rule JSON text
is parsed or written.

Tables are addressed by their snapshot key (``"transactions"``,
``"userSettings"``, ...); see ``bachat_db.ENTITY_TABLES``.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import Table, delete, inspect, insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from bachat_db import ENTITY_TABLES, SCHEMA_VERSION, AppSchemaRow, Base
from bachat_db.client import get_engine, session_scope

from .errors import AtomicityFailure
from .logging_setup import get_logger
from .models import Budget, Category, Transaction
from .rules import dump_rule, parse_rule

_logger = get_logger("bachat.store")

type Row = dict[str, Any]
type Listener = Callable[[str], object]

# Tables cleared by "wipe all data"; settings and training data survive.
WIPE_TABLES: tuple[str, ...] = ("transactions", "budgets", "categories")


def _now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _table(name: str) -> Table:
    try:
        return ENTITY_TABLES[name]  # type: ignore[return-value]
    except KeyError:
        raise KeyError(f"Unknown table: {name!r}") from None


def _known_columns(table: Table, row: Mapping[str, Any]) -> Row:
    cols = table.c
    return {k: v for k, v in row.items() if k in cols}


def _with_timestamps(table: Table, row: Row) -> Row:
    now = _now_iso()
    for col in ("created_at", "updated_at"):
        if col in table.c and not row.get(col):
            row[col] = now
    return row


# ---------------------------------------------------------------------------
# Row <-> domain converters
# ---------------------------------------------------------------------------


def _to_date(raw: Any) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    # Accept both "YYYY-MM-DD" and full ISO timestamps.
    return date.fromisoformat(str(raw).strip()[:10])


def transaction_to_row(tx: Transaction) -> Row:
    return {
        "id": tx.id,
        "type": tx.type,
        "amount": tx.amount,
        "currency": tx.currency,
        "date": tx.date.isoformat(),
        "category_id": tx.category_id,
        "payment_method": tx.payment_method,
        "encrypted_note": tx.note,
        "encrypted_merchant": tx.merchant,
        "encrypted_metadata": tx.metadata,
        "is_recurring": tx.is_recurring,
        "recurring_rule": dump_rule(tx.recurring_rule),
        "source": tx.source,
        "created_at": tx.created_at,
        "updated_at": tx.updated_at,
    }


def row_to_transaction(row: Mapping[str, Any]) -> Transaction:
    is_recurring = bool(row.get("is_recurring"))
    rule = parse_rule(row.get("recurring_rule"))
    if is_recurring and rule is None:
        _logger.debug("Recurring transaction %s has no usable rule; treating as one-off", row.get("id"))
    return Transaction(
        id=str(row["id"]),
        type=row["type"],
        amount=float(row["amount"]),
        currency=row["currency"],
        date=_to_date(row["date"]),
        payment_method=row.get("payment_method") or "Other",
        category_id=row.get("category_id"),
        note=row.get("encrypted_note"),
        merchant=row.get("encrypted_merchant"),
        metadata=row.get("encrypted_metadata"),
        is_recurring=is_recurring,
        recurring_rule=rule,
        source=row.get("source") or "manual",
        created_at=row.get("created_at") or "",
        updated_at=row.get("updated_at") or "",
    )


def row_to_budget(row: Mapping[str, Any]) -> Budget:
    return Budget(
        id=str(row["id"]),
        limit_amount=float(row["limit_amount"]),
        category_id=row.get("category_id"),
        period=row.get("period") or "monthly",
        period_start_day=row.get("period_start_day"),
        currency=row.get("currency") or "INR",
        alert_threshold_percent=float(row.get("alert_threshold_percent") or 80.0),
        is_active=bool(row.get("is_active", True)),
        created_at=row.get("created_at") or "",
        updated_at=row.get("updated_at") or "",
    )


def row_to_category(row: Mapping[str, Any]) -> Category:
    return Category(
        id=str(row["id"]),
        name=row["name"],
        icon=row.get("icon"),
        color_hex=row.get("color_hex"),
        is_default=bool(row.get("is_default")),
        created_at=row.get("created_at") or "",
        updated_at=row.get("updated_at") or "",
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class LocalStore:
    """Column-level CRUD plus atomic bulk operations on the local database."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        self._listeners: list[Listener] = []
        self._listeners_lock = threading.Lock()

    def __repr__(self) -> str:
        return f"LocalStore({self.database_url!r})"

    def _scope(self):
        return session_scope(database_url=self.database_url)

    # -- schema ------------------------------------------------------------

    def init_schema(self) -> None:
        """Create all tables and stamp the current schema version.

        Development and test convenience; deployed databases are migrated
        with Alembic.
        """

        Base.metadata.create_all(get_engine(database_url=self.database_url))
        with self._scope() as s:
            marker = s.get(AppSchemaRow, 1)
            if marker is None:
                s.add(AppSchemaRow(id=1, version=SCHEMA_VERSION))
            else:
                marker.version = SCHEMA_VERSION

    def schema_version(self) -> int:
        """Integer schema marker; ``0`` when the database has none."""

        engine = get_engine(database_url=self.database_url)
        if not inspect(engine).has_table(AppSchemaRow.__tablename__):
            return 0
        with self._scope() as s:
            version = s.scalar(select(AppSchemaRow.version).where(AppSchemaRow.id == 1))
        return int(version or 0)

    # -- listeners ---------------------------------------------------------

    def add_listener(self, fn: Listener) -> None:
        """Call ``fn(table_name)`` after every committed mutation (not ``replace_all``)."""

        with self._listeners_lock:
            self._listeners.append(fn)

    def remove_listener(self, fn: Listener) -> None:
        with self._listeners_lock:
            if fn in self._listeners:
                self._listeners.remove(fn)

    def _notify(self, table_name: str) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for fn in listeners:
            try:
                fn(table_name)
            except Exception:  # noqa: BLE001 - a listener must not undo a committed write
                _logger.exception("Store change listener failed for %s", table_name)

    # -- row CRUD ----------------------------------------------------------

    def insert_row(self, table_name: str, row: Mapping[str, Any]) -> None:
        table = _table(table_name)
        values = _with_timestamps(table, _known_columns(table, row))
        with self._scope() as s:
            s.execute(insert(table).values(**values))
        self._notify(table_name)

    def update_row(self, table_name: str, row_id: str, changes: Mapping[str, Any]) -> bool:
        """Apply a partial update; returns ``False`` when no row has ``row_id``."""

        table = _table(table_name)
        values = _known_columns(table, changes)
        values.pop("id", None)
        if "updated_at" in table.c:
            values["updated_at"] = _now_iso()
        if not values:
            return self.get_row(table_name, row_id) is not None
        with self._scope() as s:
            result = s.execute(update(table).where(table.c.id == row_id).values(**values))
            changed = result.rowcount > 0
        if changed:
            self._notify(table_name)
        return changed

    def delete_row(self, table_name: str, row_id: str) -> bool:
        table = _table(table_name)
        with self._scope() as s:
            result = s.execute(delete(table).where(table.c.id == row_id))
            deleted = result.rowcount > 0
        if deleted:
            self._notify(table_name)
        return deleted

    def get_row(self, table_name: str, row_id: str) -> Row | None:
        table = _table(table_name)
        with self._scope() as s:
            found = s.execute(select(table).where(table.c.id == row_id)).mappings().first()
        return dict(found) if found is not None else None

    def list_rows(self, table_name: str) -> list[Row]:
        table = _table(table_name)
        with self._scope() as s:
            return [dict(r) for r in s.execute(select(table).order_by(table.c.id)).mappings()]

    def insert_rows(self, table_name: str, rows: Iterable[Mapping[str, Any]]) -> int:
        """Insert ``rows`` in one transaction; all or nothing."""

        table = _table(table_name)
        prepared = [_with_timestamps(table, _known_columns(table, r)) for r in rows]
        if not prepared:
            return 0
        try:
            with self._scope() as s:
                for values in prepared:
                    s.execute(insert(table).values(**values))
        except SQLAlchemyError as exc:
            _logger.error("Bulk insert into %s failed; rolled back", table_name)
            raise AtomicityFailure(f"Bulk insert into {table_name} failed: {exc}") from exc
        self._notify(table_name)
        return len(prepared)

    # -- typed helpers -----------------------------------------------------

    def add_transaction(self, tx: Transaction) -> Transaction:
        row = transaction_to_row(tx)
        table = _table("transactions")
        with self._scope() as s:
            s.execute(insert(table).values(**_with_timestamps(table, row)))
        self._notify("transactions")
        return row_to_transaction(row)

    def list_transactions(self) -> list[Transaction]:
        table = _table("transactions")
        stmt = select(table).order_by(table.c.date.desc(), table.c.id)
        with self._scope() as s:
            rows = [dict(r) for r in s.execute(stmt).mappings()]
        return [row_to_transaction(r) for r in rows]

    def list_budgets(self) -> list[Budget]:
        return [row_to_budget(r) for r in self.list_rows("budgets")]

    def list_categories(self) -> list[Category]:
        return [row_to_category(r) for r in self.list_rows("categories")]

    # -- whole-store operations -------------------------------------------

    def export_tables(self) -> dict[str, list[Row]]:
        """Every entity table's rows, read in one transaction."""

        out: dict[str, list[Row]] = {}
        with self._scope() as s:
            for name, table in ENTITY_TABLES.items():
                stmt = select(table).order_by(table.c.id)
                out[name] = [dict(r) for r in s.execute(stmt).mappings()]
        return out

    def replace_all(self, tables: Mapping[str, Iterable[Mapping[str, Any]]]) -> dict[str, int]:
        """Clear every entity table and insert ``tables`` in ONE transaction.

        Rows are restored verbatim (timestamps included); columns this schema
        does not know are dropped. Does not notify listeners. Returns the
        number of rows inserted per table.
        """

        prepared: dict[str, list[Row]] = {}
        for name, table in ENTITY_TABLES.items():
            prepared[name] = [_known_columns(table, r) for r in tables.get(name, ())]

        try:
            with self._scope() as s:
                for table in reversed(list(ENTITY_TABLES.values())):
                    s.execute(delete(table))
                for name, table in ENTITY_TABLES.items():
                    for values in prepared[name]:
                        s.execute(insert(table).values(**values))
        except SQLAlchemyError as exc:
            _logger.error("Restore failed; local data rolled back to its previous state")
            raise AtomicityFailure(f"Restore failed: {exc}") from exc
        return {name: len(rows) for name, rows in prepared.items()}

    def wipe_local_data(self) -> None:
        """Delete all transactions, budgets and categories atomically."""

        try:
            with self._scope() as s:
                for name in WIPE_TABLES:
                    s.execute(delete(_table(name)))
        except SQLAlchemyError as exc:
            _logger.error("Wipe failed; rolled back")
            raise AtomicityFailure(f"Wipe failed: {exc}") from exc
        for name in WIPE_TABLES:
            self._notify(name)


__all__ = [
    "WIPE_TABLES",
    "LocalStore",
    "row_to_budget",
    "row_to_category",
    "row_to_transaction",
    "transaction_to_row",
]
