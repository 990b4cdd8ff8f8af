"""Remote backup store: one opaque payload per user identity.

The hosted table is ``encrypted_backups(user_id PK, payload TEXT,
updated_at TEXT)``. Writes are last-writer-wins upserts; there is no merge.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from bachat_db import EncryptedBackupRow, RemoteBase
from bachat_db.client import get_engine, session_scope

from .logging_setup import get_logger

_logger = get_logger("bachat.remote")


@dataclass(frozen=True, slots=True)
class RemoteBackup:
    payload: str
    updated_at: str


@runtime_checkable
class RemoteBackupStore(Protocol):
    def upsert(self, user_id: str, payload: str, updated_at: str) -> None: ...

    def select(self, user_id: str) -> RemoteBackup | None: ...

    def delete(self, user_id: str) -> None: ...


class InMemoryRemoteBackupStore:
    """Dict-backed store; thread-safe."""

    def __init__(self) -> None:
        self._rows: dict[str, RemoteBackup] = {}
        self._lock = threading.Lock()

    def upsert(self, user_id: str, payload: str, updated_at: str) -> None:
        with self._lock:
            self._rows[user_id] = RemoteBackup(payload, updated_at)

    def select(self, user_id: str) -> RemoteBackup | None:
        with self._lock:
            return self._rows.get(user_id)

    def delete(self, user_id: str) -> None:
        with self._lock:
            self._rows.pop(user_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)


class SqlRemoteBackupStore:
    """``encrypted_backups`` over SQLAlchemy (PostgreSQL/Supabase or SQLite)."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url

    def ensure_table(self) -> None:
        RemoteBase.metadata.create_all(get_engine(database_url=self.database_url))

    def _insert(self):
        dialect = get_engine(database_url=self.database_url).dialect.name
        if dialect == "postgresql":
            return pg_insert(EncryptedBackupRow)
        if dialect == "sqlite":
            return sqlite_insert(EncryptedBackupRow)
        raise NotImplementedError(f"Upsert not supported for dialect {dialect!r}")

    def upsert(self, user_id: str, payload: str, updated_at: str) -> None:
        stmt = self._insert().values(user_id=user_id, payload=payload, updated_at=updated_at)
        stmt = stmt.on_conflict_do_update(
            index_elements=[EncryptedBackupRow.user_id],
            set_={"payload": stmt.excluded.payload, "updated_at": stmt.excluded.updated_at},
        )
        with session_scope(database_url=self.database_url) as s:
            s.execute(stmt)
        _logger.debug("Upserted backup row for %s (%d bytes)", user_id, len(payload))

    def select(self, user_id: str) -> RemoteBackup | None:
        stmt = select(EncryptedBackupRow.payload, EncryptedBackupRow.updated_at).where(
            EncryptedBackupRow.user_id == user_id
        )
        with session_scope(database_url=self.database_url) as s:
            found = s.execute(stmt).first()
        if found is None:
            return None
        return RemoteBackup(payload=found.payload, updated_at=found.updated_at)

    def delete(self, user_id: str) -> None:
        with session_scope(database_url=self.database_url) as s:
            s.execute(delete(EncryptedBackupRow).where(EncryptedBackupRow.user_id == user_id))


__all__ = [
    "InMemoryRemoteBackupStore",
    "RemoteBackup",
    "RemoteBackupStore",
    "SqlRemoteBackupStore",
]
