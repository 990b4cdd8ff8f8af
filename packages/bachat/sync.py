"""Encrypted backup and restore against the remote backup store.

Upload: export every local table -> snapshot JSON -> encrypt -> upsert one row
keyed by the signed-in identity (last writer wins).

Restore: select that row -> decrypt -> validate snapshot -> replace all local
tables in one transaction.

Errors reach the caller unchanged, with one exception: uploads started by
the debounce scheduler are logged and dropped (see
:mod:`bachat.scheduler`). ``NotFound`` and ``DecryptionError`` are distinct so
a caller can tell "no backup yet" from "backup exists but this secret cannot
open it"; in the latter case ``clear_remote_backup`` discards it.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from .crypto import EncryptionCodec
from .errors import DecryptionError, MissingSecret, NotFound, NotSignedIn, UnsupportedVersion
from .logging_setup import get_logger, register_secret
from .models import SNAPSHOT_VERSION, Envelope, Snapshot
from .remote import RemoteBackupStore
from .scheduler import TimerFactory, UploadScheduler
from .secret_store import SecretStore
from .store import LocalStore

_logger = get_logger("bachat.sync")

type Identity = Callable[[], str | None]
type Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def export_snapshot(store: LocalStore) -> Snapshot:
    """Every entity table of ``store`` plus its schema-version marker."""

    return Snapshot.from_tables(store.export_tables(), schema_version=store.schema_version())


def parse_snapshot(text: str) -> Snapshot:
    """Validate decrypted snapshot JSON.

    A version from a newer writer is ``UnsupportedVersion``; anything else
    that is not a complete snapshot document is treated like a failed
    decryption.
    """

    try:
        data = json.loads(text)
    except ValueError as exc:
        raise DecryptionError("Decrypted backup is not valid JSON (invalid secret?)") from exc
    if not isinstance(data, dict):
        raise DecryptionError("Decrypted backup is not a snapshot document")
    version = data.get("version")
    if isinstance(version, bool) or version != SNAPSHOT_VERSION:
        raise UnsupportedVersion("snapshot", version, (SNAPSHOT_VERSION,))
    try:
        return Snapshot.model_validate(data)
    except ValidationError as exc:
        raise DecryptionError("Decrypted backup is not a complete snapshot document") from exc


class SyncCoordinator:
    def __init__(
        self,
        store: LocalStore,
        remote: RemoteBackupStore,
        secrets: SecretStore,
        identity: Identity,
        *,
        codec: EncryptionCodec | None = None,
        upload_delay: float = 3.0,
        clock: Clock | None = None,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self.store = store
        self.remote = remote
        self.secrets = secrets
        self.identity = identity
        self.codec = codec or EncryptionCodec()
        self.clock = clock or _utcnow
        self.scheduler = UploadScheduler(
            self.upload_backup, upload_delay, timer_factory=timer_factory
        )

    # -- preconditions -------------------------------------------------------

    def _require_identity(self) -> str:
        user_id = self.identity()
        if not user_id:
            raise NotSignedIn("Sign in to use cloud backup")
        return user_id

    def _require_secret(self) -> str:
        secret = self.secrets.load()
        if not secret:
            raise MissingSecret("No encryption secret is set on this device")
        register_secret(secret)
        return secret

    # -- snapshot ------------------------------------------------------------

    def export_snapshot(self) -> Snapshot:
        return export_snapshot(self.store)

    def restore_snapshot(self, snapshot: Snapshot) -> dict[str, int]:
        """Replace every local table with ``snapshot``'s rows, atomically.

        Returns per-table row counts. Raises ``UnsupportedVersion`` before
        touching the store and ``AtomicityFailure`` if the write fails.
        """

        if snapshot.version != SNAPSHOT_VERSION:
            raise UnsupportedVersion("snapshot", snapshot.version, (SNAPSHOT_VERSION,))
        local_version = self.store.schema_version()
        if snapshot.schema_version != local_version:
            _logger.warning(
                "Snapshot schema version %d differs from local %d; restoring known columns only",
                snapshot.schema_version,
                local_version,
            )
        return self.store.replace_all(snapshot.tables())

    # -- remote --------------------------------------------------------------

    def upload_backup(self) -> Envelope:
        user_id = self._require_identity()
        secret = self._require_secret()

        snapshot = self.export_snapshot()
        _logger.info("Backup upload started for %s: %s", user_id, snapshot.row_counts())
        plaintext = snapshot.to_json()
        envelope = self.codec.encrypt(plaintext, secret)
        payload = envelope.to_json()
        self.remote.upsert(user_id, payload, self.clock().isoformat())
        _logger.info(
            "Backup upload finished for %s (%d bytes plaintext, %d bytes payload)",
            user_id,
            len(plaintext),
            len(payload),
        )
        return envelope

    def download_and_restore(self) -> Snapshot:
        user_id = self._require_identity()
        secret = self._require_secret()

        row = self.remote.select(user_id)
        if row is None:
            raise NotFound(f"No cloud backup found for {user_id}")
        _logger.info(
            "Restoring backup for %s (%d bytes, updated %s)",
            user_id,
            len(row.payload),
            row.updated_at,
        )

        plaintext = self.codec.decrypt_json(row.payload, secret)
        snapshot = parse_snapshot(plaintext)
        counts = self.restore_snapshot(snapshot)
        _logger.info("Restore finished for %s: %s", user_id, counts)
        return snapshot

    def clear_remote_backup(self) -> None:
        user_id = self._require_identity()
        self.remote.delete(user_id)
        _logger.info("Cleared cloud backup for %s", user_id)

    # -- debounced uploads ---------------------------------------------------

    def queue_upload(self, delay: float | None = None) -> bool:
        """Schedule a debounced upload; ``False`` when one is already pending."""

        return self.scheduler.schedule(delay)

    def cancel_pending_upload(self) -> bool:
        return self.scheduler.cancel()

    def flush_pending_upload(self) -> bool:
        return self.scheduler.flush()

    def _on_store_change(self, _table: str) -> Any:
        return self.queue_upload()

    def attach(self, store: LocalStore | None = None) -> None:
        """Queue an upload after every committed mutation of ``store``."""

        (store or self.store).add_listener(self._on_store_change)

    def detach(self, store: LocalStore | None = None) -> None:
        (store or self.store).remove_listener(self._on_store_change)


__all__ = [
    "SyncCoordinator",
    "export_snapshot",
    "parse_snapshot",
]
