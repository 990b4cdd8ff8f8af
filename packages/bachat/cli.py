"""CLI for the ``bachat`` package.

Command handlers (``cmd_*``) are plain functions returning a process exit
code; the Typer commands below are thin wrappers around them. Environment
variables are loaded from a local ``.env`` with ``python-dotenv`` by the root
callback, and logging is configured once there.

Exit codes: ``0`` success, ``1`` any domain, configuration, database or file
error, ``2`` a backup that exists but cannot be decrypted with the cached secret.
"""

from __future__ import annotations

import json
import sys
from dataclasses import replace
from datetime import date
from pathlib import Path

import typer
from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .crypto import EncryptionCodec, generate_recovery_key
from .errors import BachatError, DecryptionError
from .insights import load_insights
from .logging_setup import configure_logging, get_logger
from .recurrence import expand_for_range
from .remote import SqlRemoteBackupStore
from .secret_store import FileSecretStore
from .store import LocalStore
from .sync import SyncCoordinator, export_snapshot

_logger = get_logger("bachat.cli")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_DECRYPTION = 2


def _fail(message: str, code: int = EXIT_ERROR) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return code


def _error_code(exc: BachatError) -> int:
    return EXIT_DECRYPTION if isinstance(exc, DecryptionError) else EXIT_ERROR


def _storage_failure(exc: SQLAlchemyError | OSError) -> int:
    _logger.debug("Storage failure", exc_info=True)
    if isinstance(exc, SQLAlchemyError):
        # DBAPI errors carry the driver message without the echoed SQL.
        return _fail(f"database error: {getattr(exc, 'orig', None) or exc}")
    return _fail(f"file error: {exc}")


def _settings(database_url: str | None = None) -> Settings:
    settings = Settings.from_env()
    if database_url:
        settings = replace(settings, database_url=database_url)
    return settings


def _store(settings: Settings) -> LocalStore:
    if not settings.database_url:
        raise ValueError("DATABASE_URL is not set")
    return LocalStore(settings.database_url)


def _coordinator(settings: Settings) -> SyncCoordinator:
    if not settings.backup_database_url:
        raise ValueError("BACHAT_BACKUP_DATABASE_URL is not set; cloud backup is disabled")
    remote = SqlRemoteBackupStore(settings.backup_database_url)
    remote.ensure_table()
    return SyncCoordinator(
        _store(settings),
        remote,
        FileSecretStore(settings.secret_file),
        lambda: settings.user_id,
        codec=EncryptionCodec(settings.envelope_scheme, settings.kdf_iterations),
        upload_delay=settings.upload_delay_seconds,
    )


def _parse_date(raw: str, *, option: str) -> date:
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise typer.BadParameter(f"expected YYYY-MM-DD, got {raw!r}", param_hint=option) from None


# ---- Command handlers -------------------------------------------------------


def cmd_init_db(*, database_url: str | None = None) -> int:
    try:
        store = _store(_settings(database_url))
        store.init_schema()
        version = store.schema_version()
    except (BachatError, ValueError) as e:
        return _fail(str(e))
    except (SQLAlchemyError, OSError) as e:
        return _storage_failure(e)
    print(f"Initialized schema version {version}")
    return EXIT_OK


def cmd_expand(
    start: date, end: date, *, as_json: bool = False, database_url: str | None = None
) -> int:
    if start > end:
        return _fail("--start must not be after --end")
    try:
        store = _store(_settings(database_url))
        rows = expand_for_range(store.list_transactions(), start, end)
    except (BachatError, ValueError) as e:
        return _fail(str(e))
    except (SQLAlchemyError, OSError) as e:
        return _storage_failure(e)

    if as_json:
        out = [
            {
                "id": tx.id,
                "date": tx.date.isoformat(),
                "type": tx.type,
                "amount": tx.amount,
                "currency": tx.currency,
                "categoryId": tx.category_id,
                "templateId": tx.occurrence_of.template_id if tx.occurrence_of else None,
            }
            for tx in rows
        ]
        print(json.dumps(out, indent=2, ensure_ascii=False))
    else:
        for tx in rows:
            print(f"{tx.id}\t{tx.date.isoformat()}\t{tx.type}\t{tx.amount:.2f}\t{tx.currency}")
    return EXIT_OK


def cmd_insights(*, today: date | None = None, database_url: str | None = None) -> int:
    try:
        result = load_insights(_store(_settings(database_url)), today=today)
    except (BachatError, ValueError) as e:
        return _fail(str(e))
    except (SQLAlchemyError, OSError) as e:
        return _storage_failure(e)
    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return EXIT_OK


def cmd_export_snapshot(*, out: Path | None = None, database_url: str | None = None) -> int:
    try:
        store = _store(_settings(database_url))
        snapshot = export_snapshot(store)
    except (BachatError, ValueError) as e:
        return _fail(str(e))
    except (SQLAlchemyError, OSError) as e:
        return _storage_failure(e)

    text = snapshot.to_json()
    if out is None:
        print(text)
    else:
        try:
            out.write_text(text, encoding="utf-8")
        except OSError as e:
            return _storage_failure(e)
        print(f"Wrote snapshot to {out} ({snapshot.row_counts()})")
    return EXIT_OK


def cmd_secret_set(value: str | None, *, generate: bool = False) -> int:
    try:
        settings = _settings()
    except ValueError as e:
        return _fail(str(e))
    if generate:
        value = generate_recovery_key()
        print(f"Recovery key: {value}")
        print("Write it down; it is needed to restore backups on another device.")
    if not value:
        return _fail("secret must not be empty")
    try:
        FileSecretStore(settings.secret_file).save(value)
    except OSError as e:
        return _storage_failure(e)
    print(f"Saved encryption secret to {settings.secret_file}")
    return EXIT_OK


def cmd_secret_clear() -> int:
    try:
        settings = _settings()
    except ValueError as e:
        return _fail(str(e))
    try:
        FileSecretStore(settings.secret_file).clear()
    except OSError as e:
        return _storage_failure(e)
    print("Cleared encryption secret")
    return EXIT_OK


def cmd_backup_upload(*, database_url: str | None = None) -> int:
    try:
        _coordinator(_settings(database_url)).upload_backup()
    except BachatError as e:
        return _fail(str(e), _error_code(e))
    except ValueError as e:
        return _fail(str(e))
    except (SQLAlchemyError, OSError) as e:
        return _storage_failure(e)
    print("Backup uploaded")
    return EXIT_OK


def cmd_backup_restore(*, database_url: str | None = None) -> int:
    try:
        snapshot = _coordinator(_settings(database_url)).download_and_restore()
    except DecryptionError as e:
        _logger.warning("Cloud backup could not be decrypted")
        return _fail(
            f"{e}. If the password was reset, run `bachat backup clear` to discard it.",
            EXIT_DECRYPTION,
        )
    except BachatError as e:
        return _fail(str(e), _error_code(e))
    except ValueError as e:
        return _fail(str(e))
    except (SQLAlchemyError, OSError) as e:
        return _storage_failure(e)
    print(f"Restored backup: {snapshot.row_counts()}")
    return EXIT_OK


def cmd_backup_clear(*, database_url: str | None = None) -> int:
    try:
        _coordinator(_settings(database_url)).clear_remote_backup()
    except BachatError as e:
        return _fail(str(e), _error_code(e))
    except ValueError as e:
        return _fail(str(e))
    except (SQLAlchemyError, OSError) as e:
        return _storage_failure(e)
    print("Cloud backup cleared")
    return EXIT_OK


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Local-first personal finance: recurring transactions, insights and "
        "encrypted cloud backup. Loads settings from a local .env before running."
    ),
)
secret_app = typer.Typer(no_args_is_help=True, help="Manage the backup encryption secret.")
backup_app = typer.Typer(no_args_is_help=True, help="Encrypted cloud backup.")
app.add_typer(secret_app, name="secret")
app.add_typer(backup_app, name="backup")

# Module-level option objects to satisfy ruff B008 (no calls in parameter defaults).
DATABASE_URL_OPTION = typer.Option(None, help="Override DATABASE_URL (falls back to env var).")


def _exit(code: int) -> None:
    if code != EXIT_OK:
        raise typer.Exit(code)


@app.command("init-db")
def init_db_cmd(database_url: str | None = DATABASE_URL_OPTION) -> None:
    """Create the local tables and stamp the schema version."""

    _exit(cmd_init_db(database_url=database_url))


@app.command("expand")
def expand_cmd(
    start: str = typer.Option(..., "--start", help="First day, YYYY-MM-DD (inclusive)."),
    end: str = typer.Option(..., "--end", help="Last day, YYYY-MM-DD (inclusive)."),
    as_json: bool = typer.Option(False, "--json", help="Emit a JSON array."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """List transactions in a range with recurring templates expanded."""

    _exit(
        cmd_expand(
            _parse_date(start, option="--start"),
            _parse_date(end, option="--end"),
            as_json=as_json,
            database_url=database_url,
        )
    )


@app.command("insights")
def insights_cmd(
    today: str | None = typer.Option(None, help="Evaluate as of this date (YYYY-MM-DD)."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Print the monthly overview, diagnostics, predictions and recommendations."""

    as_of = _parse_date(today, option="--today") if today else None
    _exit(cmd_insights(today=as_of, database_url=database_url))


@app.command("export-snapshot")
def export_snapshot_cmd(
    out: Path | None = typer.Option(None, "--out", dir_okay=False, help="Write to this file."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Export every local table as unencrypted snapshot JSON."""

    _exit(cmd_export_snapshot(out=out, database_url=database_url))


@secret_app.command("set")
def secret_set_cmd(
    value: str | None = typer.Option(None, "--value", help="Secret to store (prompted if omitted)."),
    generate: bool = typer.Option(False, "--generate", help="Generate and print a recovery key."),
) -> None:
    if value is None and not generate:
        value = typer.prompt("Encryption secret", hide_input=True, confirmation_prompt=True)
    _exit(cmd_secret_set(value, generate=generate))


@secret_app.command("clear")
def secret_clear_cmd() -> None:
    _exit(cmd_secret_clear())


@backup_app.command("upload")
def backup_upload_cmd(database_url: str | None = DATABASE_URL_OPTION) -> None:
    _exit(cmd_backup_upload(database_url=database_url))


@backup_app.command("restore")
def backup_restore_cmd(database_url: str | None = DATABASE_URL_OPTION) -> None:
    """Replace all local data with the cloud backup."""

    _exit(cmd_backup_restore(database_url=database_url))


@backup_app.command("clear")
def backup_clear_cmd(database_url: str | None = DATABASE_URL_OPTION) -> None:
    """Delete the cloud backup for the signed-in user."""

    _exit(cmd_backup_clear(database_url=database_url))


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
