"""Migration runner for the local ``bachat`` database.

The target URL comes from ``DATABASE_URL`` (a ``.env`` found from the working
directory is honoured) and falls back to ``sqlalchemy.url`` in ``alembic.ini``.
Migrations cover the device-local tables plus the ``app_schema`` marker that
the sync layer stamps into snapshots; the hosted ``encrypted_backups`` table is
created by ``SqlRemoteBackupStore.ensure_table`` instead.

SQLite has no ``ALTER COLUMN``, so batch mode is switched on for it.
"""

from __future__ import annotations

import logging
import os
from logging.config import fileConfig

from alembic import context
from dotenv import find_dotenv, load_dotenv
from sqlalchemy import engine_from_config, pool

from bachat_db import metadata as target_metadata

config = context.config

# Tests drive Alembic without an ini so the suite's logging stays intact.
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

_dotenv = find_dotenv(usecwd=True)
if _dotenv:
    load_dotenv(dotenv_path=_dotenv, override=False)

logger = logging.getLogger("alembic.env")


def _database_url() -> str:
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set; export it or put sqlalchemy.url in alembic.ini "
            "to choose which local database to migrate."
        )
    return url


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def run_migrations_offline(url: str) -> None:
    """Emit SQL for the local schema without connecting."""

    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        render_as_batch=_is_sqlite(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online(url: str) -> None:
    section = dict(config.get_section(config.config_ini_section) or {})
    section["sqlalchemy.url"] = url
    engine = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with engine.connect() as connection:
        logger.info("Migrating local bachat database (%s)", connection.dialect.name)
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


_url = _database_url()
if context.is_offline_mode():
    run_migrations_offline(_url)
else:
    run_migrations_online(_url)
