"""Pytest configuration for test isolation.

Engines are cached per database URL inside ``bachat_db.client`` and the
``bachat`` package logger is configured at most once per process. Both are
process-global, so each test starts from a clean environment and tears the
caches down afterwards. Settings-related environment variables are removed so
a developer's shell or ``.env`` cannot leak into a test.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from bachat.logging_setup import reset_logging
from bachat_db.client import dispose_engines

_SETTINGS_VARS = (
    "DATABASE_URL",
    "BACHAT_BACKUP_DATABASE_URL",
    "BACHAT_USER_ID",
    "BACHAT_SECRET_FILE",
    "BACHAT_UPLOAD_DELAY_SECONDS",
    "BACHAT_ENVELOPE_SCHEME",
    "BACHAT_KDF_ITERATIONS",
    "BACHAT_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Per-test environment: no inherited settings, a private secret file path."""

    for var in _SETTINGS_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("BACHAT_SECRET_FILE", os.fspath(tmp_path / "secrets" / "encryption_secret"))
    # The CLI loads .env from the working directory.
    monkeypatch.chdir(tmp_path)
    yield
    dispose_engines()
    reset_logging()
