"""Device-local storage for the backup encryption secret.

Holds exactly one named value (``"encryption_secret"``). Nothing here ever
sends it anywhere; the sync coordinator only reads it to derive keys.
"""

from __future__ import annotations

import contextlib
import os
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

SECRET_NAME = "encryption_secret"


@runtime_checkable
class SecretStore(Protocol):
    def save(self, secret: str) -> None: ...

    def load(self) -> str | None: ...

    def clear(self) -> None: ...


class InMemorySecretStore:
    def __init__(self, secret: str | None = None) -> None:
        self._secret = secret or None
        self._lock = threading.Lock()

    def save(self, secret: str) -> None:
        with self._lock:
            self._secret = secret

    def load(self) -> str | None:
        with self._lock:
            return self._secret

    def clear(self) -> None:
        with self._lock:
            self._secret = None


class FileSecretStore:
    """Secret kept in a single file readable only by the owner.

    Writes go to ``<path>.tmp`` first and are moved into place with
    ``os.replace``.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path).expanduser()

    def save(self, secret: str) -> None:
        if not secret:
            raise ValueError("Refusing to store an empty secret")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(secret)
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path)
        except Exception:
            with contextlib.suppress(FileNotFoundError):
                tmp.unlink()
            raise

    def load(self) -> str | None:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return text or None

    def clear(self) -> None:
        with contextlib.suppress(FileNotFoundError):
            self.path.unlink()


__all__ = [
    "SECRET_NAME",
    "FileSecretStore",
    "InMemorySecretStore",
    "SecretStore",
]
