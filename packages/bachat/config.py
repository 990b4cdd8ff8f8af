"""Runtime settings read from the environment.

The CLI loads ``.env`` (without overriding variables that are already set)
before calling :meth:`Settings.from_env`; library code never reads the
environment on its own except for ``BACHAT_LOG_LEVEL``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .crypto import DEFAULT_ITERATIONS, EnvelopeScheme

DEFAULT_SECRET_FILE = "~/.bachat/encryption_secret"
DEFAULT_UPLOAD_DELAY_SECONDS = 3.0
_SCHEMES: tuple[str, ...] = ("aes-gcm", "aes-cbc")


def _str(env: Mapping[str, str], name: str) -> str | None:
    val = env.get(name)
    if val is None:
        return None
    val = val.strip()
    return val or None


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _str(env, name)
    if raw is None:
        return default
    try:
        val = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if val < 0:
        raise ValueError(f"{name} must be non-negative, got {raw!r}")
    return val


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _str(env, name)
    if raw is None:
        return default
    try:
        val = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if val < 1:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return val


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str | None = None
    backup_database_url: str | None = None
    user_id: str | None = None
    secret_file: Path = Path(DEFAULT_SECRET_FILE).expanduser()
    upload_delay_seconds: float = DEFAULT_UPLOAD_DELAY_SECONDS
    envelope_scheme: EnvelopeScheme = "aes-gcm"
    kdf_iterations: int = DEFAULT_ITERATIONS

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if env is None else env

        scheme = (_str(env, "BACHAT_ENVELOPE_SCHEME") or "aes-gcm").lower()
        if scheme not in _SCHEMES:
            raise ValueError(
                f"BACHAT_ENVELOPE_SCHEME must be one of {', '.join(_SCHEMES)}, got {scheme!r}"
            )

        return cls(
            database_url=_str(env, "DATABASE_URL"),
            backup_database_url=_str(env, "BACHAT_BACKUP_DATABASE_URL"),
            user_id=_str(env, "BACHAT_USER_ID"),
            secret_file=Path(_str(env, "BACHAT_SECRET_FILE") or DEFAULT_SECRET_FILE).expanduser(),
            upload_delay_seconds=_float(
                env, "BACHAT_UPLOAD_DELAY_SECONDS", DEFAULT_UPLOAD_DELAY_SECONDS
            ),
            envelope_scheme=scheme,  # type: ignore[arg-type]
            kdf_iterations=_int(env, "BACHAT_KDF_ITERATIONS", DEFAULT_ITERATIONS),
        )


__all__ = ["Settings"]
