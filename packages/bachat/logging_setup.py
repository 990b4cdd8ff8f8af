"""Centralized logging configuration for the ``bachat`` package.

Public helpers:

- ``configure_logging(...)``: attach a single ``StreamHandler`` to the package
  root logger (``"bachat"``). Called once by entrypoints (the CLI) at startup.
- ``get_logger(name)``: acquire a logger by name, ensuring the package root
  logger has at least a ``NullHandler`` when nothing has been configured.
- ``register_secret(value)``: add a value that must never appear in emitted
  records. The handler installed by ``configure_logging`` masks it.

Library modules never attach their own handlers; they call
``get_logger("bachat.<module>")`` and rely on the host application.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from typing import IO

_PKG_LOGGER_NAME = "bachat"
_CONFIGURED = False
_MASK = "***"

_secrets: set[str] = set()
_secrets_lock = threading.Lock()


def _level_from_name(name: str) -> int | None:
    name = name.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = getattr(logging, name, None)
    return numeric if isinstance(numeric, int) else None


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        parsed = _level_from_name(level)
        if parsed is not None:
            return parsed
    # Env override when explicit ``level`` is missing or unrecognized
    env_val = os.getenv("BACHAT_LOG_LEVEL")
    if env_val:
        parsed = _level_from_name(env_val)
        if parsed is not None:
            return parsed
    return logging.INFO


def register_secret(value: str | None) -> None:
    """Mask ``value`` in every record emitted through the configured handler."""

    if not value:
        return
    with _secrets_lock:
        _secrets.add(value)


class _RedactSecrets(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        with _secrets_lock:
            secrets = tuple(_secrets)
        if not secrets:
            return True
        message = record.getMessage()
        redacted = message
        for s in secrets:
            redacted = redacted.replace(s, _MASK)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Configure the package root logger exactly once.

    Parameters
    ----------
    level:
        Logging level as ``int`` or level-name string. If ``None``, defaults to
        ``BACHAT_LOG_LEVEL`` when set, otherwise ``logging.INFO``.
    fmt:
        Optional format string. Defaults to
        ``"%(asctime)s %(name)s %(levelname)s %(message)s"``.
    stream:
        Output stream for the single ``StreamHandler`` (default ``sys.stderr``).
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(
        logging.Formatter(fmt or "%(asctime)s %(name)s %(levelname)s %(message)s")
    )
    handler.addFilter(_RedactSecrets())

    logger.setLevel(resolved)
    logger.addHandler(handler)
    # Avoid double emission via the root logger.
    logger.propagate = False

    _CONFIGURED = True


def reset_logging() -> None:
    """Undo ``configure_logging`` (tests only)."""

    global _CONFIGURED
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    with _secrets_lock:
        _secrets.clear()
    _CONFIGURED = False


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name, ensuring safe defaults for library use."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)
