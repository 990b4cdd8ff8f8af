"""Error taxonomy for the ``bachat`` core.

Recurrence expansion and insights never raise for malformed recurring-rule
data; everything here is raised by the crypto, store and sync layers and is
meant to reach the caller unchanged.
"""

from __future__ import annotations


class BachatError(Exception):
    """Base class for all domain errors raised by this package."""


class UnsupportedVersion(BachatError):
    """An envelope or snapshot carries a version this build cannot read."""

    def __init__(self, kind: str, found: object, supported: tuple[int, ...]) -> None:
        self.kind = kind
        self.found = found
        self.supported = supported
        allowed = ", ".join(str(v) for v in supported)
        super().__init__(f"Unsupported {kind} version: {found!r} (supported: {allowed})")


class DecryptionError(BachatError):
    """Wrong secret or corrupted backup; retrying with the same secret will not help."""


class NotFound(BachatError):
    """No remote backup exists for the current identity."""


class AtomicityFailure(BachatError):
    """A multi-row write failed and was rolled back in full."""


class NotSignedIn(BachatError):
    """A remote operation was requested without a signed-in identity."""


class MissingSecret(BachatError):
    """No encryption secret is cached on this device."""


__all__ = [
    "AtomicityFailure",
    "BachatError",
    "DecryptionError",
    "MissingSecret",
    "NotFound",
    "NotSignedIn",
    "UnsupportedVersion",
]
