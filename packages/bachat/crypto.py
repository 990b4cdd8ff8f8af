"""Backup encryption: PBKDF2 key derivation plus an AES envelope.

Two envelope versions are understood:

- ``2`` (default writer): AES-256-GCM, 12-byte nonce carried in ``iv``, the
  16-byte tag appended to the ciphertext. Tampering or a wrong secret fails
  tag verification.
- ``1`` (legacy): AES-256-CBC with PKCS7 padding and a 16-byte IV. It has no
  authentication; a wrong secret is caught by padding/UTF-8/emptiness checks,
  which is a heuristic. Still writable with ``scheme="aes-cbc"`` so older
  clients can read new backups.

Both derive a 32-byte key with PBKDF2-HMAC-SHA256 from the secret and a fresh
16-byte salt. Salt and IV/nonce are random per call and never reused.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
import secrets
from typing import Literal

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import ValidationError

from .errors import DecryptionError, UnsupportedVersion
from .logging_setup import get_logger
from .models import ENVELOPE_VERSION_CBC, ENVELOPE_VERSION_GCM, Envelope

_logger = get_logger("bachat.crypto")

type EnvelopeScheme = Literal["aes-gcm", "aes-cbc"]

DEFAULT_ITERATIONS = 100_000
SALT_BYTES = 16
KEY_BYTES = 32
CBC_IV_BYTES = 16
GCM_NONCE_BYTES = 12
SUPPORTED_VERSIONS: tuple[int, ...] = (ENVELOPE_VERSION_CBC, ENVELOPE_VERSION_GCM)

# Bound into the GCM tag so a v2 ciphertext cannot be replayed under another format.
_GCM_AAD = b"bachat:envelope:v2"

_SCHEME_VERSIONS: dict[str, int] = {
    "aes-gcm": ENVELOPE_VERSION_GCM,
    "aes-cbc": ENVELOPE_VERSION_CBC,
}

RECOVERY_KEY_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
RECOVERY_KEY_GROUPS = 4
RECOVERY_KEY_GROUP_LEN = 6


def _b64e(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _b64d(text: str, field: str) -> bytes:
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecryptionError(f"Backup envelope field {field!r} is not valid base64") from exc


def _check_version(version: object) -> int:
    # bool is an int subclass; a JSON ``true`` is not a version.
    if isinstance(version, bool) or version not in SUPPORTED_VERSIONS:
        raise UnsupportedVersion("envelope", version, SUPPORTED_VERSIONS)
    return version  # type: ignore[return-value]


def parse_envelope(text: str | bytes) -> Envelope:
    """Parse envelope wire JSON.

    The version is checked before the rest of the shape, so a well-formed
    document from a newer writer reports ``UnsupportedVersion`` rather than a
    validation failure. Anything else malformed is a ``DecryptionError``.
    """

    try:
        data = json.loads(text)
    except ValueError as exc:
        raise DecryptionError("Backup data is corrupted (not valid JSON)") from exc
    if not isinstance(data, dict):
        raise DecryptionError("Backup data is corrupted (envelope is not an object)")
    _check_version(data.get("version"))
    try:
        return Envelope.model_validate(data)
    except ValidationError as exc:
        raise DecryptionError("Backup data is corrupted (malformed envelope)") from exc


class EncryptionCodec:
    """Encrypts snapshot text into an :class:`Envelope` and back."""

    def __init__(
        self, scheme: EnvelopeScheme = "aes-gcm", iterations: int = DEFAULT_ITERATIONS
    ) -> None:
        if scheme not in _SCHEME_VERSIONS:
            raise ValueError(f"Unknown envelope scheme: {scheme!r}")
        if iterations < 1:
            raise ValueError("iterations must be positive")
        self.scheme = scheme
        self.iterations = iterations

    @property
    def write_version(self) -> int:
        return _SCHEME_VERSIONS[self.scheme]

    def derive_key(self, secret: str, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_BYTES,
            salt=salt,
            iterations=self.iterations,
        )
        return kdf.derive(secret.encode("utf-8"))

    # ------------------------------------------------------------------
    # Encrypt
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: str, secret: str) -> Envelope:
        salt = os.urandom(SALT_BYTES)
        key = self.derive_key(secret, salt)
        data = plaintext.encode("utf-8")

        if self.write_version == ENVELOPE_VERSION_GCM:
            iv = os.urandom(GCM_NONCE_BYTES)
            ct = AESGCM(key).encrypt(iv, data, _GCM_AAD)
        else:
            iv = os.urandom(CBC_IV_BYTES)
            padder = padding.PKCS7(algorithms.AES.block_size).padder()
            padded = padder.update(data) + padder.finalize()
            encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
            ct = encryptor.update(padded) + encryptor.finalize()

        _logger.debug(
            "Encrypted %d bytes (envelope v%d)", len(data), self.write_version
        )
        return Envelope(
            version=self.write_version,
            cipher_text=_b64e(ct),
            iv=_b64e(iv),
            salt=_b64e(salt),
        )

    # ------------------------------------------------------------------
    # Decrypt
    # ------------------------------------------------------------------

    def decrypt(self, envelope: Envelope, secret: str) -> str:
        """Return the plaintext of ``envelope``.

        Raises ``UnsupportedVersion`` for unknown versions and
        ``DecryptionError`` for everything that indicates a wrong secret or a
        corrupted backup.
        """

        version = _check_version(envelope.version)
        ct = _b64d(envelope.cipher_text, "cipherText")
        iv = _b64d(envelope.iv, "iv")
        salt = _b64d(envelope.salt, "salt")
        key = self.derive_key(secret, salt)

        if version == ENVELOPE_VERSION_GCM:
            raw = self._decrypt_gcm(key, iv, ct)
        else:
            raw = self._decrypt_cbc(key, iv, ct)

        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError("Failed to decrypt backup (invalid secret?)") from exc
        if not text:
            raise DecryptionError("Failed to decrypt backup (invalid secret?)")
        return text

    def decrypt_json(self, payload: str | bytes, secret: str) -> str:
        """Parse envelope wire JSON and decrypt it."""

        return self.decrypt(parse_envelope(payload), secret)

    @staticmethod
    def _decrypt_gcm(key: bytes, nonce: bytes, ct: bytes) -> bytes:
        if len(nonce) != GCM_NONCE_BYTES:
            raise DecryptionError("Backup data is corrupted (bad nonce length)")
        try:
            return AESGCM(key).decrypt(nonce, ct, _GCM_AAD)
        except InvalidTag as exc:
            raise DecryptionError("Failed to decrypt backup (invalid secret?)") from exc

    @staticmethod
    def _decrypt_cbc(key: bytes, iv: bytes, ct: bytes) -> bytes:
        if len(iv) != CBC_IV_BYTES:
            raise DecryptionError("Backup data is corrupted (bad IV length)")
        block_bytes = algorithms.AES.block_size // 8
        if not ct or len(ct) % block_bytes:
            raise DecryptionError("Backup data is corrupted (truncated ciphertext)")
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ct) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        try:
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as exc:
            raise DecryptionError("Failed to decrypt backup (invalid secret?)") from exc


def generate_recovery_key() -> str:
    """Random human-transcribable key, e.g. ``"K7QX2M-..."`` (4 groups of 6)."""

    groups = (
        "".join(secrets.choice(RECOVERY_KEY_ALPHABET) for _ in range(RECOVERY_KEY_GROUP_LEN))
        for _ in range(RECOVERY_KEY_GROUPS)
    )
    return "-".join(groups)


__all__ = [
    "DEFAULT_ITERATIONS",
    "SUPPORTED_VERSIONS",
    "EncryptionCodec",
    "EnvelopeScheme",
    "generate_recovery_key",
    "parse_envelope",
]
