from __future__ import annotations

import base64
import json
import os
import re

import pytest
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from bachat.crypto import (
    DEFAULT_ITERATIONS,
    EncryptionCodec,
    generate_recovery_key,
    parse_envelope,
)
from bachat.errors import DecryptionError, UnsupportedVersion
from bachat.models import Envelope

# Low iteration count keeps the suite fast; one test exercises the default.
FAST = 1_000


@pytest.fixture
def codec() -> EncryptionCodec:
    return EncryptionCodec(iterations=FAST)


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"transactions": [], "version": 1},
        {"note": "chai ☕ ₹20", "nested": {"list": [1, 2.5, None, True]}},
    ],
)
def test_round_trip_returns_equal_json(codec, payload):
    text = json.dumps(payload)

    env = codec.encrypt(text, "correct horse battery staple")

    assert json.loads(codec.decrypt(env, "correct horse battery staple")) == payload


def test_default_codec_writes_authenticated_v2_envelopes():
    codec = EncryptionCodec()
    env = codec.encrypt("{}", "s3cret")

    assert codec.iterations == DEFAULT_ITERATIONS
    assert env.version == 2
    assert len(base64.b64decode(env.iv)) == 12
    assert len(base64.b64decode(env.salt)) == 16
    assert codec.decrypt(env, "s3cret") == "{}"


def test_every_encryption_uses_fresh_salt_and_iv(codec):
    a = codec.encrypt("{}", "pw")
    b = codec.encrypt("{}", "pw")

    assert a.salt != b.salt
    assert a.iv != b.iv
    assert a.cipher_text != b.cipher_text


def test_wrong_secret_raises_decryption_error(codec):
    env = codec.encrypt('{"a": 1}', "secret-a")

    with pytest.raises(DecryptionError):
        codec.decrypt(env, "secret-b")


def test_tampered_ciphertext_is_detected(codec):
    env = codec.encrypt('{"amount": 100}', "pw")
    raw = bytearray(base64.b64decode(env.cipher_text))
    raw[0] ^= 0x01
    tampered = env.model_copy(update={"cipher_text": base64.b64encode(bytes(raw)).decode()})

    with pytest.raises(DecryptionError):
        codec.decrypt(tampered, "pw")


def test_empty_plaintext_is_rejected(codec):
    env = codec.encrypt("", "pw")

    with pytest.raises(DecryptionError):
        codec.decrypt(env, "pw")


def test_legacy_cbc_writer_round_trip():
    legacy = EncryptionCodec("aes-cbc", iterations=FAST)
    env = legacy.encrypt('{"k": "v"}', "pw")

    assert env.version == 1
    assert len(base64.b64decode(env.iv)) == 16
    # Any codec reads v1 as long as the KDF parameters match.
    assert EncryptionCodec(iterations=FAST).decrypt(env, "pw") == '{"k": "v"}'


def test_decrypts_v1_envelope_with_16_byte_iv_and_salt():
    # Built directly from primitives: PBKDF2-SHA256 + AES-256-CBC + PKCS7,
    # with raw 16-byte IV and salt as the v1 wire format specifies.
    secret, plaintext = "old-device", '{"version":1}'
    salt, iv = os.urandom(16), os.urandom(16)
    key = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=FAST).derive(
        secret.encode()
    )
    padder = padding.PKCS7(128).padder()
    padded = padder.update(plaintext.encode()) + padder.finalize()
    enc = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ct = enc.update(padded) + enc.finalize()
    wire = json.dumps(
        {
            "version": 1,
            "cipherText": base64.b64encode(ct).decode(),
            "iv": base64.b64encode(iv).decode(),
            "salt": base64.b64encode(salt).decode(),
        }
    )

    assert EncryptionCodec(iterations=FAST).decrypt_json(wire, secret) == plaintext


def test_wrong_secret_on_v1_envelope_raises_decryption_error():
    legacy = EncryptionCodec("aes-cbc", iterations=FAST)
    payload = json.dumps({"transactions": [{"id": f"tx-{i}", "amount": i} for i in range(20)]})
    env = legacy.encrypt(payload, "secret-a")

    with pytest.raises(DecryptionError):
        legacy.decrypt(env, "secret-b")
    # The default codec reads v1 too and must fail the same way.
    with pytest.raises(DecryptionError):
        EncryptionCodec(iterations=FAST).decrypt_json(env.to_json(), "secret-b")


def test_envelope_wire_format_uses_camel_case(codec):
    wire = json.loads(codec.encrypt("{}", "pw").to_json())

    assert set(wire) == {"version", "cipherText", "iv", "salt"}
    assert parse_envelope(json.dumps(wire)).cipher_text == wire["cipherText"]


@pytest.mark.parametrize("version", [0, 3, 99, "1", True, None])
def test_unsupported_versions(codec, version):
    wire = json.dumps({"version": version, "cipherText": "", "iv": "", "salt": ""})

    with pytest.raises(UnsupportedVersion):
        codec.decrypt_json(wire, "pw")


def test_unsupported_version_on_typed_envelope(codec):
    env = Envelope(version=7, cipher_text="AA==", iv="AA==", salt="AA==")

    with pytest.raises(UnsupportedVersion) as ei:
        codec.decrypt(env, "pw")
    assert ei.value.found == 7


@pytest.mark.parametrize(
    "wire",
    [
        "not json at all",
        "[]",
        '{"version": 2}',
        '{"version": 2, "cipherText": "x", "iv": "y", "salt": "z", "extra": 1}',
        '{"version": 2, "cipherText": "***", "iv": "AAAAAAAAAAAAAAAA", "salt": "AAAAAAAAAAAAAAAAAAAAAA=="}',
    ],
)
def test_malformed_envelopes_are_decryption_errors(codec, wire):
    with pytest.raises(DecryptionError):
        codec.decrypt_json(wire, "pw")


def test_decryption_error_is_not_unsupported_version():
    assert not issubclass(DecryptionError, UnsupportedVersion)
    assert not issubclass(UnsupportedVersion, DecryptionError)


def test_unknown_scheme_rejected():
    with pytest.raises(ValueError):
        EncryptionCodec("rot13")  # type: ignore[arg-type]


def test_recovery_key_format():
    key = generate_recovery_key()

    assert re.fullmatch(r"[A-HJ-NP-Z2-9]{6}(-[A-HJ-NP-Z2-9]{6}){3}", key)
    assert generate_recovery_key() != key
