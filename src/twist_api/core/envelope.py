"""Encrypted request envelope codec.

Sensitive endpoints accept `{"encryptedPayload": EncryptedEnvelope}` in place
of a plaintext body. The cipher is a repeating-key XOR keyed by a PBKDF2
derivation of a server base secret; integrity comes from an HMAC tag that is
checked before any decrypted byte is interpreted.
"""
from __future__ import annotations

import base64
import json
import secrets
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import BaseModel, ConfigDict, Field

from twist_api.utils.hash import constant_time_equals, hmac_sha256_hex, sha256_hex

DEFAULT_FRESHNESS_MS = 5 * 60 * 1000
DEFAULT_ITERATIONS = 100_000
DERIVED_KEY_BYTES = 32
SALT_BYTES = 32
IV_BYTES = 16

INTERNAL_FIELDS = frozenset(
    {
        "_salt",
        "_timestamp",
        "_nonce",
        "_nonceSalt",
        "_browserFingerprint",
        "_browserSalt",
        "_browserChallenge",
        "_browserSolution",
    }
)


class EnvelopeDecodeError(ValueError):
    """Raised when an envelope fails any decoding or integrity check."""


class EncryptedEnvelope(BaseModel):
    """Wire format of an encrypted request body."""

    encrypted_data: str = Field(..., alias="encryptedData")
    iv: str = Field("", description="Random filler kept for wire compatibility")
    tag: str
    salt: str
    timestamp: int
    nonce: str

    model_config = ConfigDict(populate_by_name=True)


@dataclass(frozen=True)
class DecodedPayload:
    """Business payload recovered from an envelope."""

    data: dict[str, Any]
    salt: str
    timestamp: int
    nonce: str
    fingerprint: str | None = None


def _now_ms() -> int:
    return int(time.time() * 1000)


def derive_key(base_key: str, salt: str, nonce: str, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=DERIVED_KEY_BYTES,
        salt=(salt + nonce).encode("utf-8"),
        iterations=iterations,
    )
    return kdf.derive(base_key.encode("utf-8"))


def _xor(data: bytes, key: bytes) -> bytes:
    key_length = len(key)
    return bytes(byte ^ key[index % key_length] for index, byte in enumerate(data))


def _tag(derived_key: bytes, encrypted_data: str, nonce: str) -> str:
    return hmac_sha256_hex(derived_key, encrypted_data + nonce)


def timestamp_salt(timestamp: int, salt_secret: str) -> str:
    return sha256_hex(str(timestamp) + salt_secret)


def nonce_salt(nonce: str, timestamp: int, salt_secret: str) -> str:
    return sha256_hex(salt_secret + nonce + str(timestamp))


def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def browser_solution(challenge_b64: str) -> str:
    """Return the expected solution for a base64 browser challenge."""
    challenge = json.loads(base64.b64decode(challenge_b64, validate=True))
    return sha256_hex(_compact_json(challenge))


def encode_payload(
    data: Mapping[str, Any],
    *,
    base_key: str,
    salt_secret: str,
    iterations: int = DEFAULT_ITERATIONS,
    timestamp_ms: int | None = None,
) -> EncryptedEnvelope:
    """Encrypt a business payload into an envelope.

    This is the counterpart of the browser encoder and is used by tests and
    server-side tooling.
    """
    if not isinstance(data, Mapping):
        raise TypeError("Envelope payloads must be JSON objects")

    timestamp = _now_ms() if timestamp_ms is None else timestamp_ms
    salt = secrets.token_hex(SALT_BYTES)
    nonce = secrets.token_hex(16)

    body = dict(data)
    body["_salt"] = timestamp_salt(timestamp, salt_secret)
    body["_timestamp"] = timestamp
    body["_nonce"] = nonce
    body["_nonceSalt"] = nonce_salt(nonce, timestamp, salt_secret)

    derived_key = derive_key(base_key, salt, nonce, iterations)
    cipher = _xor(_compact_json(body).encode("utf-8"), derived_key.hex().encode("ascii"))
    encrypted_data = base64.b64encode(cipher).decode("ascii")

    return EncryptedEnvelope(
        encryptedData=encrypted_data,
        iv=secrets.token_hex(IV_BYTES),
        tag=_tag(derived_key, encrypted_data, nonce),
        salt=salt,
        timestamp=timestamp,
        nonce=nonce,
    )


def decode_payload(
    envelope: EncryptedEnvelope,
    *,
    base_key: str,
    salt_secret: str,
    iterations: int = DEFAULT_ITERATIONS,
    current_ms: int | None = None,
    freshness_ms: int = DEFAULT_FRESHNESS_MS,
) -> DecodedPayload:
    """Authenticate, decrypt and unwrap an envelope.

    Raises:
        EnvelopeDecodeError: On any failure. The message is for logs only.
    """
    current = _now_ms() if current_ms is None else current_ms
    if current - envelope.timestamp > freshness_ms:
        raise EnvelopeDecodeError("envelope expired")

    derived_key = derive_key(base_key, envelope.salt, envelope.nonce, iterations)
    expected_tag = _tag(derived_key, envelope.encrypted_data, envelope.nonce)
    if not constant_time_equals(expected_tag, envelope.tag):
        raise EnvelopeDecodeError("authentication tag mismatch")

    try:
        cipher = base64.b64decode(envelope.encrypted_data, validate=True)
        plaintext = _xor(cipher, derived_key.hex().encode("ascii")).decode("utf-8")
        parsed = json.loads(plaintext)
    except ValueError as err:
        raise EnvelopeDecodeError(f"undecodable plaintext: {err}") from err

    if not isinstance(parsed, dict):
        raise EnvelopeDecodeError("plaintext is not a JSON object")

    embedded_salt = parsed.get("_salt")
    if not isinstance(embedded_salt, str) or not constant_time_equals(
        embedded_salt, timestamp_salt(envelope.timestamp, salt_secret)
    ):
        raise EnvelopeDecodeError("internal salt mismatch")

    embedded_timestamp = parsed.get("_timestamp")
    if type(embedded_timestamp) is not int or embedded_timestamp != envelope.timestamp:
        raise EnvelopeDecodeError("internal timestamp mismatch")

    if parsed.get("_nonce") != envelope.nonce:
        raise EnvelopeDecodeError("internal nonce mismatch")

    embedded_nonce_salt = parsed.get("_nonceSalt")
    if not isinstance(embedded_nonce_salt, str) or not constant_time_equals(
        embedded_nonce_salt, nonce_salt(envelope.nonce, envelope.timestamp, salt_secret)
    ):
        raise EnvelopeDecodeError("internal nonce salt mismatch")

    challenge = parsed.get("_browserChallenge")
    solution = parsed.get("_browserSolution")
    if challenge is not None or solution is not None:
        if not isinstance(challenge, str):
            raise EnvelopeDecodeError("browser challenge is not a string")
        try:
            expected_solution = browser_solution(challenge)
        except ValueError as err:
            raise EnvelopeDecodeError(f"malformed browser challenge: {err}") from err
        if not isinstance(solution, str) or not constant_time_equals(expected_solution, solution):
            raise EnvelopeDecodeError("browser challenge mismatch")

    fingerprint = parsed.get("_browserFingerprint")
    clean = {key: value for key, value in parsed.items() if key not in INTERNAL_FIELDS}
    return DecodedPayload(
        data=clean,
        salt=envelope.salt,
        timestamp=envelope.timestamp,
        nonce=envelope.nonce,
        fingerprint=fingerprint if isinstance(fingerprint, str) else None,
    )
