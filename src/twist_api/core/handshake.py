"""Two-part keyed-hash request handshake.

The client proves it ran the expected computation by sending a
`randomKey` (random text plus a millisecond timestamp) together with
`fusedKey = keccak256(randomKey + PUBLIC_SALT)`. The public salt ships with
the front-end bundle but never travels over the wire.
"""
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass

from twist_api.utils.hash import constant_time_equals, keccak256_text_hex

DEFAULT_FRESHNESS_MS = 5 * 60 * 1000
KEY_SEPARATOR = "_"
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
RANDOM_PART_LENGTH = 13


@dataclass(frozen=True)
class HandshakeProof:
    """randomKey/fusedKey pair presented by a client."""

    random_key: str
    fused_key: str


def now_ms() -> int:
    return int(time.time() * 1000)


def client_hash(random_key: str, public_salt: str) -> str:
    """Return the digest a legitimate client sends as `fusedKey`."""
    return keccak256_text_hex(random_key + public_salt)


def server_hash(client_digest: str, server_secret: str) -> str:
    return keccak256_text_hex(client_digest + server_secret)


def parse_timestamp(random_key: str) -> int | None:
    """Return the millisecond timestamp embedded in `random_key`, if well formed."""
    parts = random_key.split(KEY_SEPARATOR)
    if len(parts) != 2 or not parts[0]:
        return None
    digits = parts[1]
    if not (digits.isascii() and digits.isdigit()):
        return None
    return int(digits)


def generate_proof(public_salt: str, timestamp_ms: int | None = None) -> HandshakeProof:
    """Build a proof the way the browser client does.

    Args:
        public_salt: The salt shared with the front-end bundle.
        timestamp_ms: Creation time to embed; defaults to now.

    Returns:
        A fresh `HandshakeProof`.
    """
    random_part = "".join(secrets.choice(_BASE36) for _ in range(RANDOM_PART_LENGTH))
    stamp = now_ms() if timestamp_ms is None else timestamp_ms
    random_key = f"{random_part}{KEY_SEPARATOR}{stamp}"
    return HandshakeProof(random_key=random_key, fused_key=client_hash(random_key, public_salt))


def verify_proof(
    random_key: str | None,
    fused_key: str | None,
    *,
    public_salt: str,
    server_secret: str,
    current_ms: int | None = None,
    freshness_ms: int = DEFAULT_FRESHNESS_MS,
) -> bool:
    """Validate a handshake proof.

    Args:
        random_key: `<random>_<millis>` string from the client.
        fused_key: Hex digest the client computed.
        public_salt: Salt shared with the front-end.
        server_secret: Server-only secret.
        current_ms: Verification time; defaults to now.
        freshness_ms: Maximum accepted age of the embedded timestamp.

    Returns:
        True if the proof is well formed, fresh and its digest matches.

    Notes:
        The server-secret digest is computed but compared against nothing
        the client supplies, so it adds no strength over the public-salt
        check. It is kept to preserve the deployed protocol.
    """
    if not random_key or not fused_key:
        return False

    timestamp = parse_timestamp(random_key)
    if timestamp is None:
        return False

    current = now_ms() if current_ms is None else current_ms
    if current - timestamp > freshness_ms:
        return False

    expected = client_hash(random_key, public_salt)
    if not constant_time_equals(expected, fused_key):
        return False

    return len(server_hash(expected, server_secret)) > 0
