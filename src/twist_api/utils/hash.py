# src/twist_api/utils/hash.py
"""Hashing helpers shared by the handshake and envelope codecs."""

from __future__ import annotations

import hashlib
import hmac

from web3 import Web3


def keccak256(data: bytes) -> bytes:
    """Return the Ethereum-flavoured Keccak-256 digest (not NIST SHA3-256)."""
    return bytes(Web3.keccak(data))


def keccak256_text_hex(text: str) -> str:
    """Return `0x`-prefixed lowercase Keccak-256 hex of UTF-8 `text`.

    Matches `ethers.keccak256(ethers.toUtf8Bytes(text))` on the front-end.
    """
    return "0x" + keccak256(text.encode("utf-8")).hex()


def sha256_hex(text: str) -> str:
    """Return the lowercase SHA-256 hex digest of UTF-8 `text`."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hmac_sha256_hex(key: bytes, message: str) -> str:
    """Return the HMAC-SHA256 hex digest of UTF-8 `message` under `key`."""
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).hexdigest()


def constant_time_equals(left: str, right: str) -> bool:
    """Compare two strings without leaking the mismatch position."""
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))
