"""Tests for the randomKey/fusedKey handshake."""

import pytest

from twist_api.core.handshake import (
    client_hash,
    generate_proof,
    parse_timestamp,
    verify_proof,
)

SALT = "public-salt"
SECRET = "server-secret"
NOW = 1_700_000_000_000


def _verify(random_key, fused_key, current_ms=NOW, **kwargs) -> bool:
    return verify_proof(
        random_key,
        fused_key,
        public_salt=kwargs.pop("public_salt", SALT),
        server_secret=SECRET,
        current_ms=current_ms,
        **kwargs,
    )


def test_generated_proof_verifies() -> None:
    proof = generate_proof(SALT, NOW)
    assert proof.random_key.endswith(f"_{NOW}")
    assert proof.fused_key.startswith("0x") and len(proof.fused_key) == 66
    assert _verify(proof.random_key, proof.fused_key)


def test_fused_key_is_keccak_of_key_and_salt() -> None:
    # keccak256("") is a well-known constant; salt and key concatenate as text.
    assert client_hash("", "") == (
        "0xc5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
    )
    assert client_hash("abc_1", SALT) == client_hash("abc_1" + SALT, "")


def test_stale_proof_rejected() -> None:
    proof = generate_proof(SALT, NOW - 300_001)
    assert not _verify(proof.random_key, proof.fused_key)


def test_proof_at_freshness_boundary_accepted() -> None:
    proof = generate_proof(SALT, NOW - 300_000)
    assert _verify(proof.random_key, proof.fused_key)


def test_future_timestamp_accepted() -> None:
    proof = generate_proof(SALT, NOW + 60_000)
    assert _verify(proof.random_key, proof.fused_key)


def test_custom_freshness_window() -> None:
    proof = generate_proof(SALT, NOW - 2_000)
    assert not _verify(proof.random_key, proof.fused_key, freshness_ms=1_000)


def test_wrong_salt_rejected() -> None:
    proof = generate_proof("other-salt", NOW)
    assert not _verify(proof.random_key, proof.fused_key)


def test_tampered_fused_key_rejected() -> None:
    proof = generate_proof(SALT, NOW)
    tampered = proof.fused_key[:-1] + ("0" if proof.fused_key[-1] != "0" else "1")
    assert not _verify(proof.random_key, tampered)


@pytest.mark.parametrize(
    ("random_key", "fused_key"),
    [
        (None, "0xabc"),
        ("abc_1", None),
        ("", "0xabc"),
        ("abc_1", ""),
    ],
)
def test_missing_parts_rejected(random_key, fused_key) -> None:
    assert not _verify(random_key, fused_key)


@pytest.mark.parametrize(
    "random_key",
    [
        "abc",
        "a_b_c",
        f"_{NOW}",
        "abc_notanumber",
        f"abc_ {NOW}",
        f"abc_+{NOW}",
        f"abc_-{NOW}",
        "abc_\u0661\u0667\u0660\u0660",
        "abc_",
    ],
)
def test_malformed_random_key_rejected(random_key: str) -> None:
    assert parse_timestamp(random_key) is None
    assert not _verify(random_key, client_hash(random_key, SALT))
