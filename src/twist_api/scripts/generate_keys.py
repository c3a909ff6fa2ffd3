# src/twist_api/scripts/generate_keys.py
"""Print fresh values for the secrets the admission pipeline requires.

Usage:
    python -m twist_api.scripts.generate_keys >> .env
"""

from __future__ import annotations

import secrets

from eth_account import Account

SECRET_NAMES = (
    "PUBLIC_KEY_SALT",
    "SERVER_SECRET_KEY",
    "PAYLOAD_ENCRYPTION_KEY",
    "PAYLOAD_SALT_SECRET",
)


def generate_secrets(nbytes: int = 32) -> dict[str, str]:
    """Return one random hex secret per required setting."""
    return {name: secrets.token_hex(nbytes) for name in SECRET_NAMES}


def generate_signer() -> tuple[str, str]:
    """Return (private key, address) for a new reward-signing account."""
    account = Account.create()
    return "0x" + bytes(account.key).hex(), account.address


def main() -> None:
    for name, value in generate_secrets().items():
        print(f"{name}={value}")
    key, address = generate_signer()
    print(f"# signer address: {address}")
    print(f"SIGNER_PRIVATE_KEY={key}")


if __name__ == "__main__":
    main()
