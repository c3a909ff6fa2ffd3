"""Blockchain RPC and signing facility.

Wraps web3 for the three value-moving actions the payout flows need plus the
purchase check used when spins are bought. All failures surface as
`ChainError`.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Any

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3
from web3.exceptions import TransactionNotFound

from twist_api.core.settings import settings

logger = logging.getLogger(__name__)

PLAIN_TRANSFER_GAS = 21_000
RECEIPT_POLL_SECONDS = 2

VAULT_ABI: list[dict[str, Any]] = [
    {
        "inputs": [
            {"internalType": "address", "name": "user", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
        ],
        "name": "depositFor",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    }
]


class ChainError(RuntimeError):
    """Raised when an RPC call, signing step or transaction fails."""


@dataclass(frozen=True)
class ChainConfig:
    """Immutable configuration for chain operations."""

    rpc_url: str | None
    timeout_seconds: float
    vault_address: str | None
    payout_private_keys: tuple[str, ...]
    signer_private_key: str | None
    envelope_private_key: str | None


def load_chain_config() -> ChainConfig:
    """Build configuration object from global settings."""
    return ChainConfig(
        rpc_url=settings.rpc_url,
        timeout_seconds=float(settings.chain_timeout_seconds),
        vault_address=settings.winner_vault_address,
        payout_private_keys=tuple(settings.payout_private_keys),
        signer_private_key=settings.signer_private_key,
        envelope_private_key=settings.envelope_private_key,
    )


def reward_digest(user_address: str, token_address: str, amount: int) -> bytes:
    """Return keccak256(abi.encodePacked(user, token, amount))."""
    return bytes(
        Web3.solidity_keccak(
            ["address", "address", "uint256"],
            [
                Web3.to_checksum_address(user_address),
                Web3.to_checksum_address(token_address),
                int(amount),
            ],
        )
    )


def _raw_transaction(signed: Any) -> bytes:
    raw = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction", None)
    if raw is None:
        raise ChainError("Signed transaction has no raw payload")
    return raw


class ChainService:
    """Submit payouts and sign reward claims."""

    def __init__(self, config: ChainConfig | None = None, *, web3: Web3 | None = None) -> None:
        self.config = config or load_chain_config()
        self._w3 = web3

    @property
    def w3(self) -> Web3:
        if self._w3 is None:
            if not self.config.rpc_url:
                raise ChainError("RPC_URL is not configured")
            self._w3 = Web3(
                Web3.HTTPProvider(
                    self.config.rpc_url,
                    request_kwargs={"timeout": self.config.timeout_seconds},
                )
            )
        return self._w3

    def sign_reward(self, user_address: str, token_address: str, amount: int) -> str:
        """Sign a reward claim for on-chain redemption.

        Returns:
            The ``0x``-prefixed 65-byte EIP-191 signature over the packed claim digest.
        """
        if not self.config.signer_private_key:
            raise ChainError("Signature key is not configured")
        try:
            digest = reward_digest(user_address, token_address, amount)
            account = Account.from_key(self.config.signer_private_key)
            signed = account.sign_message(encode_defunct(primitive=digest))
        except (ValueError, TypeError) as exc:
            raise ChainError(f"Failed to sign reward: {exc}") from exc
        return "0x" + bytes(signed.signature).hex()

    def deposit_for(self, to: str, amount: int) -> str:
        """Credit `to` through the winner vault from a random payout wallet."""
        if not self.config.vault_address:
            raise ChainError("Winner vault address is not configured")
        if not self.config.payout_private_keys:
            raise ChainError("No payout wallets configured")

        try:
            account = Account.from_key(secrets.choice(self.config.payout_private_keys))
            vault = self.w3.eth.contract(
                address=Web3.to_checksum_address(self.config.vault_address),
                abi=VAULT_ABI,
            )
            deposit = vault.functions.depositFor(Web3.to_checksum_address(to), int(amount))
            tx = deposit.build_transaction(
                {
                    "from": account.address,
                    "value": int(amount),
                    "nonce": self.w3.eth.get_transaction_count(account.address),
                    "chainId": self.w3.eth.chain_id,
                }
            )
            return self._send(account, tx)
        except ChainError:
            raise
        except Exception as exc:
            raise ChainError(f"Vault deposit failed: {exc}") from exc

    def send_value(self, to: str, amount: int) -> str:
        """Plain native-token transfer from the envelope wallet."""
        if not self.config.envelope_private_key:
            raise ChainError("Envelope wallet key is not configured")

        try:
            account = Account.from_key(self.config.envelope_private_key)
            tx = {
                "to": Web3.to_checksum_address(to),
                "from": account.address,
                "value": int(amount),
                "nonce": self.w3.eth.get_transaction_count(account.address),
                "gas": PLAIN_TRANSFER_GAS,
                "gasPrice": self.w3.eth.gas_price,
                "chainId": self.w3.eth.chain_id,
            }
            return self._send(account, tx)
        except ChainError:
            raise
        except Exception as exc:
            raise ChainError(f"Value transfer failed: {exc}") from exc

    def verify_purchase(self, tx_hash: str, price: int) -> bool:
        """Return True if `tx_hash` is a successful payment of at least `price` to the vault."""
        if not self.config.vault_address:
            raise ChainError("Winner vault address is not configured")
        try:
            receipt = self.w3.eth.get_transaction_receipt(tx_hash)
            tx = self.w3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            return False
        except Exception as exc:
            raise ChainError(f"Purchase lookup failed: {exc}") from exc

        if receipt.get("status") != 1:
            return False
        recipient = tx.get("to")
        if not recipient or recipient.lower() != self.config.vault_address.lower():
            return False
        return int(tx.get("value", 0)) >= price

    def _send(self, account: Any, tx: dict[str, Any]) -> str:
        signed = account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(_raw_transaction(signed))
        receipt = self.w3.eth.wait_for_transaction_receipt(
            tx_hash,
            timeout=self.config.timeout_seconds,
            poll_latency=RECEIPT_POLL_SECONDS,
        )
        tx_hex = Web3.to_hex(tx_hash)
        if receipt.get("status") != 1:
            raise ChainError(f"Transaction {tx_hex} reverted")
        logger.info("Transaction %s confirmed in block %s", tx_hex, receipt.get("blockNumber"))
        return tx_hex


class _ChainServiceSingleton:
    _instance: ChainService | None = None

    @classmethod
    def get_instance(cls) -> ChainService:
        if cls._instance is None:
            cls._instance = ChainService()
        return cls._instance


def get_chain_service() -> ChainService:
    """Return a singleton chain service."""
    return _ChainServiceSingleton.get_instance()
