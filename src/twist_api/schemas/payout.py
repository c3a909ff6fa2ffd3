"""Payout request and response schemas."""

from __future__ import annotations

from typing import Union

from pydantic import Field, StrictInt, StrictStr, field_validator

from .common import HandshakeFields, WireModel, check_evm_address

Amount = Union[StrictInt, StrictStr]


class WinRequest(HandshakeFields):
    """Native-token win paid through the winner vault."""

    fid: int = Field(..., gt=0)
    to: str = Field(..., description="Payout address")
    amount: Amount = Field(..., description="Smallest-unit amount as digits")
    spin_token: str = Field(..., alias="spinToken", min_length=1, max_length=128)
    name: str | None = Field(None, max_length=128)
    pfp_url: str | None = Field(None, alias="pfpUrl", max_length=2048)

    @field_validator("to")
    @classmethod
    def _check_to(cls, value: str) -> str:
        return check_evm_address(value)


class SignatureRequest(HandshakeFields):
    """ERC-20 reward claim to be signed for on-chain redemption."""

    fid: int = Field(..., gt=0)
    user_address: str = Field(..., alias="userAddress")
    token_address: str = Field(..., alias="tokenAddress")
    token_name: str = Field(..., alias="tokenName", min_length=1, max_length=32)
    amount: Amount
    spin_token: str = Field(..., alias="spinToken", min_length=1, max_length=128)
    name: str | None = Field(None, max_length=128)
    pfp_url: str | None = Field(None, alias="pfpUrl", max_length=2048)

    @field_validator("user_address", "token_address")
    @classmethod
    def _check_addresses(cls, value: str) -> str:
        return check_evm_address(value)


class EnvelopeClaimRequest(HandshakeFields):
    """One-time red envelope claim."""

    fid: int = Field(..., gt=0)
    to: str
    amount: Amount
    name: str | None = Field(None, max_length=128)

    @field_validator("to")
    @classmethod
    def _check_to(cls, value: str) -> str:
        return check_evm_address(value)


class WinResponse(WireModel):
    success: bool = True
    tx_hash: str = Field(..., alias="txHash")


class SignatureResponse(WireModel):
    signature: str


class EnvelopeClaimResponse(WireModel):
    success: bool = True
    tx_hash: str = Field(..., alias="txHash")


class EnvelopeStatusResponse(WireModel):
    claimed: bool
