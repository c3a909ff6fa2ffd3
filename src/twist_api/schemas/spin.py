"""Spin allowance schemas."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from .common import WireModel

SpinMode = Literal["check", "spin", "share", "follow", "miniapp_open", "buy"]


class SpinRequest(WireModel):
    """Allowance request; proof fields are required for every mode except `check`."""

    fid: int = Field(..., gt=0)
    mode: SpinMode = "check"
    random_key: str | None = Field(None, alias="randomKey", max_length=256)
    fused_key: str | None = Field(None, alias="fusedKey", max_length=256)
    tx_hash: str | None = Field(
        None,
        alias="txHash",
        pattern=r"^0x[0-9a-fA-F]{64}$",
        description="Purchase transaction for mode `buy`",
    )


class SpinResponse(WireModel):
    spins_left: int = Field(..., alias="spinsLeft")
    last_spin_reset: int | None = Field(None, alias="lastSpinReset")
    last_share_spin: int | None = Field(None, alias="lastShareSpin")
    follow: bool | None = None
    granted: int | None = None
    spin_token: str | None = Field(None, alias="spinToken")
    expires_at: int | None = Field(None, alias="expiresAt")
