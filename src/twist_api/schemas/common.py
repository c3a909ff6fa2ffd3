"""Shared Pydantic schemas for common API elements."""
from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field

EVM_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class WireModel(BaseModel):
    """Base for camelCase wire models that also accept field names."""

    model_config = ConfigDict(populate_by_name=True)


class HandshakeFields(WireModel):
    """randomKey/fusedKey pair carried inside request bodies."""

    random_key: str = Field(..., alias="randomKey", min_length=1, max_length=256)
    fused_key: str = Field(..., alias="fusedKey", min_length=1, max_length=256)


def check_evm_address(value: str) -> str:
    if not EVM_ADDRESS_RE.match(value):
        raise ValueError("must be a 0x-prefixed 20-byte hex address")
    return value
