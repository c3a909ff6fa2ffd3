# src/twist_api/models/spin_token.py
"""Single-use spin tokens and the idempotency records that consume them."""

from __future__ import annotations

from sqlalchemy import BigInteger, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from twist_api.db.session import Base


class SpinToken(Base):
    """Credential minted when a spin is consumed; append-only."""

    __tablename__ = "spin_token"

    token: Mapped[str] = mapped_column(Text, primary_key=True)
    fid: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False, default="spin")
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    expires_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (Index("ix_spin_token_fid", "fid"),)


class PayoutClaim(Base):
    """Idempotency record keyed by spin token.

    The primary key is the uniqueness constraint that makes a token
    redeemable at most once.
    """

    __tablename__ = "payout_claim"

    token: Mapped[str] = mapped_column(Text, primary_key=True)
    fid: Mapped[int] = mapped_column(BigInteger, nullable=False)
    kind: Mapped[str] = mapped_column(Text, nullable=False)
    random_key: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    result: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    completed_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)


class ProofClaim(Base):
    """Idempotency record keyed by the handshake randomKey."""

    __tablename__ = "proof_claim"

    random_key: Mapped[str] = mapped_column(Text, primary_key=True)
    fid: Mapped[int] = mapped_column(BigInteger, nullable=False)
    kind: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
