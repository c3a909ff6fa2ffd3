# src/twist_api/models/user.py
"""Per-identity state for the spin mini-app."""

from __future__ import annotations

import json

from sqlalchemy import BigInteger, Boolean, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from twist_api.db.session import Base


class TwistUser(Base):
    """Social-network identity (fid) with allowance, check-in and wallet cache."""

    __tablename__ = "twist_user"

    fid: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    username: Mapped[str | None] = mapped_column(Text, nullable=True)
    pfp_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Spin allowance; timestamps are epoch milliseconds.
    spins_left: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_spin_reset: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_share_spin: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    last_miniapp_open: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    has_followed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Daily check-in
    last_checkin: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    checkin_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_checkins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    envelope_claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Wallet ownership cache (JSON list of lowercase addresses)
    wallets_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    wallets_updated_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    @property
    def cached_wallets(self) -> set[str] | None:
        """Return the cached wallet set, or None if nothing was ever cached."""
        if self.wallets_json is None or self.wallets_updated_at is None:
            return None
        return set(json.loads(self.wallets_json))

    def cache_wallets(self, wallets: set[str], updated_at: int) -> None:
        self.wallets_json = json.dumps(sorted(wallets))
        self.wallets_updated_at = updated_at
