"""Wallet-ownership verification against the identity provider.

A fresh cache (younger than the TTL) is authoritative in both directions. A
stale or missing cache triggers a provider lookup; if the provider fails, a
stale cache is used as a last resort and a missing one denies.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from twist_api.core.settings import settings
from twist_api.db.time import MS_PER_SECOND, Clock, now_ms
from twist_api.models import TwistUser
from twist_api.services.identity import IdentityProviderClient, IdentityProviderError
from twist_api.services.user_service import ensure_user

logger = logging.getLogger(__name__)


class OwnershipVerifier:
    """Decide whether an address belongs to an identity."""

    def __init__(
        self,
        session: Session,
        provider: IdentityProviderClient,
        *,
        cache_ttl_seconds: int | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.session = session
        self.provider = provider
        self.cache_ttl_ms = (cache_ttl_seconds or settings.wallet_cache_ttl_seconds) * MS_PER_SECOND
        self._clock = clock

    async def verify(self, fid: int | None, address: str | None) -> bool:
        """Return True if `address` is one of the wallets linked to `fid`."""
        if not fid or not address:
            return False

        normalized = address.strip().lower()
        now = self._clock()
        user = self.session.get(TwistUser, fid)
        cached = user.cached_wallets if user is not None else None

        if cached is not None and user is not None and user.wallets_updated_at is not None:
            if now - user.wallets_updated_at < self.cache_ttl_ms:
                return normalized in cached

        try:
            wallets = await self.provider.fetch_wallets(fid)
        except IdentityProviderError as exc:
            if cached is not None:
                logger.warning(
                    "Identity provider failed for fid %s, using stale wallet cache: %s", fid, exc
                )
                return normalized in cached
            logger.warning("Identity provider failed for fid %s and no cache exists: %s", fid, exc)
            return False

        self._store(fid, wallets, now)
        return normalized in wallets

    def _store(self, fid: int, wallets: set[str], now: int) -> None:
        try:
            user = ensure_user(self.session, fid, now)
            user.cache_wallets(wallets, now)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.warning("Failed to cache wallets for fid %s", fid, exc_info=True)
