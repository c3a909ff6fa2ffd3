"""Single-use spin tokens and payout idempotency.

A spin token is minted when an allowance unit is consumed and may fund exactly
one payout. Redemption is enforced by a uniqueness-constrained insert into
`payout_claim` (keyed by token) and `proof_claim` (keyed by the handshake
randomKey) in one transaction, so two concurrent requests cannot both pass.

The claim is written before the external transfer and is never released: a
failed or interrupted payout leaves a `failed`/`pending` claim for operators to
reconcile instead of risking a second transfer.
"""

from __future__ import annotations

import logging
import secrets
from typing import Final

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import FlushError

from twist_api.core.errors import ReplayError
from twist_api.core.settings import settings
from twist_api.db.time import MS_PER_SECOND, Clock, now_ms
from twist_api.models import PayoutClaim, ProofClaim, SpinToken

logger = logging.getLogger(__name__)

SPIN_ACTION: Final[str] = "spin"
TOKEN_BYTES: Final[int] = 24

CLAIM_PENDING: Final[str] = "pending"
CLAIM_COMPLETED: Final[str] = "completed"
CLAIM_FAILED: Final[str] = "failed"


class SpinTokenService:
    """Mint, verify and redeem spin tokens."""

    def __init__(
        self,
        session: Session,
        *,
        ttl_seconds: int | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.session = session
        self.ttl_seconds = ttl_seconds or settings.spin_token_ttl_seconds
        self._clock = clock

    def mint(self, fid: int, action: str = SPIN_ACTION, *, commit: bool = True) -> SpinToken:
        """Create a token for `fid` valid for the configured TTL."""
        created_at = self._clock()
        record = SpinToken(
            token=secrets.token_urlsafe(TOKEN_BYTES),
            fid=fid,
            action=action,
            created_at=created_at,
            expires_at=created_at + self.ttl_seconds * MS_PER_SECOND,
        )
        self.session.add(record)
        if commit:
            self.session.commit()
        else:
            self.session.flush()
        return record

    def verify(self, fid: int, token: str, action: str = SPIN_ACTION) -> SpinToken:
        """Return the live, unredeemed token record or raise `ReplayError`."""
        record = self.session.execute(
            select(SpinToken).where(
                SpinToken.token == token,
                SpinToken.fid == fid,
                SpinToken.action == action,
                SpinToken.expires_at > self._clock(),
            )
        ).scalar_one_or_none()
        if record is None:
            raise ReplayError("unknown or expired spin token")
        if self.session.get(PayoutClaim, token) is not None:
            raise ReplayError("spin token already used")
        return record

    def is_proof_used(self, random_key: str) -> bool:
        return self.session.get(ProofClaim, random_key) is not None

    def claim(self, fid: int, token: str, random_key: str, kind: str) -> PayoutClaim:
        """Atomically reserve `token` and `random_key` for one payout.

        Raises:
            ReplayError: If either key was already claimed.
        """
        now = self._clock()
        claim = PayoutClaim(
            token=token,
            fid=fid,
            kind=kind,
            random_key=random_key,
            status=CLAIM_PENDING,
            created_at=now,
        )
        self.session.add(claim)
        self.session.add(ProofClaim(random_key=random_key, fid=fid, kind=kind, created_at=now))
        try:
            self.session.commit()
        except (IntegrityError, FlushError) as err:
            self.session.rollback()
            raise ReplayError("spin token or proof already claimed") from err
        return claim

    def claim_proof(self, fid: int, random_key: str, kind: str, *, commit: bool = True) -> None:
        """Reserve a handshake randomKey for a token-less payout."""
        self.session.add(
            ProofClaim(random_key=random_key, fid=fid, kind=kind, created_at=self._clock())
        )
        if not commit:
            return
        try:
            self.session.commit()
        except (IntegrityError, FlushError) as err:
            self.session.rollback()
            raise ReplayError("proof already claimed") from err

    def complete(self, token: str, result: str) -> None:
        self._finish(token, CLAIM_COMPLETED, result)

    def fail(self, token: str, reason: str) -> None:
        """Mark a claim failed. The token stays consumed."""
        self._finish(token, CLAIM_FAILED, reason)

    def _finish(self, token: str, status: str, result: str) -> None:
        claim = self.session.get(PayoutClaim, token)
        if claim is None:
            logger.error("No payout claim recorded for token %s", token)
            return
        claim.status = status
        claim.result = result
        claim.completed_at = self._clock()
        self.session.commit()


def get_spin_token_service(session: Session) -> SpinTokenService:
    """Return a spin token service bound to `session`."""
    return SpinTokenService(session)
