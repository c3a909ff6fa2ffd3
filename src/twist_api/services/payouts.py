"""Payout orchestration after a request has been admitted.

Each flow runs the remaining pipeline stages (replay guard, amount validation,
ownership verification), reserves its idempotency keys, and only then performs
the external action.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import FlushError

from twist_api.core.errors import OwnershipError, ReplayError, UpstreamError, ValidationError
from twist_api.core.rewards import RewardCategory, parse_amount, validate_amount
from twist_api.db.time import Clock, now_ms
from twist_api.models import TwistUser, Winning
from twist_api.schemas.payout import EnvelopeClaimRequest, SignatureRequest, WinRequest
from twist_api.services.broadcast import PushBroadcaster
from twist_api.services.chain import ChainError, ChainService
from twist_api.services.ownership import OwnershipVerifier
from twist_api.services.replay import SpinTokenService
from twist_api.services.user_service import ensure_user, get_user, update_profile

logger = logging.getLogger(__name__)

NATIVE_CATEGORY = "MON"
ENVELOPE_CATEGORY = "ENVELOPE"

KIND_WIN = "win"
KIND_SIGNATURE = "signature"
KIND_ENVELOPE = "envelope"


class PayoutService:
    """Runs the win, signature and envelope payout flows."""

    def __init__(
        self,
        session: Session,
        *,
        tokens: SpinTokenService,
        ownership: OwnershipVerifier,
        chain: ChainService,
        broadcaster: PushBroadcaster,
        reward_table: Mapping[str, RewardCategory],
        clock: Clock = now_ms,
    ) -> None:
        self.session = session
        self.tokens = tokens
        self.ownership = ownership
        self.chain = chain
        self.broadcaster = broadcaster
        self.reward_table = reward_table
        self._clock = clock

    def _check_amount(self, category: str, amount: object) -> int:
        if not validate_amount(category, amount, self.reward_table):
            raise ValidationError(f"amount {amount!r} rejected for {category}")
        return parse_amount(amount) or 0

    async def _check_ownership(self, fid: int, address: str) -> None:
        if not await self.ownership.verify(fid, address):
            raise OwnershipError(f"address {address} not linked to fid {fid}")

    def _check_unused_proof(self, random_key: str) -> None:
        if self.tokens.is_proof_used(random_key):
            raise ReplayError("handshake proof already redeemed")

    def _record_winning(
        self,
        *,
        fid: int,
        category: str,
        amount: int,
        to: str,
        tx_hash: str | None,
        name: str | None,
        pfp_url: str | None = None,
    ) -> None:
        self.session.add(
            Winning(
                fid=fid,
                username=name,
                pfp_url=pfp_url,
                category=category,
                amount=str(amount),
                to_address=to.lower(),
                tx_hash=tx_hash,
                created_at=self._clock(),
            )
        )
        user = get_user(self.session, fid)
        if user is not None:
            update_profile(self.session, user, username=name, pfp_url=pfp_url)
        self.session.commit()

    async def _announce(self, fid: int, name: str | None, pfp_url: str | None,
                        category: str, amount: int) -> None:
        event: dict[str, Any] = {
            "fid": fid,
            "name": name,
            "pfpUrl": pfp_url,
            "token": category,
            "amount": str(amount),
            "timestamp": self._clock(),
        }
        await self.broadcaster.publish("win", event)

    async def win(self, request: WinRequest) -> str:
        """Pay a native-token win through the vault and return the tx hash."""
        self.tokens.verify(request.fid, request.spin_token)
        self._check_unused_proof(request.random_key)
        amount = self._check_amount(NATIVE_CATEGORY, request.amount)
        await self._check_ownership(request.fid, request.to)

        self.tokens.claim(request.fid, request.spin_token, request.random_key, KIND_WIN)
        try:
            tx_hash = await asyncio.to_thread(self.chain.deposit_for, request.to, amount)
        except ChainError as err:
            logger.error("Vault deposit failed for fid %s", request.fid, exc_info=True)
            self.tokens.fail(request.spin_token, str(err))
            raise UpstreamError(str(err)) from err

        self._record_winning(
            fid=request.fid,
            category=NATIVE_CATEGORY,
            amount=amount,
            to=request.to,
            tx_hash=tx_hash,
            name=request.name,
            pfp_url=request.pfp_url,
        )
        self.tokens.complete(request.spin_token, tx_hash)
        logger.info("Paid %s wei to fid %s in %s", amount, request.fid, tx_hash)
        await self._announce(request.fid, request.name, request.pfp_url, NATIVE_CATEGORY, amount)
        return tx_hash

    async def signature(self, request: SignatureRequest) -> str:
        """Sign an ERC-20 reward claim and return the signature."""
        self.tokens.verify(request.fid, request.spin_token)
        self._check_unused_proof(request.random_key)

        category = self.reward_table.get(request.token_name)
        if category is None or category.token_address is None:
            raise ValidationError(f"no claimable token {request.token_name!r}")
        if category.token_address.lower() != request.token_address.lower():
            raise ValidationError(f"token address mismatch for {request.token_name}")
        amount = self._check_amount(category.name, request.amount)
        await self._check_ownership(request.fid, request.user_address)

        self.tokens.claim(request.fid, request.spin_token, request.random_key, KIND_SIGNATURE)
        try:
            signature = self.chain.sign_reward(
                request.user_address, category.token_address, amount
            )
        except ChainError as err:
            logger.error("Reward signing failed for fid %s", request.fid, exc_info=True)
            self.tokens.fail(request.spin_token, str(err))
            raise UpstreamError(str(err)) from err

        self._record_winning(
            fid=request.fid,
            category=category.name,
            amount=amount,
            to=request.user_address,
            tx_hash=None,
            name=request.name,
            pfp_url=request.pfp_url,
        )
        self.tokens.complete(request.spin_token, signature)
        await self._announce(request.fid, request.name, request.pfp_url, category.name, amount)
        return signature

    async def envelope(self, request: EnvelopeClaimRequest) -> str:
        """Send the one-time red envelope and return the tx hash."""
        amount = self._check_amount(ENVELOPE_CATEGORY, request.amount)
        self._check_unused_proof(request.random_key)
        await self._check_ownership(request.fid, request.to)

        user = ensure_user(self.session, request.fid, self._clock())
        if user.envelope_claimed:
            raise ReplayError("envelope already claimed")

        try:
            self.tokens.claim_proof(request.fid, request.random_key, KIND_ENVELOPE, commit=False)
            result = self.session.execute(
                update(TwistUser)
                .where(TwistUser.fid == request.fid, TwistUser.envelope_claimed.is_(False))
                .values(envelope_claimed=True)
            )
            if result.rowcount == 0:
                self.session.rollback()
                raise ReplayError("envelope already claimed")
            self.session.commit()
        except (IntegrityError, FlushError) as err:
            self.session.rollback()
            raise ReplayError("envelope proof already claimed") from err

        try:
            tx_hash = await asyncio.to_thread(self.chain.send_value, request.to, amount)
        except ChainError as err:
            logger.error(
                "Envelope transfer failed for fid %s; claim kept for reconciliation",
                request.fid,
                exc_info=True,
            )
            raise UpstreamError(str(err)) from err

        self._record_winning(
            fid=request.fid,
            category=ENVELOPE_CATEGORY,
            amount=amount,
            to=request.to,
            tx_hash=tx_hash,
            name=request.name,
        )
        return tx_hash

    def envelope_claimed(self, fid: int) -> bool:
        user = get_user(self.session, fid)
        return bool(user is not None and user.envelope_claimed)
