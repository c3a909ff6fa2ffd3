"""Spin allowance, grant actions and the daily check-in.

Every identity gets a fixed number of spins per day. Consuming a spin mints a
single-use spin token. Extra spins come from a closed set of grant actions,
each described by one `GrantRule` in `GRANT_RULES`; adding or removing an
action only touches that table. All counter changes are conditional UPDATEs
so concurrent requests cannot double-grant or overdraw.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy import ColumnElement, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import FlushError

from twist_api.core.errors import EligibilityError, UpstreamError, ValidationError
from twist_api.core.settings import settings
from twist_api.db.time import DAY_MS, Clock, now_ms
from twist_api.models import CheckinHistory, SpinPurchase, SpinToken, TwistUser
from twist_api.services.chain import ChainError, ChainService
from twist_api.services.identity import IdentityProviderClient, IdentityProviderError
from twist_api.services.replay import SpinTokenService
from twist_api.services.user_service import ensure_user, get_user

logger = logging.getLogger(__name__)

WEEKLY_BONUS_SPINS = 10
STREAK_TIERS: tuple[tuple[int, int], ...] = ((30, 5), (14, 3), (7, 2))


class AllowanceAction(str, Enum):
    """Actions that grant extra spins."""

    SHARE = "share"
    FOLLOW = "follow"
    MINIAPP_OPEN = "miniapp_open"
    BUY = "buy"


@dataclass(frozen=True)
class GrantRequest:
    fid: int
    tx_hash: str | None = None


@dataclass(frozen=True)
class AllowanceStatus:
    spins_left: int
    last_spin_reset: int | None
    last_share_spin: int | None
    has_followed: bool


@dataclass(frozen=True)
class CheckinReward:
    spins: int
    bonus: bool


@dataclass(frozen=True)
class CheckinStatus:
    can_check_in: bool
    last_check_in: int | None
    streak: int
    total: int
    next_check_in_time: int | None
    next_reward: CheckinReward


@dataclass(frozen=True)
class CheckinResult:
    streak: int
    total: int
    reward: CheckinReward
    spins_left: int


Precheck = Callable[["AllowanceService", GrantRequest], Awaitable[None]]


@dataclass(frozen=True)
class GrantRule:
    """Eligibility and bookkeeping for one grant action."""

    spins: int
    denial: str
    available: Callable[[TwistUser, int], bool]
    conditions: Callable[[int], tuple[ColumnElement[bool], ...]]
    marks: Callable[[int], dict[str, Any]]
    precheck: Precheck | None = None


def _once_per_day(column_name: str, denial: str, spins: int) -> GrantRule:
    column = getattr(TwistUser, column_name)

    def available(user: TwistUser, now: int) -> bool:
        last = getattr(user, column_name)
        return last is None or now - last >= DAY_MS

    return GrantRule(
        spins=spins,
        denial=denial,
        available=available,
        conditions=lambda now: (or_(column.is_(None), column <= now - DAY_MS),),
        marks=lambda now: {column_name: now},
    )


async def _require_follow(service: AllowanceService, grant: GrantRequest) -> None:
    if service.identity is None:
        raise UpstreamError("identity provider not available")
    try:
        following = await service.identity.is_following(grant.fid, settings.follow_target_fid)
    except IdentityProviderError as err:
        logger.error("Follow check failed for fid %s", grant.fid, exc_info=True)
        raise UpstreamError(str(err)) from err
    if not following:
        raise EligibilityError("Follow not detected yet.")


async def _require_purchase(service: AllowanceService, grant: GrantRequest) -> None:
    if not grant.tx_hash:
        raise ValidationError("purchase grant without txHash")
    if service.chain is None:
        raise UpstreamError("chain service not available")
    tx_hash = grant.tx_hash.lower()
    if service.session.get(SpinPurchase, tx_hash) is not None:
        raise EligibilityError("Purchase already used.")
    try:
        paid = await asyncio.to_thread(
            service.chain.verify_purchase, tx_hash, settings.spin_price_wei
        )
    except ChainError as err:
        logger.error("Purchase verification failed for %s", tx_hash, exc_info=True)
        raise UpstreamError(str(err)) from err
    if not paid:
        raise EligibilityError("Purchase not confirmed.")
    service.session.add(
        SpinPurchase(tx_hash=tx_hash, fid=grant.fid, created_at=service.clock())
    )


GRANT_RULES: dict[AllowanceAction, GrantRule] = {
    AllowanceAction.SHARE: _once_per_day(
        "last_share_spin", "You can only get share spins once every 24 hours.", spins=2
    ),
    AllowanceAction.FOLLOW: GrantRule(
        spins=1,
        denial="You have already followed.",
        available=lambda user, now: not user.has_followed,
        conditions=lambda now: (TwistUser.has_followed.is_(False),),
        marks=lambda now: {"has_followed": True},
        precheck=_require_follow,
    ),
    AllowanceAction.MINIAPP_OPEN: _once_per_day(
        "last_miniapp_open", "You can only get this bonus once every 24 hours.", spins=1
    ),
    AllowanceAction.BUY: GrantRule(
        spins=2,
        denial="Purchase already used.",
        available=lambda user, now: True,
        conditions=lambda now: (),
        marks=lambda now: {},
        precheck=_require_purchase,
    ),
}


def checkin_reward(streak: int) -> CheckinReward:
    """Spins earned for reaching `streak` consecutive daily check-ins."""
    if streak > 0 and streak % 7 == 0:
        return CheckinReward(spins=WEEKLY_BONUS_SPINS, bonus=True)
    for threshold, spins in STREAK_TIERS:
        if streak >= threshold:
            return CheckinReward(spins=spins, bonus=False)
    return CheckinReward(spins=1, bonus=False)


class AllowanceService:
    """Per-identity spin counters."""

    def __init__(
        self,
        session: Session,
        *,
        tokens: SpinTokenService | None = None,
        identity: IdentityProviderClient | None = None,
        chain: ChainService | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.session = session
        self.tokens = tokens or SpinTokenService(session, clock=clock)
        self.identity = identity
        self.chain = chain
        self.clock = clock

    def _refresh(self, user: TwistUser, now: int) -> None:
        if now - user.last_spin_reset > DAY_MS:
            user.spins_left = settings.spins_per_day
            user.last_spin_reset = now
            self.session.commit()

    def _load(self, fid: int, now: int) -> TwistUser:
        user = ensure_user(self.session, fid, now)
        self._refresh(user, now)
        return user

    def status(self, fid: int) -> AllowanceStatus:
        now = self.clock()
        user = get_user(self.session, fid)
        if user is None:
            return AllowanceStatus(
                spins_left=settings.spins_per_day,
                last_spin_reset=None,
                last_share_spin=None,
                has_followed=False,
            )
        self._refresh(user, now)
        return AllowanceStatus(
            spins_left=user.spins_left,
            last_spin_reset=user.last_spin_reset,
            last_share_spin=user.last_share_spin,
            has_followed=user.has_followed,
        )

    def consume(self, fid: int) -> tuple[int, SpinToken]:
        """Spend one spin and mint the token that may fund its payout.

        Raises:
            EligibilityError: If no spins are left.
        """
        now = self.clock()
        user = self._load(fid, now)
        result = self.session.execute(
            update(TwistUser)
            .where(TwistUser.fid == fid, TwistUser.spins_left > 0)
            .values(spins_left=TwistUser.spins_left - 1)
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise EligibilityError("No spins left")

        token = self.tokens.mint(fid, commit=False)
        self.session.commit()
        self.session.refresh(user)
        logger.info("fid %s spent a spin, %d left", fid, user.spins_left)
        return user.spins_left, token

    async def grant(self, action: AllowanceAction, grant: GrantRequest) -> tuple[int, int]:
        """Apply one grant action.

        Returns:
            Tuple of (spins left, spins granted).
        """
        rule = GRANT_RULES[action]
        now = self.clock()
        user = self._load(grant.fid, now)
        if not rule.available(user, now):
            raise EligibilityError(rule.denial)

        if rule.precheck is not None:
            await rule.precheck(self, grant)

        try:
            result = self.session.execute(
                update(TwistUser)
                .where(TwistUser.fid == grant.fid, *rule.conditions(now))
                .values(spins_left=TwistUser.spins_left + rule.spins, **rule.marks(now))
            )
            if result.rowcount == 0:
                self.session.rollback()
                raise EligibilityError(rule.denial)
            self.session.commit()
        except (IntegrityError, FlushError) as err:
            self.session.rollback()
            raise EligibilityError(rule.denial) from err

        self.session.refresh(user)
        logger.info("fid %s granted %d spins via %s", grant.fid, rule.spins, action.value)
        return user.spins_left, rule.spins

    def checkin_status(self, fid: int) -> CheckinStatus:
        now = self.clock()
        user = get_user(self.session, fid)
        last = user.last_checkin if user is not None else None
        streak = user.checkin_streak if user is not None else 0
        total = user.total_checkins if user is not None else 0
        can_check_in = last is None or now - last >= DAY_MS
        return CheckinStatus(
            can_check_in=can_check_in,
            last_check_in=last,
            streak=streak,
            total=total,
            next_check_in_time=None if can_check_in or last is None else last + DAY_MS,
            next_reward=checkin_reward(streak),
        )

    def check_in(self, fid: int) -> CheckinResult:
        """Record today's check-in and credit the streak reward.

        Raises:
            EligibilityError: If the previous check-in was under 24 hours ago.
        """
        now = self.clock()
        user = self._load(fid, now)
        last = user.last_checkin
        if last is not None and now - last < DAY_MS:
            raise EligibilityError("Already checked in today")

        streak = user.checkin_streak + 1 if last is not None and now - last < 2 * DAY_MS else 1
        reward = checkin_reward(streak)
        unchanged = (
            TwistUser.last_checkin.is_(None) if last is None else TwistUser.last_checkin == last
        )
        result = self.session.execute(
            update(TwistUser)
            .where(TwistUser.fid == fid, unchanged)
            .values(
                last_checkin=now,
                checkin_streak=streak,
                total_checkins=TwistUser.total_checkins + 1,
                spins_left=TwistUser.spins_left + reward.spins,
            )
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise EligibilityError("Already checked in today")

        self.session.add(
            CheckinHistory(
                fid=fid, streak=streak, reward=reward.spins, bonus=reward.bonus, created_at=now
            )
        )
        self.session.commit()
        self.session.refresh(user)
        return CheckinResult(
            streak=streak,
            total=user.total_checkins,
            reward=reward,
            spins_left=user.spins_left,
        )
