"""Tests for spin allowance, grants and check-ins."""

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from tests.conftest import FID, FakeChain, FakeIdentityProvider
from twist_api.core.errors import EligibilityError, UpstreamError, ValidationError
from twist_api.core.settings import settings
from twist_api.models import CheckinHistory, SpinPurchase
from twist_api.services.allowance import (
    AllowanceAction,
    AllowanceService,
    GrantRequest,
    checkin_reward,
)
from twist_api.services.replay import SpinTokenService

DAY_MS = 86_400_000
PURCHASE_TX = "0x" + "9f" * 32


class Clock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now


@pytest.fixture()
def clock() -> Clock:
    return Clock()


@pytest.fixture()
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture()
def fake_chain() -> FakeChain:
    return FakeChain()


@pytest.fixture()
def service(db_session: Session, provider: FakeIdentityProvider, fake_chain: FakeChain,
            clock: Clock) -> AllowanceService:
    return AllowanceService(
        db_session,
        tokens=SpinTokenService(db_session, clock=clock),
        identity=provider,  # type: ignore[arg-type]
        chain=fake_chain,  # type: ignore[arg-type]
        clock=clock,
    )


def test_new_identity_gets_daily_allowance(service: AllowanceService) -> None:
    status = service.status(FID)
    assert status.spins_left == settings.spins_per_day
    assert status.last_spin_reset is None
    assert not status.has_followed


def test_consume_until_empty(service: AllowanceService, clock: Clock) -> None:
    remaining, token = service.consume(FID)
    assert remaining == settings.spins_per_day - 1
    assert token.fid == FID
    assert token.expires_at > clock.now

    for _ in range(remaining):
        service.consume(FID)
    with pytest.raises(EligibilityError) as exc_info:
        service.consume(FID)
    assert exc_info.value.public_message == "No spins left"


def test_allowance_refills_after_a_day(service: AllowanceService, clock: Clock) -> None:
    for _ in range(settings.spins_per_day):
        service.consume(FID)
    clock.now += DAY_MS + 1
    assert service.status(FID).spins_left == settings.spins_per_day


@pytest.mark.asyncio
async def test_share_grant_once_per_day(service: AllowanceService, clock: Clock) -> None:
    spins_left, granted = await service.grant(AllowanceAction.SHARE, GrantRequest(fid=FID))
    assert granted == 2
    assert spins_left == settings.spins_per_day + 2

    with pytest.raises(EligibilityError, match="24 hours"):
        await service.grant(AllowanceAction.SHARE, GrantRequest(fid=FID))

    clock.now += DAY_MS
    _, granted = await service.grant(AllowanceAction.SHARE, GrantRequest(fid=FID))
    assert granted == 2


@pytest.mark.asyncio
async def test_follow_grant_requires_follow(service: AllowanceService,
                                            provider: FakeIdentityProvider) -> None:
    with pytest.raises(EligibilityError, match="Follow not detected"):
        await service.grant(AllowanceAction.FOLLOW, GrantRequest(fid=FID))

    provider.following.add((FID, settings.follow_target_fid))
    _, granted = await service.grant(AllowanceAction.FOLLOW, GrantRequest(fid=FID))
    assert granted == 1
    assert service.status(FID).has_followed

    with pytest.raises(EligibilityError, match="already followed"):
        await service.grant(AllowanceAction.FOLLOW, GrantRequest(fid=FID))


@pytest.mark.asyncio
async def test_follow_grant_provider_failure(service: AllowanceService,
                                             provider: FakeIdentityProvider) -> None:
    provider.fail = True
    with pytest.raises(UpstreamError):
        await service.grant(AllowanceAction.FOLLOW, GrantRequest(fid=FID))


@pytest.mark.asyncio
async def test_purchase_grant_single_use(service: AllowanceService, fake_chain: FakeChain,
                                         db_session: Session) -> None:
    with pytest.raises(ValidationError):
        await service.grant(AllowanceAction.BUY, GrantRequest(fid=FID))
    with pytest.raises(EligibilityError, match="not confirmed"):
        await service.grant(AllowanceAction.BUY, GrantRequest(fid=FID, tx_hash=PURCHASE_TX))

    fake_chain.paid_purchases.add(PURCHASE_TX)
    _, granted = await service.grant(
        AllowanceAction.BUY, GrantRequest(fid=FID, tx_hash=PURCHASE_TX.upper().replace("0X", "0x"))
    )
    assert granted == 2
    assert db_session.execute(select(SpinPurchase)).scalar_one().tx_hash == PURCHASE_TX

    with pytest.raises(EligibilityError, match="already used"):
        await service.grant(AllowanceAction.BUY, GrantRequest(fid=FID, tx_hash=PURCHASE_TX))


@pytest.mark.parametrize(
    ("streak", "spins", "bonus"),
    [(1, 1, False), (6, 1, False), (7, 10, True), (8, 2, False), (14, 10, True),
     (15, 3, False), (30, 5, False), (35, 10, True)],
)
def test_checkin_reward_tiers(streak: int, spins: int, bonus: bool) -> None:
    reward = checkin_reward(streak)
    assert (reward.spins, reward.bonus) == (spins, bonus)


def test_check_in_streak(service: AllowanceService, clock: Clock, db_session: Session) -> None:
    assert service.checkin_status(FID).can_check_in

    first = service.check_in(FID)
    assert (first.streak, first.total) == (1, 1)
    assert first.spins_left == settings.spins_per_day + 1

    status = service.checkin_status(FID)
    assert not status.can_check_in
    assert status.next_check_in_time == clock.now + DAY_MS
    with pytest.raises(EligibilityError, match="Already checked in"):
        service.check_in(FID)

    clock.now += DAY_MS + 60_000
    second = service.check_in(FID)
    assert (second.streak, second.total) == (2, 2)

    # Missing a whole day resets the streak but not the total.
    clock.now += 3 * DAY_MS
    third = service.check_in(FID)
    assert (third.streak, third.total) == (1, 3)

    assert len(db_session.execute(select(CheckinHistory)).scalars().all()) == 3
