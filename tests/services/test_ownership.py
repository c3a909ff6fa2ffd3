"""Tests for wallet-ownership verification and its cache."""

import pytest
from sqlalchemy.orm import Session

from tests.conftest import FID, FOREIGN_WALLET, WALLET, FakeIdentityProvider
from twist_api.models import TwistUser
from twist_api.services.ownership import OwnershipVerifier

DAY_MS = 86_400_000


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
def verifier(db_session: Session, provider: FakeIdentityProvider, clock: Clock) -> OwnershipVerifier:
    return OwnershipVerifier(db_session, provider, cache_ttl_seconds=86_400, clock=clock)


@pytest.mark.asyncio
async def test_linked_wallet_accepted_case_insensitively(verifier: OwnershipVerifier) -> None:
    assert await verifier.verify(FID, WALLET.upper().replace("0X", "0x"))


@pytest.mark.asyncio
async def test_unlinked_wallet_rejected(verifier: OwnershipVerifier) -> None:
    assert not await verifier.verify(FID, FOREIGN_WALLET)


@pytest.mark.asyncio
async def test_missing_inputs_rejected(verifier: OwnershipVerifier,
                                       provider: FakeIdentityProvider) -> None:
    assert not await verifier.verify(None, WALLET)
    assert not await verifier.verify(FID, "")
    assert provider.wallet_calls == 0


@pytest.mark.asyncio
async def test_fresh_cache_answers_without_provider(
    verifier: OwnershipVerifier, provider: FakeIdentityProvider, db_session: Session
) -> None:
    assert await verifier.verify(FID, WALLET)
    assert provider.wallet_calls == 1
    assert db_session.get(TwistUser, FID).cached_wallets == {WALLET}

    assert await verifier.verify(FID, WALLET)
    # A fresh cache is authoritative for misses too.
    assert not await verifier.verify(FID, FOREIGN_WALLET)
    assert provider.wallet_calls == 1


@pytest.mark.asyncio
async def test_stale_cache_refreshed(
    verifier: OwnershipVerifier, provider: FakeIdentityProvider, clock: Clock
) -> None:
    assert await verifier.verify(FID, WALLET)
    provider.wallets[FID] = {FOREIGN_WALLET}
    clock.now += DAY_MS

    assert await verifier.verify(FID, FOREIGN_WALLET)
    assert provider.wallet_calls == 2
    assert not await verifier.verify(FID, WALLET)


@pytest.mark.asyncio
async def test_stale_cache_used_when_provider_fails(
    verifier: OwnershipVerifier, provider: FakeIdentityProvider, clock: Clock
) -> None:
    assert await verifier.verify(FID, WALLET)
    clock.now += 2 * DAY_MS
    provider.fail = True

    assert await verifier.verify(FID, WALLET)
    assert not await verifier.verify(FID, FOREIGN_WALLET)


@pytest.mark.asyncio
async def test_provider_failure_without_cache_denies(
    verifier: OwnershipVerifier, provider: FakeIdentityProvider
) -> None:
    provider.fail = True
    assert not await verifier.verify(FID, WALLET)


@pytest.mark.asyncio
async def test_unknown_identity_denied(verifier: OwnershipVerifier) -> None:
    assert not await verifier.verify(31337, WALLET)
