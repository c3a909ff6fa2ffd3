"""Shared API dependencies for admission and service wiring."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from twist_api.core.rewards import RewardCategory, load_reward_table
from twist_api.core.settings import settings
from twist_api.db.session import get_db
from twist_api.services.abuse import AbuseGuard, get_abuse_guard
from twist_api.services.admission import AdmissionContext, client_identity
from twist_api.services.allowance import AllowanceService
from twist_api.services.broadcast import PushBroadcaster, get_broadcaster
from twist_api.services.chain import ChainService, get_chain_service
from twist_api.services.identity import IdentityProviderClient, get_identity_client
from twist_api.services.ownership import OwnershipVerifier
from twist_api.services.payouts import PayoutService
from twist_api.services.replay import get_spin_token_service

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


@lru_cache(maxsize=1)
def get_reward_table() -> dict[str, RewardCategory]:
    """Load the active reward table once per process."""
    return load_reward_table(settings.reward_table_file, settings.reward_token_addresses)


def get_abuse_guard_dep(db: SessionDep) -> AbuseGuard:
    return get_abuse_guard(db)


def get_identity_client_dep() -> IdentityProviderClient:
    return get_identity_client()


def get_chain_service_dep() -> ChainService:
    return get_chain_service()


def get_broadcaster_dep() -> PushBroadcaster:
    return get_broadcaster()


def get_reward_table_dep() -> dict[str, RewardCategory]:
    return get_reward_table()


AbuseGuardDep = Annotated[AbuseGuard, Depends(get_abuse_guard_dep)]
IdentityClientDep = Annotated[IdentityProviderClient, Depends(get_identity_client_dep)]
ChainServiceDep = Annotated[ChainService, Depends(get_chain_service_dep)]
BroadcasterDep = Annotated[PushBroadcaster, Depends(get_broadcaster_dep)]
RewardTableDep = Annotated[dict[str, RewardCategory], Depends(get_reward_table_dep)]


def get_admission(request: Request, guard: AbuseGuardDep) -> AdmissionContext:
    """Bind the admission pipeline to the calling client."""
    return AdmissionContext(client_identity(request), guard)


def get_allowance_service(
    db: SessionDep,
    identity: IdentityClientDep,
    chain: ChainServiceDep,
) -> AllowanceService:
    return AllowanceService(db, identity=identity, chain=chain)


def get_payout_service(
    db: SessionDep,
    identity: IdentityClientDep,
    chain: ChainServiceDep,
    broadcaster: BroadcasterDep,
    reward_table: RewardTableDep,
) -> PayoutService:
    return PayoutService(
        db,
        tokens=get_spin_token_service(db),
        ownership=OwnershipVerifier(db, identity),
        chain=chain,
        broadcaster=broadcaster,
        reward_table=reward_table,
    )


AdmissionDep = Annotated[AdmissionContext, Depends(get_admission)]
AllowanceServiceDep = Annotated[AllowanceService, Depends(get_allowance_service)]
PayoutServiceDep = Annotated[PayoutService, Depends(get_payout_service)]
