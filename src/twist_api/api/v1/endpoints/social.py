"""Social-graph lookups proxied to the identity provider."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Query

from twist_api.api.v1.dependencies import AdmissionDep, IdentityClientDep
from twist_api.core.errors import UpstreamError
from twist_api.core.settings import settings
from twist_api.schemas.social import FollowingResponse
from twist_api.services.identity import IdentityProviderError

logger = logging.getLogger(__name__)

RATE_SCOPE = "social"
BEST_FRIENDS_LIMIT = 5

router = APIRouter(prefix="/social", tags=["social"])


@router.get("/following", response_model=FollowingResponse)
async def get_following(
    admission: AdmissionDep,
    identity: IdentityClientDep,
    fid: Annotated[int, Query(gt=0)],
    target_fid: Annotated[int | None, Query(alias="targetFid", gt=0)] = None,
) -> FollowingResponse:
    """Return whether `fid` follows `targetFid` (the project account by default)."""
    with admission.guard():
        admission.check_rate(RATE_SCOPE)
        target = target_fid or settings.follow_target_fid
        try:
            following = await identity.is_following(fid, target)
        except IdentityProviderError as err:
            logger.error("Follow lookup failed for fid %s", fid, exc_info=True)
            raise UpstreamError(str(err)) from err

    return FollowingResponse(is_following=following)


@router.get("/best-friends")
async def get_best_friends(
    admission: AdmissionDep,
    identity: IdentityClientDep,
    fid: Annotated[int, Query(gt=0)],
) -> dict[str, Any]:
    """Proxy the provider's best-friends list for `fid`."""
    with admission.guard():
        admission.check_rate(RATE_SCOPE)
        try:
            return await identity.best_friends(fid, limit=BEST_FRIENDS_LIMIT)
        except IdentityProviderError as err:
            logger.error("Best-friends lookup failed for fid %s", fid, exc_info=True)
            raise UpstreamError(str(err)) from err
