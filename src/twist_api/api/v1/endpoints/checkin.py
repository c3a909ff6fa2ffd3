"""Daily check-in endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query, Request

from twist_api.api.v1.dependencies import AdmissionDep, AllowanceServiceDep
from twist_api.schemas.checkin import (
    CheckinRequest,
    CheckinResponse,
    CheckinReward,
    CheckinStatusResponse,
)
from twist_api.services.admission import read_json_body

RATE_SCOPE = "checkin"

router = APIRouter(prefix="/checkin", tags=["checkin"])


@router.get("", response_model=CheckinStatusResponse)
async def get_checkin_status(
    request: Request,
    admission: AdmissionDep,
    allowance: AllowanceServiceDep,
    fid: Annotated[int, Query(gt=0)],
) -> CheckinStatusResponse:
    """Return whether `fid` can check in now and the reward it would earn."""
    with admission.guard():
        admission.check_origin(request.headers.get("origin"))
        admission.check_rate(RATE_SCOPE)
        status = allowance.checkin_status(fid)

    return CheckinStatusResponse(
        can_check_in=status.can_check_in,
        last_check_in=status.last_check_in,
        check_in_streak=status.streak,
        total_check_ins=status.total,
        next_check_in_time=status.next_check_in_time,
        next_reward=CheckinReward(spins=status.next_reward.spins, bonus=status.next_reward.bonus),
    )


@router.post("", response_model=CheckinResponse)
async def check_in(
    request: Request,
    admission: AdmissionDep,
    allowance: AllowanceServiceDep,
) -> CheckinResponse:
    """Record today's check-in and credit the streak reward in spins."""
    with admission.guard():
        admission.check_origin(request.headers.get("origin"))
        admission.check_rate(RATE_SCOPE)
        payload = await admission.decode(await read_json_body(request), CheckinRequest)
        admission.check_fresh_proof("checkin-proof", payload.random_key, payload.fused_key)
        result = allowance.check_in(payload.fid)

    return CheckinResponse(
        check_in_streak=result.streak,
        total_check_ins=result.total,
        reward=CheckinReward(spins=result.reward.spins, bonus=result.reward.bonus),
        new_spins_left=result.spins_left,
    )
