"""Spin allowance endpoint.

Unlike the payout endpoints this route does not enforce the Origin header;
the handshake proof is still required for every mode that changes state.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from twist_api.api.v1.dependencies import AdmissionDep, AllowanceServiceDep
from twist_api.schemas.spin import SpinRequest, SpinResponse
from twist_api.services.admission import read_json_body
from twist_api.services.allowance import AllowanceAction, GrantRequest

RATE_SCOPE = "spins"

router = APIRouter(prefix="/spins", tags=["spins"])


@router.post("", response_model=SpinResponse, response_model_exclude_none=True)
async def spins(
    request: Request,
    admission: AdmissionDep,
    allowance: AllowanceServiceDep,
) -> SpinResponse:
    """Report, spend or grant spins for an identity.

    Modes:
        check: Return the current allowance.
        spin: Spend one spin and return a single-use spin token.
        share, follow, miniapp_open, buy: Grant extra spins.
    """
    with admission.guard():
        admission.check_rate(RATE_SCOPE)
        payload = await admission.decode(await read_json_body(request), SpinRequest)

        if payload.mode == "check":
            status = allowance.status(payload.fid)
            return SpinResponse(
                spins_left=status.spins_left,
                last_spin_reset=status.last_spin_reset,
                last_share_spin=status.last_share_spin,
                follow=status.has_followed,
            )

        admission.check_fresh_proof("spins-proof", payload.random_key, payload.fused_key)

        if payload.mode == "spin":
            remaining, token = allowance.consume(payload.fid)
            return SpinResponse(
                spins_left=remaining,
                spin_token=token.token,
                expires_at=token.expires_at,
            )

        remaining, granted = await allowance.grant(
            AllowanceAction(payload.mode),
            GrantRequest(fid=payload.fid, tx_hash=payload.tx_hash),
        )
        return SpinResponse(spins_left=remaining, granted=granted)
