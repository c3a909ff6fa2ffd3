"""Payout endpoints.

Every POST here runs the full admission pipeline: origin, rate limit, payload
decoding (plain JSON or `{"encryptedPayload": ...}`), handshake proof, then
the payout service's replay, amount and ownership checks. Failures return
only an opaque `{"error": ...}` body.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from twist_api.api.v1.dependencies import AdmissionDep, PayoutServiceDep
from twist_api.schemas.payout import (
    EnvelopeClaimRequest,
    EnvelopeClaimResponse,
    EnvelopeStatusResponse,
    SignatureRequest,
    SignatureResponse,
    WinRequest,
    WinResponse,
)
from twist_api.services.admission import read_json_body

RATE_SCOPE = "payouts"

router = APIRouter(prefix="/payouts", tags=["payouts"])


@router.post("/win", response_model=WinResponse)
async def claim_win(
    request: Request,
    admission: AdmissionDep,
    payouts: PayoutServiceDep,
) -> WinResponse:
    """Pay a native-token win through the winner vault."""
    with admission.guard():
        admission.check_origin(request.headers.get("origin"))
        admission.check_rate(RATE_SCOPE)
        payload = await admission.decode(await read_json_body(request), WinRequest)
        admission.check_proof(payload.random_key, payload.fused_key)
        tx_hash = await payouts.win(payload)

    return WinResponse(tx_hash=tx_hash)


@router.post("/signature", response_model=SignatureResponse)
async def claim_signature(
    request: Request,
    admission: AdmissionDep,
    payouts: PayoutServiceDep,
) -> SignatureResponse:
    """Return a server signature authorising an ERC-20 reward claim."""
    with admission.guard():
        admission.check_origin(request.headers.get("origin"))
        admission.check_rate(RATE_SCOPE)
        payload = await admission.decode(await read_json_body(request), SignatureRequest)
        admission.check_proof(payload.random_key, payload.fused_key)
        signature = await payouts.signature(payload)

    return SignatureResponse(signature=signature)


@router.post("/envelope", response_model=EnvelopeClaimResponse)
async def claim_envelope(
    request: Request,
    admission: AdmissionDep,
    payouts: PayoutServiceDep,
) -> EnvelopeClaimResponse:
    """Send the one-time red envelope."""
    with admission.guard():
        admission.check_origin(request.headers.get("origin"))
        admission.check_rate(RATE_SCOPE)
        payload = await admission.decode(await read_json_body(request), EnvelopeClaimRequest)
        admission.check_proof(payload.random_key, payload.fused_key)
        tx_hash = await payouts.envelope(payload)

    return EnvelopeClaimResponse(tx_hash=tx_hash)


@router.get("/envelope/{fid}", response_model=EnvelopeStatusResponse)
async def get_envelope_status(fid: int, payouts: PayoutServiceDep) -> EnvelopeStatusResponse:
    return EnvelopeStatusResponse(claimed=payouts.envelope_claimed(fid))
