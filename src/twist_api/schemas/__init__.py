# src/twist_api/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

Field names are snake_case in Python and camelCase on the wire.
"""

from .checkin import CheckinRequest, CheckinResponse, CheckinStatusResponse
from .envelope import EnvelopePayload
from .payout import (
    EnvelopeClaimRequest,
    EnvelopeClaimResponse,
    EnvelopeStatusResponse,
    SignatureRequest,
    SignatureResponse,
    WinRequest,
    WinResponse,
)
from .social import FollowingResponse
from .spin import SpinRequest, SpinResponse

__all__ = [
    "CheckinRequest", "CheckinResponse", "CheckinStatusResponse",
    "EnvelopePayload",
    "EnvelopeClaimRequest", "EnvelopeClaimResponse", "EnvelopeStatusResponse",
    "SignatureRequest", "SignatureResponse", "WinRequest", "WinResponse",
    "FollowingResponse",
    "SpinRequest", "SpinResponse",
]
