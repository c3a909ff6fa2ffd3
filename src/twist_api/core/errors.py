"""Admission error taxonomy.

Every pipeline stage raises one of these. The endpoint boundary turns them
into a small, fixed set of opaque client-facing messages; `reason` is only
ever written to server-side logs.
"""

from __future__ import annotations

from fastapi import status

BAD_REQUEST = "Bad request"
UNAUTHORIZED = "Unauthorized"
TOO_MANY_REQUESTS = "Too many requests"
SERVER_ERROR = "Server error"


class AdmissionError(Exception):
    """Base class for request-admission failures."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    public_message: str = BAD_REQUEST
    counts_as_violation: bool = False

    def __init__(self, reason: str = "", *, public_message: str | None = None) -> None:
        super().__init__(reason or self.public_message)
        self.reason = reason or self.public_message
        if public_message is not None:
            self.public_message = public_message

    @property
    def stage(self) -> str:
        return type(self).__name__


class ValidationError(AdmissionError):
    """Malformed input shape or type."""


class AuthenticationError(AdmissionError):
    """Origin, handshake proof or envelope authentication failed."""

    status_code = status.HTTP_403_FORBIDDEN
    public_message = UNAUTHORIZED
    counts_as_violation = True


class EnvelopeError(AdmissionError):
    """Encrypted payload could not be decoded."""

    counts_as_violation = True


class RateLimitedError(AdmissionError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    public_message = TOO_MANY_REQUESTS
    counts_as_violation = True


class BlockedError(AdmissionError):
    """Caller is currently blocked; not counted again."""

    status_code = status.HTTP_403_FORBIDDEN
    public_message = UNAUTHORIZED


class ReplayError(AdmissionError):
    """Spin token, proof key or nonce already used, unknown or expired."""

    status_code = status.HTTP_403_FORBIDDEN
    public_message = UNAUTHORIZED
    counts_as_violation = True


class OwnershipError(AdmissionError):
    """Claimed payout address is not controlled by the claimed identity."""

    status_code = status.HTTP_403_FORBIDDEN
    public_message = UNAUTHORIZED
    counts_as_violation = True


class EligibilityError(AdmissionError):
    """Allowance action not currently available; the message is user-facing."""

    def __init__(self, message: str) -> None:
        super().__init__(message, public_message=message)


class UpstreamError(AdmissionError):
    """External collaborator failed; never the caller's fault."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = SERVER_ERROR
