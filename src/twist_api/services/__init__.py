# src/twist_api/services/__init__.py
"""Business logic services for the Twist application."""

from .abuse import AbuseGuard
from .allowance import AllowanceService
from .chain import ChainService
from .identity import IdentityProviderClient
from .ownership import OwnershipVerifier
from .payouts import PayoutService
from .replay import SpinTokenService

__all__ = [
    "AbuseGuard",
    "AllowanceService",
    "ChainService",
    "IdentityProviderClient",
    "OwnershipVerifier",
    "PayoutService",
    "SpinTokenService",
]
