# src/twist_api/models/__init__.py
"""SQLAlchemy models for the Twist application."""

from .activity import CheckinHistory, SpinPurchase, ViolationLog, Winning
from .spin_token import PayoutClaim, ProofClaim, SpinToken
from .user import TwistUser

__all__ = [
    "CheckinHistory", "SpinPurchase", "ViolationLog", "Winning",
    "PayoutClaim", "ProofClaim", "SpinToken",
    "TwistUser",
]
