# src/twist_api/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .checkin import router as checkin_router
from .payouts import router as payouts_router
from .social import router as social_router
from .spins import router as spins_router
from .system import router as system_router

__all__ = [
    "spins_router",
    "checkin_router",
    "payouts_router",
    "social_router",
    "system_router",
]
