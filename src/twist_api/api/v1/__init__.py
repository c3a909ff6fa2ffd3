# src/twist_api/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    checkin_router,
    payouts_router,
    social_router,
    spins_router,
    system_router,
)

__all__ = [
    "spins_router",
    "checkin_router",
    "payouts_router",
    "social_router",
    "system_router",
]
