"""System and transparency endpoints for the Twist API."""

from __future__ import annotations

from fastapi import APIRouter

from twist_api.api.v1.dependencies import RewardTableDep
from twist_api.core.settings import settings

router = APIRouter(prefix="/system", tags=["system", "transparency"])


@router.get("/config")
async def get_public_config(reward_table: RewardTableDep) -> dict[str, object]:
    """Return a sanitized snapshot of public runtime configuration.

    Excludes secrets, keys and connection strings; suitable for transparency UIs.

    Args:
        reward_table: Active reward table

    Returns:
        Dictionary containing app metadata, allowance rules, abuse limits and
        reward categories
    """
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "debug": settings.debug,
        },
        "allowance": {
            "spins_per_day": settings.spins_per_day,
            "spin_token_ttl_seconds": settings.spin_token_ttl_seconds,
            "follow_target_fid": settings.follow_target_fid,
            "spin_price_wei": str(settings.spin_price_wei),
        },
        "abuse": {
            "rate_limit_requests": settings.rate_limit_requests,
            "rate_limit_window_seconds": settings.rate_limit_window_seconds,
            "violation_threshold": settings.violation_threshold,
            "violation_window_seconds": settings.violation_window_seconds,
            "block_duration_seconds": settings.block_duration_seconds,
            "shared_store": bool(settings.redis_url),
        },
        "rewards": {
            name: {
                "decimals": category.decimals,
                "precision": category.precision,
                "allowed": [str(value) for value in category.allowed],
                "min": str(category.minimum) if category.minimum is not None else None,
                "max": str(category.maximum) if category.maximum is not None else None,
                "token_address": category.token_address,
            }
            for name, category in reward_table.items()
        },
        "push": {
            "enabled": bool(settings.push_webhook_url),
            "channel": settings.push_channel,
        },
    }
