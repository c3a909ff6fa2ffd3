"""Client for the external social-identity provider (Neynar API).

Used for wallet-ownership lookups, follow checks and the best-friends list.
Every transport failure or non-2xx response surfaces as
`IdentityProviderError`; nothing is retried here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from twist_api.core.settings import settings

logger = logging.getLogger(__name__)

USER_BULK_PATH = "/v2/farcaster/user/bulk"
BEST_FRIENDS_PATH = "/v2/farcaster/user/best_friends/"


class IdentityProviderError(RuntimeError):
    """Raised when the identity provider cannot answer a query."""


@dataclass(frozen=True)
class IdentityProviderConfig:
    """Immutable configuration for identity provider calls."""

    base_url: str
    api_key: str | None
    timeout_seconds: float


def load_identity_config() -> IdentityProviderConfig:
    """Build configuration object from global settings."""
    return IdentityProviderConfig(
        base_url=settings.identity_api_base_url,
        api_key=settings.identity_api_key,
        timeout_seconds=float(settings.identity_http_timeout_seconds),
    )


def extract_wallets(user: dict[str, Any]) -> set[str]:
    """Collect every address tied to a provider user record, lowercased."""
    wallets: set[str] = set()
    custody = user.get("custody_address")
    if custody:
        wallets.add(str(custody).lower())

    verified = user.get("verified_addresses") or {}
    for chain_key in ("eth_addresses", "sol_addresses"):
        for address in verified.get(chain_key) or []:
            wallets.add(str(address).lower())

    for address in user.get("verifications") or []:
        wallets.add(str(address).lower())
    return wallets


class IdentityProviderClient:
    """HTTP wrapper around the provider's user endpoints."""

    def __init__(
        self,
        config: IdentityProviderConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_identity_config()
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"accept": "application/json"}
        if self.config.api_key:
            headers["x-api-key"] = self.config.api_key
        return headers

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        if not self.config.api_key:
            raise IdentityProviderError("Identity provider API key not configured")

        try:
            async with httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.timeout_seconds),
                transport=self._transport,
            ) as client:
                response = await client.get(path, params=params, headers=self._headers())
        except httpx.HTTPError as exc:
            raise IdentityProviderError(f"Identity provider request failed: {exc}") from exc

        if not response.is_success:
            raise IdentityProviderError(
                f"Identity provider responded with {response.status_code} for {path}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise IdentityProviderError("Identity provider returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise IdentityProviderError("Identity provider returned an unexpected payload")
        return payload

    async def fetch_wallets(self, fid: int) -> set[str]:
        """Return every wallet address the provider associates with `fid`.

        Raises:
            IdentityProviderError: If the call fails or the user is unknown.
        """
        payload = await self._get(USER_BULK_PATH, {"fids": fid})
        users = payload.get("users") or []
        if not users:
            raise IdentityProviderError(f"No provider user for fid {fid}")
        wallets = extract_wallets(users[0])
        logger.debug("Provider returned %d wallets for fid %s", len(wallets), fid)
        return wallets

    async def is_following(self, fid: int, target_fid: int) -> bool:
        """Return True if `fid` follows `target_fid`."""
        payload = await self._get(USER_BULK_PATH, {"fids": target_fid, "viewer_fid": fid})
        users = payload.get("users") or []
        if not users:
            return False
        viewer_context = users[0].get("viewer_context") or {}
        return bool(viewer_context.get("following", False))

    async def best_friends(self, fid: int, limit: int = 5) -> dict[str, Any]:
        return await self._get(BEST_FRIENDS_PATH, {"limit": limit, "fid": fid})


class _IdentityClientSingleton:
    """Singleton wrapper for IdentityProviderClient."""

    _instance: IdentityProviderClient | None = None

    @classmethod
    def get_instance(cls) -> IdentityProviderClient:
        if cls._instance is None:
            cls._instance = IdentityProviderClient()
        return cls._instance


def get_identity_client() -> IdentityProviderClient:
    """Return a singleton identity provider client."""
    return _IdentityClientSingleton.get_instance()
