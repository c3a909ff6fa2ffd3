"""Request-admission pipeline stages.

Value-bearing endpoints run a request through, in order: origin gate, rate
limiter, payload decoding, handshake proof, and then the replay, amount and
ownership checks owned by the payout service. Every stage raises an
`AdmissionError`; `AdmissionContext.guard()` logs the rejection and feeds
counted failures into the violation tracker so repeat offenders escalate to a
block.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

import pydantic
from fastapi import Request

from twist_api.core import envelope as codec
from twist_api.core.errors import (
    AdmissionError,
    AuthenticationError,
    EnvelopeError,
    RateLimitedError,
    ReplayError,
    ValidationError,
)
from twist_api.core.handshake import parse_timestamp, verify_proof
from twist_api.core.settings import settings
from twist_api.db.time import Clock, now_ms
from twist_api.schemas.envelope import EnvelopePayload
from twist_api.services.abuse import AbuseGuard

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)

ENVELOPE_KEY = "encryptedPayload"
UNKNOWN_IDENTITY = "unknown"


def client_identity(request: Request) -> str:
    """Return the caller's network identity used for rate limiting."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client is not None and request.client.host:
        return request.client.host
    return UNKNOWN_IDENTITY


async def read_json_body(request: Request) -> Any:
    """Parse the raw request body as JSON."""
    raw = await request.body()
    if not raw:
        raise ValidationError("empty request body")
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as err:
        raise ValidationError(f"body is not JSON: {err}") from err


class OriginGate:
    """Exact-match check of the declared Origin header."""

    def __init__(self, canonical_origin: str | None = None) -> None:
        self.canonical_origin = canonical_origin or settings.canonical_origin

    def allows(self, origin: str | None) -> bool:
        return origin is not None and origin == self.canonical_origin

    def enforce(self, origin: str | None) -> None:
        if not self.allows(origin):
            raise AuthenticationError(f"origin {origin!r} not allowed")


class ProofService:
    """Validates randomKey/fusedKey handshake proofs."""

    def __init__(
        self,
        *,
        public_salt: str | None = None,
        server_secret: str | None = None,
        freshness_ms: int | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.public_salt = public_salt if public_salt is not None else settings.public_key_salt
        self.server_secret = (
            server_secret if server_secret is not None else settings.server_secret_key
        )
        self.freshness_ms = freshness_ms or settings.proof_freshness_ms
        self._clock = clock

    def enforce(self, random_key: str | None, fused_key: str | None) -> None:
        accepted = verify_proof(
            random_key,
            fused_key,
            public_salt=self.public_salt,
            server_secret=self.server_secret,
            current_ms=self._clock(),
            freshness_ms=self.freshness_ms,
        )
        if not accepted:
            raise AuthenticationError("handshake proof rejected")

    def lifetime_seconds(self, random_key: str | None) -> int:
        """Seconds for which an accepted proof would keep verifying."""
        timestamp = parse_timestamp(random_key or "")
        remaining_ms = self.freshness_ms
        if timestamp is not None:
            remaining_ms = max(remaining_ms, timestamp + self.freshness_ms - self._clock())
        return max(1, -(-remaining_ms // 1000))


class PayloadDispatcher:
    """Normalizes a plain or encrypted body into one validated model."""

    def __init__(
        self,
        guard: AbuseGuard,
        *,
        base_key: str | None = None,
        salt_secret: str | None = None,
        iterations: int | None = None,
        freshness_ms: int | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.guard = guard
        self.base_key = base_key if base_key is not None else settings.payload_encryption_key
        self.salt_secret = (
            salt_secret if salt_secret is not None else settings.payload_salt_secret
        )
        self.iterations = iterations or settings.payload_kdf_iterations
        self.freshness_ms = freshness_ms or settings.payload_freshness_ms
        self._clock = clock

    @staticmethod
    def is_envelope(body: Any) -> bool:
        return isinstance(body, dict) and set(body) == {ENVELOPE_KEY}

    async def unwrap(self, body: Any) -> dict[str, Any]:
        """Return the business payload carried by `body`."""
        if self.is_envelope(body):
            return await self._decode(body)
        if isinstance(body, dict):
            return body
        raise ValidationError("body must be a JSON object")

    async def decode(self, body: Any, model: type[ModelT]) -> ModelT:
        """Unwrap `body` and validate it into `model`."""
        data = await self.unwrap(body)
        try:
            return model.model_validate(data)
        except pydantic.ValidationError as err:
            raise ValidationError(
                f"{model.__name__} rejected: {err.error_count()} error(s)"
            ) from err

    async def _decode(self, body: dict[str, Any]) -> dict[str, Any]:
        try:
            wrapper = EnvelopePayload.model_validate(body)
        except pydantic.ValidationError as err:
            raise EnvelopeError("malformed envelope") from err

        try:
            decoded = await asyncio.to_thread(
                codec.decode_payload,
                wrapper.encrypted_payload,
                base_key=self.base_key,
                salt_secret=self.salt_secret,
                iterations=self.iterations,
                current_ms=self._clock(),
                freshness_ms=self.freshness_ms,
            )
        except codec.EnvelopeDecodeError as err:
            raise EnvelopeError(str(err)) from err

        if not self.guard.remember_once(
            "envelope-nonce", decoded.nonce, settings.envelope_nonce_ttl_seconds
        ):
            raise ReplayError("envelope nonce reused")

        if decoded.fingerprint and not self.guard.hit(
            "fingerprint",
            decoded.fingerprint,
            settings.fingerprint_max_requests,
            settings.fingerprint_window_seconds,
        ):
            raise RateLimitedError("browser fingerprint over limit")

        return decoded.data


class AdmissionContext:
    """Per-request pipeline bound to one client identity."""

    def __init__(
        self,
        identity: str,
        guard: AbuseGuard,
        *,
        origin_gate: OriginGate | None = None,
        proofs: ProofService | None = None,
        dispatcher: PayloadDispatcher | None = None,
    ) -> None:
        self.identity = identity
        self.abuse = guard
        self.origin_gate = origin_gate or OriginGate()
        self.proofs = proofs or ProofService()
        self.dispatcher = dispatcher or PayloadDispatcher(guard)

    @contextmanager
    def guard(self) -> Iterator[AdmissionContext]:
        """Log every rejection and count the ones that are the caller's fault."""
        try:
            yield self
        except AdmissionError as err:
            logger.warning(
                "Rejected request from %s at %s: %s", self.identity, err.stage, err.reason
            )
            if err.counts_as_violation:
                self.abuse.track_violation(self.identity, stage=err.stage, reason=err.reason)
            raise

    def check_origin(self, origin: str | None) -> None:
        self.origin_gate.enforce(origin)

    def check_rate(self, scope: str) -> None:
        self.abuse.enforce_rate(self.identity, scope)

    def check_proof(self, random_key: str | None, fused_key: str | None) -> None:
        self.proofs.enforce(random_key, fused_key)

    def check_fresh_proof(self, namespace: str, random_key: str | None,
                          fused_key: str | None) -> None:
        """Validate a proof and reject a second use of its randomKey."""
        self.proofs.enforce(random_key, fused_key)
        lifetime = self.proofs.lifetime_seconds(random_key)
        if not self.abuse.remember_once(namespace, str(random_key), lifetime):
            raise ReplayError("handshake proof reused")

    async def decode(self, body: Any, model: type[ModelT]) -> ModelT:
        return await self.dispatcher.decode(body, model)
