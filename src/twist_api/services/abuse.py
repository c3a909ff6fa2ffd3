"""Rate limiting, violation tracking and block escalation.

State lives in Redis when `REDIS_URL` is configured so that limits hold across
worker processes; otherwise, or after a Redis failure, it falls back to
process-local maps. The in-process maps are never swept; entries are evaluated
and evicted lazily when next touched.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from threading import Lock
from typing import Any, Final

import redis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from twist_api.core.errors import BlockedError, RateLimitedError
from twist_api.core.settings import settings
from twist_api.db.time import MS_PER_SECOND, Clock, now_ms
from twist_api.models import ViolationLog

logger = logging.getLogger(__name__)

DEFAULT_SCOPE: Final[str] = "default"


class AbuseGuard:
    """Per-identity request windows, violation counters and blocks."""

    def __init__(
        self,
        redis_client: Any | None = None,
        *,
        session: Session | None = None,
        clock: Clock = now_ms,
        rate_limit: int | None = None,
        rate_window_seconds: int | None = None,
        violation_threshold: int | None = None,
        violation_window_seconds: int | None = None,
        block_seconds: int | None = None,
    ) -> None:
        self._redis = redis_client
        self._session = session
        self._clock = clock
        self.rate_limit = rate_limit or settings.rate_limit_requests
        self.rate_window_seconds = rate_window_seconds or settings.rate_limit_window_seconds
        self.violation_threshold = violation_threshold or settings.violation_threshold
        self.violation_window_seconds = (
            violation_window_seconds or settings.violation_window_seconds
        )
        self.block_seconds = block_seconds or settings.block_duration_seconds

    # --- Blocks ---------------------------------------------------------------------
    def is_blocked(self, identity: str) -> bool:
        """Return True while a block for `identity` is in force."""
        key = f"block:{identity}"
        if self._redis is not None:
            try:
                return bool(self._redis.exists(key))
            except redis.RedisError:
                self._drop_redis()
        return self._memory_active(key)

    def block(self, identity: str) -> None:
        key = f"block:{identity}"
        if self._redis is not None:
            try:
                self._redis.set(key, self._clock(), ex=self.block_seconds)
                return
            except redis.RedisError:
                self._drop_redis()
        with _CACHE_LOCK:
            _EXPIRING[key] = self._clock() + self.block_seconds * MS_PER_SECOND

    # --- Rate windows ---------------------------------------------------------------
    def check_rate(self, identity: str, scope: str = DEFAULT_SCOPE) -> bool:
        """Count one request against the identity's window for `scope`.

        Returns False for blocked identities and once the window is full.
        """
        if self.is_blocked(identity):
            return False
        count = self._window_increment(
            f"rate:{scope}:{identity}",
            self.rate_window_seconds,
            limit=self.rate_limit,
        )
        return count <= self.rate_limit

    def enforce_rate(self, identity: str, scope: str = DEFAULT_SCOPE) -> None:
        """Raise unless `identity` may make another request in `scope`."""
        if self.is_blocked(identity):
            raise BlockedError("identity is blocked")
        if not self.check_rate(identity, scope):
            raise RateLimitedError(f"rate window exhausted for scope {scope}")

    # --- Violations -----------------------------------------------------------------
    def track_violation(self, identity: str, *, stage: str = "", reason: str = "") -> int:
        """Record a violation; block the identity once the threshold is reached.

        Returns:
            The violation count in the current window.
        """
        count = self._window_increment(f"violation:{identity}", self.violation_window_seconds)
        blocked = count >= self.violation_threshold
        if blocked:
            self.block(identity)
            logger.warning(
                "Blocking %s for %ss after %d violations", identity, self.block_seconds, count
            )
        self._audit(identity, stage, reason, blocked)
        return count

    # --- Generic helpers ------------------------------------------------------------
    def remember_once(self, namespace: str, key: str, ttl_seconds: int) -> bool:
        """Mark `key` as seen; return False if it was already marked."""
        full_key = f"once:{namespace}:{key}"
        if self._redis is not None:
            try:
                return bool(self._redis.set(full_key, "1", ex=ttl_seconds, nx=True))
            except redis.RedisError:
                self._drop_redis()
        now = self._clock()
        with _CACHE_LOCK:
            expiry = _EXPIRING.get(full_key)
            if expiry is not None and expiry > now:
                return False
            _EXPIRING[full_key] = now + ttl_seconds * MS_PER_SECOND
            return True

    def hit(self, namespace: str, key: str, limit: int, ttl_seconds: int) -> bool:
        """Count a use of `key`; return False once more than `limit` uses fall in the window."""
        count = self._window_increment(f"hit:{namespace}:{key}", ttl_seconds, limit=limit)
        return count <= limit

    # --- Internals ------------------------------------------------------------------
    def _window_increment(self, key: str, window_seconds: int, *, limit: int | None = None) -> int:
        """Increment a reset-on-expiry window counter and return the new count.

        When `limit` is given the in-process counter stops growing at
        `limit + 1`, so a denied caller cannot extend its own window.
        """
        if self._redis is not None:
            try:
                pipe = self._redis.pipeline()
                pipe.set(key, 0, ex=window_seconds, nx=True)
                pipe.incr(key)
                _, count = pipe.execute()
                return int(count)
            except redis.RedisError:
                self._drop_redis()

        now = self._clock()
        window_ms = window_seconds * MS_PER_SECOND
        with _CACHE_LOCK:
            entry = _WINDOWS.get(key)
            if entry is None or now - entry[1] > window_ms:
                entry = [0, now]
                _WINDOWS[key] = entry
            if limit is None or entry[0] <= limit:
                entry[0] += 1
            return entry[0]

    def _memory_active(self, key: str) -> bool:
        now = self._clock()
        with _CACHE_LOCK:
            expiry = _EXPIRING.get(key)
            if expiry is None:
                return False
            if expiry <= now:
                _EXPIRING.pop(key, None)
                return False
            return True

    def _drop_redis(self) -> None:
        logger.warning("Redis unavailable; falling back to in-process abuse state", exc_info=True)
        self._redis = None

    def _audit(self, identity: str, stage: str, reason: str, blocked: bool) -> None:
        if self._session is None:
            return
        try:
            self._session.add(
                ViolationLog(
                    identity=identity,
                    stage=stage or "unknown",
                    reason=reason,
                    blocked=blocked,
                    created_at=self._clock(),
                )
            )
            self._session.commit()
        except SQLAlchemyError:
            self._session.rollback()
            logger.warning("Failed to write violation audit row for %s", identity, exc_info=True)


_WINDOWS: dict[str, list[int]] = {}
_EXPIRING: dict[str, int] = {}
_CACHE_LOCK = Lock()


def clear_memory_state() -> None:
    """Forget all in-process windows, markers and blocks."""
    with _CACHE_LOCK:
        _WINDOWS.clear()
        _EXPIRING.clear()


@lru_cache(maxsize=1)
def _redis_client(url: str) -> Any:
    return redis.Redis.from_url(url)


def get_abuse_guard(session: Session | None = None) -> AbuseGuard:
    """Return an abuse guard backed by Redis when configured."""
    client = _redis_client(settings.redis_url) if settings.redis_url else None
    return AbuseGuard(client, session=session)
