"""Fixed-window rate limiter.

Counts requests per ``"{prefix}_{client_ip}"`` key within a fixed window.
Two backends:

- ``InMemoryRateLimitBackend``: per-process dict; fine for one instance.
- ``RedisRateLimitBackend``: shared counters in Redis so every instance
  sees the same window. Keys expire with the window.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass

import redis.asyncio as redis
import structlog

from bakery_api.infrastructure.config import settings

logger = structlog.get_logger()


@dataclass
class RateLimitResult:
    """Outcome of a rate limit check.

    Attributes:
        success: Whether the request is within the limit.
        limit: Maximum requests per window.
        remaining: Requests left in the current window.
        reset_at: Unix time (seconds) when the window resets.
    """

    success: bool
    limit: int
    remaining: int
    reset_at: float

    def retry_after(self, now: float | None = None) -> int:
        """Seconds until the window resets, at least 1."""
        current = time.time() if now is None else now
        return max(int(self.reset_at - current + 0.999), 1)

    def headers(self) -> dict[str, str]:
        """Rate limit headers for the response."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }


def get_client_ip(headers: Mapping[str, str], peer: str | None = None) -> str:
    """Resolve the client IP.

    Uses the first ``X-Forwarded-For`` entry, then ``X-Real-IP``, then
    the socket peer.

    Args:
        headers: Request headers (case-insensitive mapping).
        peer: Socket peer address, if known.

    Returns:
        Client IP or ``"unknown"``.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return peer or "unknown"


# ============================================================================
# Backends
# ============================================================================


class RateLimitBackend(ABC):
    """Storage for window counters."""

    @abstractmethod
    async def hit(self, key: str, window_seconds: int) -> tuple[int, float]:
        """Count one request.

        Args:
            key: Counter key.
            window_seconds: Window length.

        Returns:
            Tuple of (count in current window, window reset unix time).
        """

    @abstractmethod
    async def reset(self) -> None:
        """Drop all counters."""


class InMemoryRateLimitBackend(RateLimitBackend):
    """Per-process window counters."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._windows: dict[str, tuple[int, float]] = {}

    async def hit(self, key: str, window_seconds: int) -> tuple[int, float]:
        now = self._clock()
        self._evict_expired(now)

        count, reset_at = self._windows.get(key, (0, now + window_seconds))
        count += 1
        self._windows[key] = (count, reset_at)
        return count, reset_at

    async def reset(self) -> None:
        self._windows.clear()

    def _evict_expired(self, now: float) -> None:
        expired = [k for k, (_, reset_at) in self._windows.items() if reset_at <= now]
        for key in expired:
            del self._windows[key]


class RedisRateLimitBackend(RateLimitBackend):
    """Window counters shared through Redis."""

    KEY_PREFIX = "ratelimit:"

    def __init__(
        self,
        client: redis.Redis | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client or redis.from_url(settings.redis_url, decode_responses=True)
        self._clock = clock

    async def hit(self, key: str, window_seconds: int) -> tuple[int, float]:
        redis_key = f"{self.KEY_PREFIX}{key}"
        async with self._client.pipeline(transaction=True) as pipe:
            # Create the key with the window expiry only if it does not exist
            pipe.set(redis_key, 0, ex=window_seconds, nx=True)
            pipe.incr(redis_key)
            pipe.ttl(redis_key)
            _, count, ttl = await pipe.execute()

        ttl = ttl if ttl and ttl > 0 else window_seconds
        return int(count), self._clock() + ttl

    async def reset(self) -> None:
        async for key in self._client.scan_iter(match=f"{self.KEY_PREFIX}*"):
            await self._client.delete(key)


# ============================================================================
# Rate Limiter
# ============================================================================


class RateLimiter:
    """Fixed-window limiter over a pluggable backend."""

    def __init__(
        self,
        backend: RateLimitBackend | None = None,
        window_seconds: int | None = None,
    ) -> None:
        self.backend = backend or InMemoryRateLimitBackend()
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds

    async def check(self, key: str, limit: int) -> RateLimitResult:
        """Count a request and report whether it is allowed.

        Args:
            key: Counter key (``"{prefix}_{ip}"``).
            limit: Maximum requests per window.

        Returns:
            RateLimitResult for the request.
        """
        count, reset_at = await self.backend.hit(key, self.window_seconds)
        allowed = count <= limit
        if not allowed:
            logger.warning("Rate limit exceeded", key=key, limit=limit, count=count)
        return RateLimitResult(
            success=allowed,
            limit=limit,
            remaining=max(limit - count, 0),
            reset_at=reset_at,
        )


# Global limiter instance
_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Get the rate limiter singleton for the configured backend."""
    global _rate_limiter
    if _rate_limiter is None:
        if settings.rate_limit_backend == "redis":
            backend: RateLimitBackend = RedisRateLimitBackend()
        else:
            backend = InMemoryRateLimitBackend()
        _rate_limiter = RateLimiter(backend=backend)
    return _rate_limiter


def reset_rate_limiter() -> None:
    """Reset the rate limiter to a fresh in-memory instance (for testing)."""
    global _rate_limiter
    _rate_limiter = RateLimiter(backend=InMemoryRateLimitBackend())
