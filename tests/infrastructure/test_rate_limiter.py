"""Tests for the fixed-window rate limiter."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from bakery_api.infrastructure.rate_limiter import (
    InMemoryRateLimitBackend,
    RateLimiter,
    RateLimitResult,
    RedisRateLimitBackend,
    get_client_ip,
)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock) -> RateLimiter:
    return RateLimiter(backend=InMemoryRateLimitBackend(clock=clock), window_seconds=60)


class TestInMemoryLimiter:
    """Tests for the in-memory window counters."""

    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self, limiter):
        results = [await limiter.check("checkout_1.2.3.4", limit=3) for _ in range(4)]

        assert [r.success for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert results[0].reset_at == 1060.0

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, limiter):
        await limiter.check("cancel_1.1.1.1", limit=1)

        result = await limiter.check("cancel_2.2.2.2", limit=1)

        assert result.success

    @pytest.mark.asyncio
    async def test_window_expires(self, limiter, clock):
        await limiter.check("discount_1.2.3.4", limit=1)
        assert not (await limiter.check("discount_1.2.3.4", limit=1)).success

        clock.now += 60

        result = await limiter.check("discount_1.2.3.4", limit=1)
        assert result.success
        assert result.reset_at == 1120.0

    @pytest.mark.asyncio
    async def test_reset(self, limiter):
        await limiter.check("checkout_1.2.3.4", limit=1)

        await limiter.backend.reset()

        assert (await limiter.check("checkout_1.2.3.4", limit=1)).success


class TestRedisBackend:
    """Tests for the Redis counters with a mocked client."""

    @pytest.fixture
    def pipe(self) -> MagicMock:
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[True, 3, 42])
        return pipe

    @pytest.fixture
    def client(self, pipe) -> MagicMock:
        client = MagicMock()
        client.pipeline.return_value.__aenter__.return_value = pipe
        return client

    @pytest.mark.asyncio
    async def test_hit(self, client, pipe):
        backend = RedisRateLimitBackend(client=client, clock=lambda: 1000.0)

        count, reset_at = await backend.hit("checkout_1.2.3.4", 60)

        assert (count, reset_at) == (3, 1042.0)
        pipe.set.assert_called_once_with("ratelimit:checkout_1.2.3.4", 0, ex=60, nx=True)
        pipe.incr.assert_called_once_with("ratelimit:checkout_1.2.3.4")

    @pytest.mark.asyncio
    async def test_missing_ttl_uses_window(self, client, pipe):
        pipe.execute.return_value = [None, 1, -1]
        backend = RedisRateLimitBackend(client=client, clock=lambda: 1000.0)

        _, reset_at = await backend.hit("checkout_1.2.3.4", 60)

        assert reset_at == 1060.0

    @pytest.mark.asyncio
    async def test_reset_deletes_prefixed_keys(self, client):
        async def keys(match):
            for key in ("ratelimit:a", "ratelimit:b"):
                yield key

        client.scan_iter = keys
        client.delete = AsyncMock()
        backend = RedisRateLimitBackend(client=client)

        await backend.reset()

        assert [c.args[0] for c in client.delete.await_args_list] == ["ratelimit:a", "ratelimit:b"]


class TestRateLimitResult:
    """Tests for response headers."""

    def test_headers(self):
        result = RateLimitResult(success=False, limit=10, remaining=0, reset_at=1060.4)

        assert result.headers() == {
            "X-RateLimit-Limit": "10",
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": "1060",
        }

    def test_retry_after_rounds_up(self):
        result = RateLimitResult(success=False, limit=10, remaining=0, reset_at=1060.4)

        assert result.retry_after(now=1000.0) == 61
        assert result.retry_after(now=1070.0) == 1


class TestGetClientIp:
    """Tests for client IP resolution."""

    def test_forwarded_for_first_entry(self):
        assert get_client_ip({"x-forwarded-for": "9.9.9.9, 10.0.0.1"}, "127.0.0.1") == "9.9.9.9"

    def test_real_ip(self):
        assert get_client_ip({"x-real-ip": " 8.8.8.8 "}) == "8.8.8.8"

    def test_peer_then_unknown(self):
        assert get_client_ip({}, "127.0.0.1") == "127.0.0.1"
        assert get_client_ip({}) == "unknown"
