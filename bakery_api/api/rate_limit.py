"""Rate limit dependencies.

``rate_limit(limit, prefix)`` builds a FastAPI dependency that counts the
request against ``"{prefix}_{client_ip}"``. Allowed requests get the
``X-RateLimit-*`` headers; rejected ones raise 429 with ``Retry-After``.
"""

from collections.abc import Awaitable, Callable

from fastapi import HTTPException, Request, Response, status

from bakery_api.infrastructure.rate_limiter import get_client_ip, get_rate_limiter


def rate_limit(limit: int, prefix: str) -> Callable[[Request, Response], Awaitable[None]]:
    """Create a rate limit dependency.

    Args:
        limit: Requests allowed per window.
        prefix: Key prefix naming the endpoint group.

    Returns:
        Dependency callable.
    """

    async def dependency(request: Request, response: Response) -> None:
        peer = request.client.host if request.client else None
        client_ip = get_client_ip(request.headers, peer)
        result = await get_rate_limiter().check(f"{prefix}_{client_ip}", limit)

        if not result.success:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "error_code": "RATE_LIMITED",
                    "message": "Too many requests. Please try again later.",
                },
                headers={**result.headers(), "Retry-After": str(result.retry_after())},
            )

        for name, value in result.headers().items():
            response.headers[name] = value

    return dependency


checkout_rate_limit = rate_limit(10, "CHECKOUT")
cancel_rate_limit = rate_limit(5, "ORDER_CANCEL")
discount_rate_limit = rate_limit(20, "DISCOUNT")
