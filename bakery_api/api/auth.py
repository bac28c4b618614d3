"""Customer identity.

Storefront endpoints accept an optional ``Authorization: Bearer <jwt>``
issued by the identity provider. A valid token identifies a registered
customer by its ``sub`` claim; a missing or invalid token means the
caller is a guest.
Account endpoints use ``get_current_user_id``, which rejects guests with 401.
"""

from typing import Annotated

import structlog
from fastapi import Depends, Header, HTTPException, status
from jose import JWTError, jwt

from bakery_api.infrastructure.config import settings

logger = structlog.get_logger()


def decode_user_id(token: str) -> str | None:
    """Validate a customer token and return its user id.

    Args:
        token: Encoded JWT.

    Returns:
        The ``sub`` claim, or None if the token is invalid.
    """
    options = {"verify_aud": settings.jwt_audience is not None}
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    except JWTError as e:
        logger.info("Ignoring invalid customer token", error=str(e))
        return None
    user_id = payload.get("sub")
    return str(user_id) if user_id else None


async def get_optional_user_id(
    authorization: Annotated[str | None, Header()] = None,
) -> str | None:
    """FastAPI dependency resolving the authenticated customer, if any."""
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return decode_user_id(parts[1].strip())


async def get_current_user_id(
    user_id: Annotated[str | None, Depends(get_optional_user_id)],
) -> str:
    """FastAPI dependency requiring an authenticated customer.

    Raises:
        HTTPException: 401 when no valid customer token is supplied.
    """
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "UNAUTHORIZED",
                "message": "Sign in to continue",
            },
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id
