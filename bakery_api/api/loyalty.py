"""Loyalty rewards endpoints.

Provides:
- GET /api/loyalty - balance, lifetime points and tier
- POST /api/loyalty/redeem - spend points on a discount code

Both require a customer token.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from bakery_api.api.auth import get_current_user_id
from bakery_api.api.schemas import (
    ErrorResponse,
    LoyaltyStatusResponse,
    RedeemPointsRequest,
    RedeemPointsResponse,
)
from bakery_api.application.loyalty_service import LoyaltyService, get_loyalty_service

router = APIRouter(prefix="/api/loyalty", tags=["Loyalty"])


def get_service() -> LoyaltyService:
    """Get loyalty service."""
    return get_loyalty_service()


@router.get(
    "",
    response_model=LoyaltyStatusResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Get loyalty status",
)
async def get_loyalty_status(
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[LoyaltyService, Depends(get_service)],
) -> LoyaltyStatusResponse:
    """Get the signed-in customer's points and tier."""
    result = await service.get_status(user_id)
    return LoyaltyStatusResponse(
        points_balance=result.points_balance,
        lifetime_points=result.lifetime_points,
        tier=result.tier,
        next_tier=result.next_tier,
        points_to_next_tier=result.points_to_next_tier,
    )


@router.post(
    "/redeem",
    response_model=RedeemPointsResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
    },
    summary="Redeem loyalty points",
)
async def redeem_points(
    body: RedeemPointsRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[LoyaltyService, Depends(get_service)],
) -> RedeemPointsResponse:
    """Spend points on a single-use discount code.

    Raises:
        HTTPException: 400 for an invalid amount or a short balance.
    """
    result = await service.redeem_points(user_id, body.points)

    if not result.success or result.code is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error_code": result.error_code or "REDEMPTION_FAILED",
                "message": result.error or "Redemption failed",
            },
        )

    return RedeemPointsResponse(
        code=result.code,
        discount_value=float(result.discount_value),
        points_redeemed=result.points_redeemed,
        points_balance=result.points_balance,
    )
