"""Discount code endpoints.

Provides:
- POST /api/discounts/validate - check a code against a cart subtotal
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from bakery_api.api.rate_limit import discount_rate_limit
from bakery_api.api.schemas import (
    DiscountValidateRequest,
    DiscountValidateResponse,
    ErrorResponse,
)
from bakery_api.application.discount_service import DiscountService, get_discount_service

router = APIRouter(prefix="/api/discounts", tags=["Discounts"])


def get_service() -> DiscountService:
    """Get discount service."""
    return get_discount_service()


@router.post(
    "/validate",
    response_model=DiscountValidateResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
    summary="Validate discount code",
    dependencies=[Depends(discount_rate_limit)],
)
async def validate_discount(
    body: DiscountValidateRequest,
    service: Annotated[DiscountService, Depends(get_service)],
) -> DiscountValidateResponse:
    """Validate a discount code and compute its amount.

    Raises:
        HTTPException: 404 for unknown codes, 400 for codes that cannot be used.
    """
    result = await service.validate_discount(body.code, body.subtotal)

    if not result.success or result.discount is None:
        status_code = (
            status.HTTP_404_NOT_FOUND
            if result.error_code == "DISCOUNT_NOT_FOUND"
            else status.HTTP_400_BAD_REQUEST
        )
        raise HTTPException(
            status_code=status_code,
            detail={
                "error_code": result.error_code or "DISCOUNT_INVALID",
                "message": result.error or "Invalid discount code",
            },
        )

    return DiscountValidateResponse(
        valid=True,
        discount_code_id=result.discount.id,
        code=result.discount.code,
        discount_type=result.discount.discount_type,
        discount_amount=float(result.discount_amount),
        free_delivery=result.free_delivery,
    )
