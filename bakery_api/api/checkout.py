"""Checkout API endpoint.

Provides:
- POST /api/checkout - turn a cart into an order and a payment session
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from bakery_api.api.auth import get_optional_user_id
from bakery_api.api.rate_limit import checkout_rate_limit
from bakery_api.api.schemas import (
    CheckoutRequestSchema,
    CheckoutResponseSchema,
    ErrorResponse,
)
from bakery_api.application.checkout_service import (
    CartItemInput,
    CheckoutRequest,
    CheckoutService,
    get_checkout_service,
)
from bakery_api.domain.entities import Address

router = APIRouter(prefix="/api/checkout", tags=["Checkout"])

# Error codes that are server-side failures; everything else is a 400
SERVER_ERROR_CODES = {
    "ORDER_CREATE_FAILED",
    "ORDER_ITEMS_FAILED",
    "SLOT_RESERVE_FAILED",
    "PAYMENT_SESSION_FAILED",
}


# ============================================================================
# Dependencies
# ============================================================================


def get_service() -> CheckoutService:
    """Get checkout service."""
    return get_checkout_service()


# ============================================================================
# Converters
# ============================================================================


def to_checkout_request(body: CheckoutRequestSchema, user_id: str | None) -> CheckoutRequest:
    """Convert the request schema to the service DTO."""
    address = None
    if body.delivery_address is not None:
        address = Address(
            street=body.delivery_address.street.strip(),
            apt=body.delivery_address.apt or None,
            city=body.delivery_address.city.strip(),
            state=body.delivery_address.state.strip(),
            zip=body.delivery_address.zip.strip(),
        )

    return CheckoutRequest(
        items=[
            CartItemInput(
                variant_id=item.variant_id,
                product_id=item.product_id,
                product_name=item.product_name,
                variant_name=item.variant_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                image_url=item.image_url,
            )
            for item in body.items
        ],
        email=body.email.strip() if body.email else None,
        full_name=body.full_name.strip() if body.full_name else None,
        phone=body.phone.strip() if body.phone else None,
        fulfillment_type=body.fulfillment_type,
        delivery_date=body.delivery_date,
        delivery_window=body.delivery_window,
        delivery_address=address,
        delivery_instructions=body.delivery_instructions,
        delivery_fee=body.delivery_fee,
        discount_code_id=body.discount_code_id,
        discount_amount=body.discount_amount,
        user_id=user_id,
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "",
    response_model=CheckoutResponseSchema,
    responses={
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Create checkout",
    description="Validate the cart, create a pending order and return the payment page URL.",
    dependencies=[Depends(checkout_rate_limit)],
)
async def create_checkout(
    body: CheckoutRequestSchema,
    service: Annotated[CheckoutService, Depends(get_service)],
    user_id: Annotated[str | None, Depends(get_optional_user_id)],
) -> CheckoutResponseSchema:
    """Create an order and a hosted payment session.

    Args:
        body: Checkout form.
        service: Checkout service.
        user_id: Authenticated customer, if any.

    Returns:
        Payment page URL with the order id and number.

    Raises:
        HTTPException: 400 on validation failures, 500 on write failures.
    """
    result = await service.checkout(to_checkout_request(body, user_id))

    if not result.success:
        status_code = (
            status.HTTP_500_INTERNAL_SERVER_ERROR
            if result.error_code in SERVER_ERROR_CODES
            else status.HTTP_400_BAD_REQUEST
        )
        raise HTTPException(
            status_code=status_code,
            detail={
                "error_code": result.error_code or "CHECKOUT_FAILED",
                "message": result.error or "Checkout failed",
                "details": result.details,
            },
        )

    return CheckoutResponseSchema(
        session_url=result.session_url,
        order_id=result.order_id,
        order_number=result.order_number,
    )
