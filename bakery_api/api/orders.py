"""Order API endpoints.

Provides:
- POST /api/orders/{order_id}/cancel - customer cancellation
- POST /api/orders/track - public order tracking by number and email
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from bakery_api.api.auth import get_optional_user_id
from bakery_api.api.rate_limit import cancel_rate_limit
from bakery_api.api.schemas import (
    AddressSchema,
    CancelOrderRequest,
    CancelOrderResponse,
    ErrorResponse,
    OrderDetailsResponse,
    OrderItemSchema,
    OrderSchema,
    StatusHistorySchema,
    StatusInfoSchema,
    TrackOrderRequest,
)
from bakery_api.application.order_service import OrderService, get_order_service
from bakery_api.domain.entities import Order, OrderItem, StatusHistoryEntry
from bakery_api.infrastructure.rate_limiter import get_client_ip

router = APIRouter(prefix="/api/orders", tags=["Orders"])

CANCEL_ERROR_STATUS = {
    "ORDER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "EMAIL_MISMATCH": status.HTTP_403_FORBIDDEN,
    "FORBIDDEN": status.HTTP_403_FORBIDDEN,
    "CANCEL_FAILED": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


# ============================================================================
# Dependencies
# ============================================================================


def get_service() -> OrderService:
    """Get order service."""
    return get_order_service()


# ============================================================================
# Converters
# ============================================================================


def order_fields(order: Order) -> dict:
    """Customer-visible order fields shared by the customer and admin schemas."""
    display = order.status.display
    address = order.delivery_address
    return {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status.value,
        "status_info": StatusInfoSchema(
            label=display.label,
            description=display.description,
            progress=display.progress,
            estimated_time=display.estimated_time,
        ),
        "payment_status": order.payment_status.value,
        "fulfillment_type": order.fulfillment_type.value,
        "customer_name": order.customer_name,
        "guest_email": order.guest_email,
        "delivery_date": order.delivery_date,
        "delivery_window": order.delivery_window,
        "delivery_address": AddressSchema(**address.to_dict()) if address else None,
        "pickup_location": order.pickup_location,
        "subtotal": float(order.subtotal),
        "delivery_fee": float(order.delivery_fee),
        "tax_amount": float(order.tax_amount),
        "discount_amount": float(order.discount_amount),
        "tip_amount": float(order.tip_amount),
        "total": float(order.total),
        "notes": order.notes,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "confirmed_at": order.confirmed_at,
        "completed_at": order.completed_at,
    }


def order_to_schema(order: Order) -> OrderSchema:
    """Convert order entity to the customer schema."""
    return OrderSchema(**order_fields(order))


def item_to_schema(item: OrderItem) -> OrderItemSchema:
    """Convert order item entity to schema."""
    return OrderItemSchema(
        id=item.id,
        product_id=item.product_id,
        product_variant_id=item.product_variant_id,
        product_name=item.product_name,
        variant_name=item.variant_name,
        quantity=item.quantity,
        unit_price=float(item.unit_price),
        total_price=float(item.total_price),
        special_instructions=item.special_instructions,
    )


def history_to_schema(entry: StatusHistoryEntry) -> StatusHistorySchema:
    """Convert status history entry to schema."""
    return StatusHistorySchema(
        status=entry.status.value,
        notes=entry.notes,
        changed_by=entry.changed_by,
        created_at=entry.created_at,
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "/{order_id}/cancel",
    response_model=CancelOrderResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Cancel order",
    description=(
        "Cancel an order. Only received or confirmed orders can be cancelled. "
        "Guest orders require the email used at checkout."
    ),
    dependencies=[Depends(cancel_rate_limit)],
)
async def cancel_order(
    order_id: str,
    request: Request,
    service: Annotated[OrderService, Depends(get_service)],
    user_id: Annotated[str | None, Depends(get_optional_user_id)],
    body: CancelOrderRequest | None = None,
) -> CancelOrderResponse:
    """Cancel an order.

    Args:
        order_id: Order identifier.
        request: The incoming request.
        service: Order service.
        user_id: Authenticated customer, if any.
        body: Optional email and reason.

    Returns:
        Cancellation confirmation with the order number.

    Raises:
        HTTPException: If the order is not found, not owned or not cancellable.
    """
    body = body or CancelOrderRequest()
    peer = request.client.host if request.client else None

    result = await service.cancel_order(
        order_id=order_id,
        user_id=user_id,
        email=body.email,
        reason=body.reason,
        client_ip=get_client_ip(request.headers, peer),
    )

    if not result.success:
        raise HTTPException(
            status_code=CANCEL_ERROR_STATUS.get(
                result.error_code or "", status.HTTP_400_BAD_REQUEST
            ),
            detail={
                "error_code": result.error_code or "CANCEL_FAILED",
                "message": result.error or "Failed to cancel order",
                "details": result.details,
            },
        )

    return CancelOrderResponse(
        success=True,
        message="Order cancelled successfully",
        order_number=result.order_number,
    )


@router.post(
    "/track",
    response_model=OrderDetailsResponse,
    responses={
        404: {"model": ErrorResponse},
    },
    summary="Track order",
    description="Look up an order by its number and the email used for it.",
)
async def track_order(
    body: TrackOrderRequest,
    service: Annotated[OrderService, Depends(get_service)],
    user_id: Annotated[str | None, Depends(get_optional_user_id)],
) -> OrderDetailsResponse:
    """Track an order.

    Raises:
        HTTPException: 404 for unknown numbers and mismatched emails alike.
    """
    result = await service.track_order(body.order_number, body.email, user_id=user_id)

    if not result.success or result.order is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error_code": "ORDER_NOT_FOUND",
                "message": "Order not found",
            },
        )

    return OrderDetailsResponse(
        order=order_to_schema(result.order),
        items=[item_to_schema(item) for item in result.items],
        status_history=[history_to_schema(entry) for entry in result.status_history],
    )
