"""Back-office order endpoints.

All routes here sit under ``/api/admin`` and are protected by the admin
API key middleware.

Provides:
- GET /api/admin/orders/{order_id} - order with items and history
- PATCH /api/admin/orders/{order_id}/status - move an order along its flow
- PATCH /api/admin/orders/{order_id}/notes - replace internal notes
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from bakery_api.api.orders import history_to_schema, item_to_schema, order_fields
from bakery_api.api.schemas import (
    AdminOrderDetailsResponse,
    AdminOrderSchema,
    ErrorResponse,
    OrderNotesUpdateRequest,
    OrderStatusUpdateRequest,
    OrderUpdateResponse,
)
from bakery_api.application.order_service import (
    OrderService,
    UpdateOrderResult,
    get_order_service,
)
from bakery_api.domain.entities import Order

router = APIRouter(prefix="/api/admin/orders", tags=["Admin"])

ADMIN_ACTOR = "admin"

UPDATE_ERROR_STATUS = {
    "ORDER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "UPDATE_FAILED": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_service() -> OrderService:
    """Get order service."""
    return get_order_service()


def admin_order_to_schema(order: Order) -> AdminOrderSchema:
    """Convert order entity to the staff schema."""
    return AdminOrderSchema(
        **order_fields(order),
        user_id=order.user_id,
        guest_phone=order.guest_phone,
        internal_notes=order.internal_notes,
        time_slot_id=order.time_slot_id,
        delivery_zone_id=order.delivery_zone_id,
        discount_code_id=order.discount_code_id,
        stripe_checkout_session_id=order.stripe_checkout_session_id,
        stripe_payment_intent_id=order.stripe_payment_intent_id,
        allowed_transitions=[
            s.value for s in order.status.allowed_transitions(order.fulfillment_type)
        ],
    )


def _raise_for_update(result: UpdateOrderResult) -> Order:
    if result.success and result.order is not None:
        return result.order
    raise HTTPException(
        status_code=UPDATE_ERROR_STATUS.get(result.error_code or "", status.HTTP_400_BAD_REQUEST),
        detail={
            "error_code": result.error_code or "UPDATE_FAILED",
            "message": result.error or "Failed to update order",
            "details": result.details,
        },
    )


@router.get(
    "/{order_id}",
    response_model=AdminOrderDetailsResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Get order",
)
async def get_order(
    order_id: str,
    service: Annotated[OrderService, Depends(get_service)],
) -> AdminOrderDetailsResponse:
    """Get an order with its items and status history."""
    result = await service.get_order_details(order_id)

    if not result.success or result.order is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error_code": "ORDER_NOT_FOUND",
                "message": f"Order {order_id} not found",
            },
        )

    return AdminOrderDetailsResponse(
        order=admin_order_to_schema(result.order),
        items=[item_to_schema(item) for item in result.items],
        status_history=[history_to_schema(entry) for entry in result.status_history],
    )


@router.patch(
    "/{order_id}/status",
    response_model=OrderUpdateResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Update order status",
    description=(
        "Move an order one step forward or back in its fulfillment flow, "
        "or cancel/refund it. A history row is recorded and the customer notified."
    ),
)
async def update_order_status(
    order_id: str,
    body: OrderStatusUpdateRequest,
    service: Annotated[OrderService, Depends(get_service)],
) -> OrderUpdateResponse:
    """Update an order's status.

    Args:
        order_id: Order identifier.
        body: Target status and optional notes.
        service: Order service.

    Returns:
        The updated order.

    Raises:
        HTTPException: On unknown status, unknown order or disallowed transition.
    """
    result = await service.update_order_status(
        order_id, body.status, notes=body.notes, actor=ADMIN_ACTOR
    )
    order = _raise_for_update(result)
    return OrderUpdateResponse(success=True, order=admin_order_to_schema(order))


@router.patch(
    "/{order_id}/notes",
    response_model=OrderUpdateResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Update internal notes",
)
async def update_order_notes(
    order_id: str,
    body: OrderNotesUpdateRequest,
    service: Annotated[OrderService, Depends(get_service)],
) -> OrderUpdateResponse:
    """Replace an order's staff-only notes."""
    result = await service.update_internal_notes(order_id, body.internal_notes)
    order = _raise_for_update(result)
    return OrderUpdateResponse(success=True, order=admin_order_to_schema(order))
