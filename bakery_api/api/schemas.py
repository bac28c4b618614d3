"""API schemas for the bakery API.

Pydantic models for request/response validation and serialization.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from bakery_api.domain.state_machines import DiscountType, FulfillmentType, LoyaltyTier


# ============================================================================
# Common Schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | list[Any] = Field(
        default_factory=list, description="Additional error details"
    )
    request_id: str | None = Field(
        default=None, description="Request ID for correlation"
    )


# ============================================================================
# Checkout Schemas
# ============================================================================


class CartItemSchema(BaseModel):
    """A cart line submitted at checkout."""

    variant_id: str = Field(..., description="Product variant identifier")
    product_id: str = Field(..., description="Product identifier")
    product_name: str = Field(..., description="Product name shown in the cart")
    variant_name: str = Field(..., description="Variant name shown in the cart")
    quantity: int = Field(..., ge=1, description="Quantity")
    unit_price: Decimal = Field(..., ge=0, description="Unit price shown in the cart")
    image_url: str | None = Field(default=None, description="Product image URL")


class AddressSchema(BaseModel):
    """Delivery address."""

    street: str = Field(default="", description="Street address")
    apt: str | None = Field(default=None, description="Apartment or unit")
    city: str = Field(default="", description="City")
    state: str = Field(default="", description="State")
    zip: str = Field(default="", description="ZIP code")


class CheckoutRequestSchema(BaseModel):
    """Checkout form submission."""

    items: list[CartItemSchema] = Field(default_factory=list, description="Cart lines")
    email: str | None = Field(default=None, description="Customer email")
    full_name: str | None = Field(default=None, description="Customer full name")
    phone: str | None = Field(default=None, description="Customer phone")
    fulfillment_type: FulfillmentType = Field(..., description="pickup or delivery")
    delivery_date: date | None = Field(default=None, description="Pickup/delivery date")
    delivery_window: str | None = Field(
        default=None, description="Window label, e.g. '09:00 - 11:00'"
    )
    delivery_address: AddressSchema | None = Field(default=None, description="Delivery address")
    delivery_instructions: str | None = Field(default=None, description="Delivery notes")
    delivery_fee: Decimal = Field(default=Decimal("0"), ge=0, description="Delivery fee")
    discount_code_id: str | None = Field(default=None, description="Applied discount code")
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0, description="Discount amount")


class CheckoutResponseSchema(BaseModel):
    """Checkout created: redirect the customer to the payment page."""

    session_url: str = Field(..., description="Hosted payment page URL")
    order_id: str = Field(..., description="Order identifier")
    order_number: str | None = Field(default=None, description="Human-readable order number")


# ============================================================================
# Order Schemas
# ============================================================================


class CancelOrderRequest(BaseModel):
    """Customer cancellation request."""

    email: str | None = Field(default=None, description="Required for guest orders")
    reason: str | None = Field(default=None, description="Cancellation reason")


class CancelOrderResponse(BaseModel):
    """Cancellation result."""

    success: bool = Field(..., description="Whether the order was cancelled")
    message: str = Field(..., description="Result message")
    order_number: str | None = Field(default=None, description="Cancelled order number")


class TrackOrderRequest(BaseModel):
    """Order tracking lookup."""

    order_number: str = Field(..., min_length=1, description="Order number, e.g. HS-2024-001")
    email: str = Field(..., min_length=1, description="Email used for the order")


class StatusInfoSchema(BaseModel):
    """Customer-facing presentation of a status."""

    label: str
    description: str
    progress: int
    estimated_time: str | None = None


class OrderItemSchema(BaseModel):
    """Order line."""

    id: str
    product_id: str
    product_variant_id: str
    product_name: str
    variant_name: str
    quantity: int
    unit_price: float
    total_price: float
    special_instructions: str | None = None


class StatusHistorySchema(BaseModel):
    """Status history row."""

    status: str
    notes: str | None = None
    changed_by: str | None = None
    created_at: datetime


class OrderSchema(BaseModel):
    """Order as returned to customers and staff."""

    id: str
    order_number: str | None
    status: str
    status_info: StatusInfoSchema
    payment_status: str
    fulfillment_type: str
    customer_name: str | None = None
    guest_email: str | None = None
    delivery_date: date | None = None
    delivery_window: str | None = None
    delivery_address: AddressSchema | None = None
    pickup_location: str | None = None
    subtotal: float
    delivery_fee: float
    tax_amount: float
    discount_amount: float
    tip_amount: float
    total: float
    notes: str | None = None
    created_at: datetime
    updated_at: datetime
    confirmed_at: datetime | None = None
    completed_at: datetime | None = None


class AdminOrderSchema(OrderSchema):
    """Order with staff-only fields."""

    user_id: str | None = None
    guest_phone: str | None = None
    internal_notes: str | None = None
    time_slot_id: str | None = None
    delivery_zone_id: str | None = None
    discount_code_id: str | None = None
    stripe_checkout_session_id: str | None = None
    stripe_payment_intent_id: str | None = None
    allowed_transitions: list[str] = Field(default_factory=list)


class OrderDetailsResponse(BaseModel):
    """Order with items and status history."""

    order: OrderSchema
    items: list[OrderItemSchema]
    status_history: list[StatusHistorySchema]


class AdminOrderDetailsResponse(BaseModel):
    """Order with items and status history, including staff fields."""

    order: AdminOrderSchema
    items: list[OrderItemSchema]
    status_history: list[StatusHistorySchema]


class OrderStatusUpdateRequest(BaseModel):
    """Admin status change."""

    status: str = Field(..., description="Target status")
    notes: str | None = Field(default=None, description="Notes for the history row")


class OrderNotesUpdateRequest(BaseModel):
    """Admin internal notes update."""

    internal_notes: str = Field(..., description="Staff-only notes")


class OrderUpdateResponse(BaseModel):
    """Admin update result."""

    success: bool
    order: AdminOrderSchema


# ============================================================================
# Discount and Settings Schemas
# ============================================================================


class DiscountValidateRequest(BaseModel):
    """Discount code validation request."""

    code: str = Field(..., min_length=1, description="Discount code")
    subtotal: Decimal = Field(..., ge=0, description="Cart subtotal")


class DiscountValidateResponse(BaseModel):
    """Valid discount code."""

    valid: bool
    discount_code_id: str
    code: str
    discount_type: DiscountType
    discount_amount: float
    free_delivery: bool


class TaxRateResponse(BaseModel):
    """Current sales tax rate."""

    rate: float = Field(..., description="Rate as a fraction")
    percentage: float = Field(..., description="Rate as a percentage")


# ============================================================================
# Loyalty Schemas
# ============================================================================


class LoyaltyStatusResponse(BaseModel):
    """A customer's loyalty balance and tier."""

    points_balance: int
    lifetime_points: int
    tier: LoyaltyTier
    next_tier: LoyaltyTier | None = None
    points_to_next_tier: int | None = Field(
        default=None, description="Lifetime points still needed for the next tier"
    )


class RedeemPointsRequest(BaseModel):
    """Points to spend on a discount code."""

    points: int = Field(..., gt=0, description="Points to redeem")


class RedeemPointsResponse(BaseModel):
    """Discount code issued for redeemed points."""

    success: bool = True
    code: str
    discount_value: float
    points_redeemed: int
    points_balance: int


# ============================================================================
# Webhook Schemas
# ============================================================================


class WebhookResponse(BaseModel):
    """Acknowledgement of a webhook delivery."""

    received: bool = Field(..., description="Whether the event was accepted")
    duplicate: bool | None = Field(default=None, description="Event was already processed")
