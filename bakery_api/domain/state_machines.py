"""State machines for orders.

Defines the order status lifecycle, the statuses an admin may move an
order to, and which statuses still allow a customer to cancel. This is the
only place status rules live; routers, services and notifications all read
them from here.
"""

from dataclasses import dataclass
from enum import Enum

from bakery_api.domain.exceptions import InvalidStateTransitionError


# ============================================================================
# Supporting Enums
# ============================================================================


class FulfillmentType(str, Enum):
    """How the customer receives the order."""

    PICKUP = "pickup"
    DELIVERY = "delivery"


class PaymentStatus(str, Enum):
    """Payment lifecycle as reported by the payment provider."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class DiscountType(str, Enum):
    """Kinds of discount codes."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_DELIVERY = "free_delivery"


# ============================================================================
# Order State Machine
# ============================================================================


@dataclass(frozen=True)
class StatusDisplay:
    """Customer-facing presentation of a status."""

    label: str
    description: str
    progress: int
    estimated_time: str | None = None


class OrderStatus(str, Enum):
    """Order lifecycle states.

    State diagram (delivery):
        RECEIVED ─► CONFIRMED ─► BAKING ─► DECORATING ─► QUALITY_CHECK
                                                              │
        DELIVERED ◄─ OUT_FOR_DELIVERY ◄─ READY ◄──────────────┘

    Pickup orders end READY ─► PICKED_UP instead. Any non-terminal state
    may move to CANCELLED or REFUNDED.
    """

    RECEIVED = "received"
    CONFIRMED = "confirmed"
    BAKING = "baking"
    DECORATING = "decorating"
    QUALITY_CHECK = "quality_check"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    PICKED_UP = "picked_up"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @property
    def display(self) -> StatusDisplay:
        """Presentation data for this status."""
        return _STATUS_DISPLAY[self]

    @property
    def label(self) -> str:
        return self.display.label

    @property
    def description(self) -> str:
        return self.display.description

    @property
    def progress(self) -> int:
        return self.display.progress

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state.

        Returns:
            True if no further transitions are possible.
        """
        return self in _TERMINAL_STATUSES

    def is_cancellable(self) -> bool:
        """Check if the customer may still cancel.

        Returns:
            True if order can be cancelled by the customer.
        """
        return self in _CANCELLABLE_STATUSES

    def cancellation_block_reason(self) -> str | None:
        """Get the message explaining why cancellation is refused.

        Returns:
            None when the status is cancellable, otherwise the
            customer-facing rejection message.
        """
        if self.is_cancellable():
            return None
        return _CANCELLATION_BLOCK_REASONS.get(self, DEFAULT_CANCELLATION_BLOCK_REASON)

    def next_status(self, fulfillment_type: FulfillmentType) -> "OrderStatus | None":
        """Get the next status on the happy path.

        Args:
            fulfillment_type: Pickup or delivery flow.

        Returns:
            The following status, or None at the end of the flow.
        """
        flow = status_flow(fulfillment_type)
        if self not in flow:
            return None
        index = flow.index(self)
        return flow[index + 1] if index + 1 < len(flow) else None

    def previous_status(self, fulfillment_type: FulfillmentType) -> "OrderStatus | None":
        """Get the previous status on the happy path (for corrections)."""
        flow = status_flow(fulfillment_type)
        if self not in flow:
            return None
        index = flow.index(self)
        return flow[index - 1] if index > 0 else None

    def allowed_transitions(
        self,
        fulfillment_type: FulfillmentType = FulfillmentType.DELIVERY,
    ) -> list["OrderStatus"]:
        """Get the statuses an admin may set from this status.

        Terminal statuses only allow re-applying the current status.
        Otherwise one step forward, the current status, one step back,
        cancelled and refunded are allowed.

        Args:
            fulfillment_type: Pickup or delivery flow.

        Returns:
            Allowed target statuses in display order.
        """
        if self.is_terminal():
            return [self]

        allowed: list[OrderStatus] = []
        forward = self.next_status(fulfillment_type)
        backward = self.previous_status(fulfillment_type)
        for candidate in (forward, self, backward, OrderStatus.CANCELLED, OrderStatus.REFUNDED):
            if candidate is not None and candidate not in allowed:
                allowed.append(candidate)
        return allowed

    def can_transition_to(
        self,
        target: "OrderStatus",
        fulfillment_type: FulfillmentType = FulfillmentType.DELIVERY,
    ) -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.
            fulfillment_type: Pickup or delivery flow.

        Returns:
            True if transition is valid.
        """
        return target in self.allowed_transitions(fulfillment_type)


DELIVERY_FLOW: tuple[OrderStatus, ...] = (
    OrderStatus.RECEIVED,
    OrderStatus.CONFIRMED,
    OrderStatus.BAKING,
    OrderStatus.DECORATING,
    OrderStatus.QUALITY_CHECK,
    OrderStatus.READY,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)

PICKUP_FLOW: tuple[OrderStatus, ...] = (
    OrderStatus.RECEIVED,
    OrderStatus.CONFIRMED,
    OrderStatus.BAKING,
    OrderStatus.DECORATING,
    OrderStatus.QUALITY_CHECK,
    OrderStatus.READY,
    OrderStatus.PICKED_UP,
)


def status_flow(fulfillment_type: FulfillmentType) -> tuple[OrderStatus, ...]:
    """Get the happy-path status sequence for a fulfillment type."""
    if fulfillment_type == FulfillmentType.PICKUP:
        return PICKUP_FLOW
    return DELIVERY_FLOW


_TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(
    {
        OrderStatus.DELIVERED,
        OrderStatus.PICKED_UP,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
    }
)

_CANCELLABLE_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.RECEIVED, OrderStatus.CONFIRMED}
)

DEFAULT_CANCELLATION_BLOCK_REASON = "Cannot cancel order at this stage"

_CANCELLATION_BLOCK_REASONS: dict[OrderStatus, str] = {
    OrderStatus.BAKING: "Cannot cancel order after baking has started",
    OrderStatus.DECORATING: "Cannot cancel order - already in decorating stage",
    OrderStatus.QUALITY_CHECK: "Cannot cancel order - already in quality check",
    OrderStatus.READY: "Cannot cancel order - already prepared and ready",
    OrderStatus.OUT_FOR_DELIVERY: "Cannot cancel order - already out for delivery",
    OrderStatus.DELIVERED: "Order has already been delivered",
    OrderStatus.PICKED_UP: "Order has already been picked up",
    OrderStatus.CANCELLED: "Order is already cancelled",
    OrderStatus.REFUNDED: "Order has already been refunded",
}

_STATUS_DISPLAY: dict[OrderStatus, StatusDisplay] = {
    OrderStatus.RECEIVED: StatusDisplay(
        "Order Received", "We've received your order and it's being reviewed", 10, "Processing"
    ),
    OrderStatus.CONFIRMED: StatusDisplay(
        "Confirmed", "Your order has been confirmed and scheduled", 20, "Scheduled"
    ),
    OrderStatus.BAKING: StatusDisplay(
        "Baking", "Your items are being freshly baked", 40, "2-4 hours"
    ),
    OrderStatus.DECORATING: StatusDisplay(
        "Decorating", "Adding the finishing touches to your order", 60, "1-2 hours"
    ),
    OrderStatus.QUALITY_CHECK: StatusDisplay(
        "Quality Check", "Making sure everything is perfect", 70, "30 minutes"
    ),
    OrderStatus.READY: StatusDisplay(
        "Ready", "Your order is ready for pickup or delivery", 85, "Ready now"
    ),
    OrderStatus.OUT_FOR_DELIVERY: StatusDisplay(
        "Out for Delivery", "Your order is on its way", 95, "30-60 minutes"
    ),
    OrderStatus.DELIVERED: StatusDisplay(
        "Delivered", "Your order has been delivered. Enjoy!", 100
    ),
    OrderStatus.PICKED_UP: StatusDisplay(
        "Picked Up", "Your order has been picked up. Enjoy!", 100
    ),
    OrderStatus.CANCELLED: StatusDisplay(
        "Cancelled", "This order has been cancelled", 0
    ),
    OrderStatus.REFUNDED: StatusDisplay(
        "Refunded", "This order has been refunded", 0
    ),
}


def validate_order_transition(
    order_id: str,
    current: OrderStatus,
    target: OrderStatus,
    fulfillment_type: FulfillmentType = FulfillmentType.DELIVERY,
) -> None:
    """Validate an order status transition.

    Args:
        order_id: Order identifier.
        current: Current status.
        target: Requested status.
        fulfillment_type: Pickup or delivery flow.

    Raises:
        InvalidStateTransitionError: If the transition is not allowed.
    """
    if not current.can_transition_to(target, fulfillment_type):
        raise InvalidStateTransitionError(
            entity_type="Order",
            entity_id=order_id,
            current_state=current.value,
            target_state=target.value,
            allowed_transitions=[
                s.value for s in current.allowed_transitions(fulfillment_type)
            ],
        )


# ============================================================================
# Loyalty Tiers
# ============================================================================


class LoyaltyTier(str, Enum):
    """Loyalty membership tier, earned by lifetime points."""

    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"

    @classmethod
    def for_lifetime_points(cls, lifetime_points: int) -> "LoyaltyTier":
        """Tier a customer holds after earning ``lifetime_points``."""
        tier = cls.BRONZE
        for candidate, threshold in TIER_THRESHOLDS.items():
            if lifetime_points >= threshold:
                tier = candidate
        return tier

    @property
    def next_tier(self) -> "LoyaltyTier | None":
        tiers = list(TIER_THRESHOLDS)
        index = tiers.index(self)
        return tiers[index + 1] if index + 1 < len(tiers) else None


# Lifetime points needed to hold each tier, lowest first
TIER_THRESHOLDS: dict[LoyaltyTier, int] = {
    LoyaltyTier.BRONZE: 0,
    LoyaltyTier.SILVER: 500,
    LoyaltyTier.GOLD: 1500,
}
