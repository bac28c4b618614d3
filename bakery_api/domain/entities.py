"""Domain entities for the bakery storefront.

Entities are domain objects with identity. Orders and their items are the
aggregate mutated by checkout, payment webhooks, cancellation and the admin
back-office; the remaining entities are catalog and scheduling records
read during checkout.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from bakery_api.domain.exceptions import OrderOwnershipError
from bakery_api.domain.state_machines import (
    TIER_THRESHOLDS,
    DiscountType,
    FulfillmentType,
    LoyaltyTier,
    OrderStatus,
    PaymentStatus,
)
from bakery_api.domain.value_objects import ZERO


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


# ============================================================================
# Catalog and Scheduling
# ============================================================================


@dataclass
class ProductVariant:
    """A purchasable product variant with its parent product's rules.

    Attributes:
        id: Variant identifier.
        product_id: Parent product identifier.
        product_name: Parent product name.
        variant_name: Variant name (size, flavor).
        base_price: Product base price.
        price_adjustment: Variant delta applied to the base price.
        is_available: Variant availability flag.
        product_is_available: Parent product availability flag.
        track_inventory: Whether inventory_count is enforced.
        inventory_count: Units in stock, if tracked.
        lead_time_hours: Preparation notice the product needs.
        max_per_order: Per-order quantity cap, if any.
    """

    id: str
    product_id: str
    product_name: str
    variant_name: str
    base_price: Decimal
    price_adjustment: Decimal = ZERO
    is_available: bool = True
    product_is_available: bool = True
    track_inventory: bool = False
    inventory_count: int | None = None
    lead_time_hours: int = 0
    max_per_order: int | None = None

    @property
    def unit_price(self) -> Decimal:
        """Server-side unit price."""
        return self.base_price + self.price_adjustment

    @property
    def purchasable(self) -> bool:
        return self.is_available and self.product_is_available


@dataclass
class TimeSlot:
    """A bounded-capacity pickup/delivery window on a given date."""

    id: str
    date: date
    window_start: str
    window_end: str
    max_orders: int
    current_orders: int = 0
    is_available: bool = True

    @property
    def is_full(self) -> bool:
        return self.current_orders >= self.max_orders


@dataclass
class DeliveryZone:
    """A ZIP-code keyed delivery pricing bucket."""

    id: str
    name: str
    zip_codes: list[str]
    min_order: Decimal = ZERO
    delivery_fee: Decimal = ZERO
    free_delivery_threshold: Decimal | None = None
    estimated_time: str | None = None
    is_active: bool = True

    def covers(self, zip_code: str) -> bool:
        """Check whether the zone serves a ZIP code."""
        return self.is_active and zip_code.strip() in self.zip_codes


@dataclass
class DiscountCode:
    """A redeemable discount code."""

    id: str
    code: str
    discount_type: DiscountType
    value: Decimal
    min_order_amount: Decimal | None = None
    max_uses: int | None = None
    current_uses: int = 0
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool = True


# ============================================================================
# Orders
# ============================================================================


@dataclass
class Address:
    """Structured delivery address."""

    street: str
    city: str
    state: str
    zip: str
    apt: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "street": self.street,
            "apt": self.apt,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Address | None":
        if not data:
            return None
        return cls(
            street=data["street"],
            city=data["city"],
            state=data["state"],
            zip=data["zip"],
            apt=data.get("apt"),
        )


@dataclass
class OrderItem:
    """A line of an order with a snapshot of the product at purchase time."""

    order_id: str
    product_id: str
    product_variant_id: str
    product_name: str
    variant_name: str
    quantity: int
    unit_price: Decimal
    special_instructions: str | None = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class StatusHistoryEntry:
    """Append-only record of an order status change."""

    order_id: str
    status: OrderStatus
    notes: str | None = None
    changed_by: str | None = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class Order:
    """A customer order.

    Created by checkout in ``received``/``pending``; advanced by payment
    webhooks, the admin back-office and customer cancellation.

    Raises:
        OrderOwnershipError: If not exactly one of ``user_id`` and
            ``guest_email`` is set.
    """

    fulfillment_type: FulfillmentType
    subtotal: Decimal
    total: Decimal
    user_id: str | None = None
    guest_email: str | None = None
    guest_phone: str | None = None
    customer_name: str | None = None
    status: OrderStatus = OrderStatus.RECEIVED
    payment_status: PaymentStatus = PaymentStatus.PENDING
    delivery_date: date | None = None
    delivery_window: str | None = None
    time_slot_id: str | None = None
    delivery_zone_id: str | None = None
    delivery_address: Address | None = None
    pickup_location: str | None = None
    delivery_fee: Decimal = ZERO
    tax_amount: Decimal = ZERO
    discount_amount: Decimal = ZERO
    discount_code_id: str | None = None
    tip_amount: Decimal = ZERO
    stripe_checkout_session_id: str | None = None
    stripe_payment_intent_id: str | None = None
    notes: str | None = None
    internal_notes: str | None = None
    inventory_deducted: bool = False
    order_number: str | None = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    confirmed_at: datetime | None = None
    completed_at: datetime | None = None

    def __post_init__(self) -> None:
        """Validate the single-owner invariant."""
        if (self.user_id is None) == (self.guest_email is None):
            raise OrderOwnershipError(self.user_id, self.guest_email)

    @property
    def is_guest_order(self) -> bool:
        return self.user_id is None

    def guest_email_matches(self, email: str | None) -> bool:
        """Compare a submitted email with the guest email.

        Comparison is case-insensitive and ignores surrounding whitespace.

        Args:
            email: Email supplied by the requester.

        Returns:
            True if this is a guest order and the emails match.
        """
        if self.guest_email is None or not email:
            return False
        return self.guest_email.strip().lower() == email.strip().lower()


@dataclass
class CustomerProfile:
    """Contact details of a registered customer."""

    id: str
    email: str
    full_name: str | None = None


# ============================================================================
# Loyalty
# ============================================================================


@dataclass
class LoyaltyAccount:
    """A registered customer's loyalty points.

    Attributes:
        user_id: Owning customer.
        points: Spendable balance.
        lifetime_points: Points ever earned; redemptions do not lower it.
        tier: Tier held, derived from ``lifetime_points``.
    """

    user_id: str
    points: int = 0
    lifetime_points: int = 0
    tier: LoyaltyTier = LoyaltyTier.BRONZE
    id: str = field(default_factory=_new_id)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def points_to_next_tier(self) -> int | None:
        """Lifetime points still needed for the next tier, None at the top."""
        next_tier = self.tier.next_tier
        if next_tier is None:
            return None
        return max(TIER_THRESHOLDS[next_tier] - self.lifetime_points, 0)


@dataclass
class LoyaltyTransaction:
    """A change to a loyalty balance. Redemptions carry negative points."""

    user_id: str
    points: int
    description: str | None = None
    order_id: str | None = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)
