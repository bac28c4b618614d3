"""Domain layer - entities, value objects, state machines, exceptions.

- **Entities**: Order, OrderItem, StatusHistoryEntry, TimeSlot, DeliveryZone,
  DiscountCode, ProductVariant, LoyaltyAccount, LoyaltyTransaction
- **State Machines**: OrderStatus with its transition and cancellation rules
- **Loyalty**: LoyaltyTier and its lifetime-point thresholds
- **Exceptions**: Domain-specific errors and invariant violations
"""

from bakery_api.domain.entities import (
    Address,
    CustomerProfile,
    DeliveryZone,
    DiscountCode,
    LoyaltyAccount,
    LoyaltyTransaction,
    Order,
    OrderItem,
    ProductVariant,
    StatusHistoryEntry,
    TimeSlot,
)
from bakery_api.domain.exceptions import (
    DomainError,
    InvalidStateTransitionError,
    OrderOwnershipError,
    PaymentProviderError,
    StoreError,
)
from bakery_api.domain.state_machines import (
    DiscountType,
    FulfillmentType,
    LoyaltyTier,
    OrderStatus,
    PaymentStatus,
    validate_order_transition,
)

__all__ = [
    "Address",
    "CustomerProfile",
    "DeliveryZone",
    "DiscountCode",
    "DiscountType",
    "DomainError",
    "FulfillmentType",
    "InvalidStateTransitionError",
    "LoyaltyAccount",
    "LoyaltyTier",
    "LoyaltyTransaction",
    "Order",
    "OrderItem",
    "OrderOwnershipError",
    "OrderStatus",
    "PaymentProviderError",
    "PaymentStatus",
    "ProductVariant",
    "StatusHistoryEntry",
    "StoreError",
    "TimeSlot",
    "validate_order_transition",
]
