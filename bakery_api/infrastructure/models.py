"""SQLAlchemy models for database tables.

Provides ORM models for orders and their items/history, the scheduling
and catalog tables read during checkout, discount codes, business
settings, loyalty balances and the webhook event log. ``to_entity`` converts a row to the
domain dataclass the services work with.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Sequence,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import relationship

from bakery_api.domain.entities import (
    Address,
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
from bakery_api.domain.state_machines import (
    DiscountType,
    FulfillmentType,
    LoyaltyTier,
    OrderStatus,
    PaymentStatus,
)
from bakery_api.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


Money = Numeric(10, 2)

order_number_seq = Sequence("order_number_seq", start=1)


# ============================================================================
# Order Models
# ============================================================================


class OrderModel(Base):
    """Order model for database persistence.

    Owner is either a registered user or a guest email, enforced by a
    check constraint.
    """

    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (guest_email IS NULL)",
            name="ck_orders_single_owner",
        ),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    order_number = Column(String(32), nullable=False, unique=True, index=True)

    # Owner
    user_id = Column(String(36), nullable=True, index=True)
    guest_email = Column(String(255), nullable=True, index=True)
    guest_phone = Column(String(50), nullable=True)
    customer_name = Column(String(255), nullable=True)

    # Status
    status = Column(String(20), nullable=False, default=OrderStatus.RECEIVED.value, index=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)

    # Fulfillment
    fulfillment_type = Column(String(20), nullable=False)
    delivery_date = Column(Date, nullable=True)
    delivery_window = Column(String(50), nullable=True)
    time_slot_id = Column(String(36), ForeignKey("time_slots.id"), nullable=True)
    delivery_zone_id = Column(String(36), ForeignKey("delivery_zones.id"), nullable=True)
    delivery_address = Column(JSONB, nullable=True)
    pickup_location = Column(String(255), nullable=True)

    # Totals
    subtotal = Column(Money, nullable=False)
    delivery_fee = Column(Money, nullable=False, default=Decimal("0.00"))
    tax_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    discount_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    discount_code_id = Column(String(36), ForeignKey("discount_codes.id"), nullable=True)
    tip_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    total = Column(Money, nullable=False)

    # Payment provider references
    stripe_checkout_session_id = Column(String(255), nullable=True)
    stripe_payment_intent_id = Column(String(255), nullable=True, index=True)

    notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)
    inventory_deducted = Column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
    )
    status_history = relationship(
        "OrderStatusHistoryModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistoryModel.created_at",
    )

    @classmethod
    def from_entity(cls, order: Order) -> "OrderModel":
        """Build a row from a domain order."""
        return cls(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            guest_email=order.guest_email,
            guest_phone=order.guest_phone,
            customer_name=order.customer_name,
            status=order.status.value,
            payment_status=order.payment_status.value,
            fulfillment_type=order.fulfillment_type.value,
            delivery_date=order.delivery_date,
            delivery_window=order.delivery_window,
            time_slot_id=order.time_slot_id,
            delivery_zone_id=order.delivery_zone_id,
            delivery_address=order.delivery_address.to_dict() if order.delivery_address else None,
            pickup_location=order.pickup_location,
            subtotal=order.subtotal,
            delivery_fee=order.delivery_fee,
            tax_amount=order.tax_amount,
            discount_amount=order.discount_amount,
            discount_code_id=order.discount_code_id,
            tip_amount=order.tip_amount,
            total=order.total,
            stripe_checkout_session_id=order.stripe_checkout_session_id,
            stripe_payment_intent_id=order.stripe_payment_intent_id,
            notes=order.notes,
            internal_notes=order.internal_notes,
            inventory_deducted=order.inventory_deducted,
            created_at=order.created_at,
            updated_at=order.updated_at,
            confirmed_at=order.confirmed_at,
            completed_at=order.completed_at,
        )

    def to_entity(self) -> Order:
        """Convert to a domain order."""
        return Order(
            id=self.id,
            order_number=self.order_number,
            user_id=self.user_id,
            guest_email=self.guest_email,
            guest_phone=self.guest_phone,
            customer_name=self.customer_name,
            status=OrderStatus(self.status),
            payment_status=PaymentStatus(self.payment_status),
            fulfillment_type=FulfillmentType(self.fulfillment_type),
            delivery_date=self.delivery_date,
            delivery_window=self.delivery_window,
            time_slot_id=self.time_slot_id,
            delivery_zone_id=self.delivery_zone_id,
            delivery_address=Address.from_dict(self.delivery_address),
            pickup_location=self.pickup_location,
            subtotal=self.subtotal,
            delivery_fee=self.delivery_fee,
            tax_amount=self.tax_amount,
            discount_amount=self.discount_amount,
            discount_code_id=self.discount_code_id,
            tip_amount=self.tip_amount,
            total=self.total,
            stripe_checkout_session_id=self.stripe_checkout_session_id,
            stripe_payment_intent_id=self.stripe_payment_intent_id,
            notes=self.notes,
            internal_notes=self.internal_notes,
            inventory_deducted=bool(self.inventory_deducted),
            created_at=self.created_at,
            updated_at=self.updated_at,
            confirmed_at=self.confirmed_at,
            completed_at=self.completed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "order_number": self.order_number,
            "status": self.status,
            "payment_status": self.payment_status,
            "fulfillment_type": self.fulfillment_type,
            "total": str(self.total),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class OrderItemModel(Base):
    """Order item model for database persistence."""

    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=_new_id)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(String(36), nullable=False)
    product_variant_id = Column(String(36), nullable=False)
    product_name = Column(String(255), nullable=False)
    variant_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Money, nullable=False)
    total_price = Column(Money, nullable=False)
    special_instructions = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    order = relationship("OrderModel", back_populates="items")

    @classmethod
    def from_entity(cls, item: OrderItem) -> "OrderItemModel":
        return cls(
            id=item.id,
            order_id=item.order_id,
            product_id=item.product_id,
            product_variant_id=item.product_variant_id,
            product_name=item.product_name,
            variant_name=item.variant_name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=item.total_price,
            special_instructions=item.special_instructions,
            created_at=item.created_at,
        )

    def to_entity(self) -> OrderItem:
        return OrderItem(
            id=self.id,
            order_id=self.order_id,
            product_id=self.product_id,
            product_variant_id=self.product_variant_id,
            product_name=self.product_name,
            variant_name=self.variant_name,
            quantity=self.quantity,
            unit_price=self.unit_price,
            special_instructions=self.special_instructions,
            created_at=self.created_at,
        )


class OrderStatusHistoryModel(Base):
    """Append-only order status history."""

    __tablename__ = "order_status_history"

    id = Column(String(36), primary_key=True, default=_new_id)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(String(20), nullable=False)
    notes = Column(Text, nullable=True)
    changed_by = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    order = relationship("OrderModel", back_populates="status_history")

    def to_entity(self) -> StatusHistoryEntry:
        return StatusHistoryEntry(
            id=self.id,
            order_id=self.order_id,
            status=OrderStatus(self.status),
            notes=self.notes,
            changed_by=self.changed_by,
            created_at=self.created_at,
        )


# ============================================================================
# Scheduling and Catalog Models
# ============================================================================


class TimeSlotModel(Base):
    """Pickup/delivery time slot with an order counter."""

    __tablename__ = "time_slots"
    __table_args__ = (
        UniqueConstraint("date", "window_start", name="uq_time_slots_date_window"),
        CheckConstraint("current_orders >= 0", name="ck_time_slots_current_orders"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    date = Column(Date, nullable=False, index=True)
    window_start = Column(String(5), nullable=False)
    window_end = Column(String(5), nullable=False)
    max_orders = Column(Integer, nullable=False)
    current_orders = Column(Integer, nullable=False, default=0)
    is_available = Column(Boolean, nullable=False, default=True)

    def to_entity(self) -> TimeSlot:
        return TimeSlot(
            id=self.id,
            date=self.date,
            window_start=self.window_start,
            window_end=self.window_end,
            max_orders=self.max_orders,
            current_orders=self.current_orders,
            is_available=self.is_available,
        )


class DeliveryZoneModel(Base):
    """Delivery zone keyed by ZIP codes."""

    __tablename__ = "delivery_zones"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False)
    zip_codes = Column(ARRAY(String(10)), nullable=False, default=list)
    min_order = Column(Money, nullable=False, default=Decimal("0.00"))
    delivery_fee = Column(Money, nullable=False, default=Decimal("0.00"))
    free_delivery_threshold = Column(Money, nullable=True)
    estimated_time = Column(String(50), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    def to_entity(self) -> DeliveryZone:
        return DeliveryZone(
            id=self.id,
            name=self.name,
            zip_codes=list(self.zip_codes or []),
            min_order=self.min_order,
            delivery_fee=self.delivery_fee,
            free_delivery_threshold=self.free_delivery_threshold,
            estimated_time=self.estimated_time,
            is_active=self.is_active,
        )


class DiscountCodeModel(Base):
    """Discount code with usage counters."""

    __tablename__ = "discount_codes"

    id = Column(String(36), primary_key=True, default=_new_id)
    code = Column(String(50), nullable=False, unique=True)
    discount_type = Column(String(20), nullable=False)
    value = Column(Money, nullable=False)
    min_order_amount = Column(Money, nullable=True)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, nullable=False, default=0)
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    def to_entity(self) -> DiscountCode:
        return DiscountCode(
            id=self.id,
            code=self.code,
            discount_type=DiscountType(self.discount_type),
            value=self.value,
            min_order_amount=self.min_order_amount,
            max_uses=self.max_uses,
            current_uses=self.current_uses,
            valid_from=self.valid_from,
            valid_until=self.valid_until,
            is_active=self.is_active,
        )


class ProductModel(Base):
    """Product with ordering rules shared by its variants."""

    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    base_price = Column(Money, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    lead_time_hours = Column(Integer, nullable=False, default=0)
    max_per_order = Column(Integer, nullable=True)

    variants = relationship("ProductVariantModel", back_populates="product")


class ProductVariantModel(Base):
    """Purchasable variant of a product."""

    __tablename__ = "product_variants"

    id = Column(String(36), primary_key=True, default=_new_id)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    price_adjustment = Column(Money, nullable=False, default=Decimal("0.00"))
    is_available = Column(Boolean, nullable=False, default=True)
    track_inventory = Column(Boolean, nullable=False, default=False)
    inventory_count = Column(Integer, nullable=True)

    product = relationship("ProductModel", back_populates="variants", lazy="joined")

    def to_entity(self) -> ProductVariant:
        return ProductVariant(
            id=self.id,
            product_id=self.product_id,
            product_name=self.product.name,
            variant_name=self.name,
            base_price=self.product.base_price,
            price_adjustment=self.price_adjustment,
            is_available=self.is_available,
            product_is_available=self.product.is_available,
            track_inventory=self.track_inventory,
            inventory_count=self.inventory_count,
            lead_time_hours=self.product.lead_time_hours,
            max_per_order=self.product.max_per_order,
        )


class CustomerProfileModel(Base):
    """Registered customer contact details."""

    __tablename__ = "customer_profiles"

    id = Column(String(36), primary_key=True)
    email = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=True)


class BusinessSettingModel(Base):
    """Key/value business configuration (tax settings, hours, contact info)."""

    __tablename__ = "business_settings"

    key = Column(String(100), primary_key=True)
    value = Column(JSONB, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )


# ============================================================================
# Loyalty
# ============================================================================


class LoyaltyPointsModel(Base):
    """Loyalty balance of a registered customer, one row per user."""

    __tablename__ = "loyalty_points"
    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_loyalty_points_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), nullable=False, unique=True)
    points = Column(Integer, nullable=False, default=0)
    lifetime_points = Column(Integer, nullable=False, default=0)
    tier = Column(String(20), nullable=False, default=LoyaltyTier.BRONZE.value)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    def to_entity(self) -> LoyaltyAccount:
        return LoyaltyAccount(
            id=self.id,
            user_id=self.user_id,
            points=self.points or 0,
            lifetime_points=self.lifetime_points or 0,
            tier=LoyaltyTier(self.tier or LoyaltyTier.BRONZE.value),
            updated_at=self.updated_at,
        )


class LoyaltyTransactionModel(Base):
    """Ledger of loyalty point changes."""

    __tablename__ = "loyalty_transactions"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=True)
    points = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_entity(self) -> LoyaltyTransaction:
        return LoyaltyTransaction(
            id=self.id,
            user_id=self.user_id,
            order_id=self.order_id,
            points=self.points,
            description=self.description,
            created_at=self.created_at,
        )


# ============================================================================
# Webhook Event Log
# ============================================================================


class WebhookEventModel(Base):
    """Payment webhook event log for deduplication and audit."""

    __tablename__ = "webhook_events"

    event_id = Column(String(255), primary_key=True)
    event_type = Column(String(100), nullable=False, index=True)
    payload_hash = Column(String(64), nullable=False)
    payload = Column(JSONB, nullable=False)
    received_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, default="received")
    error_message = Column(Text, nullable=True)
    correlation_id = Column(String(36), nullable=True, index=True)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "payload_hash": self.payload_hash,
            "received_at": self.received_at.isoformat() if self.received_at else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "status": self.status,
            "error_message": self.error_message,
            "correlation_id": self.correlation_id,
        }
