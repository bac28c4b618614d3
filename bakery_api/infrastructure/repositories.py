"""Bakery data store.

``BakeryStore`` is the row-level interface the services use: order and item
writes, lookups, the counter operations for time slots, discount usage and
inventory, business settings, and loyalty balances. Two implementations:

- ``InMemoryBakeryStore``: process-local, used for tests and local runs.
- ``SqlAlchemyBakeryStore``: PostgreSQL through async SQLAlchemy sessions.
  Counter updates are single ``UPDATE ... SET x = x + n`` statements.

Every read returns a copy, so callers never mutate stored state by accident.
"""

import copy
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import delete, func, select, text, update

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
from bakery_api.infrastructure.config import settings
from bakery_api.infrastructure.database import session_scope
from bakery_api.infrastructure.models import (
    BusinessSettingModel,
    CustomerProfileModel,
    DeliveryZoneModel,
    DiscountCodeModel,
    LoyaltyPointsModel,
    LoyaltyTransactionModel,
    OrderItemModel,
    OrderModel,
    OrderStatusHistoryModel,
    ProductVariantModel,
    TimeSlotModel,
    WebhookEventModel,
    order_number_seq,
)

logger = structlog.get_logger()


def format_order_number(prefix: str, year: int, sequence: int) -> str:
    """Build a human-readable order number such as ``HS-2024-001``."""
    return f"{prefix}-{year}-{sequence:03d}"


def _column_value(value: Any) -> Any:
    """Convert a domain value to its column representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Address):
        return value.to_dict()
    return value


# ============================================================================
# Store Interface
# ============================================================================


class BakeryStore(ABC):
    """Row-level operations over the bakery tables."""

    # Catalog and scheduling

    @abstractmethod
    async def get_variants(self, variant_ids: list[str]) -> dict[str, ProductVariant]:
        """Fetch variants by id; missing ids are absent from the result."""

    @abstractmethod
    async def find_delivery_zone(self, zip_code: str) -> DeliveryZone | None:
        """Find the active delivery zone serving a ZIP code."""

    @abstractmethod
    async def find_time_slot(self, slot_date: date, window_start: str) -> TimeSlot | None:
        """Find an available time slot by date and window start."""

    @abstractmethod
    async def get_time_slot(self, slot_id: str) -> TimeSlot | None:
        """Get a time slot by id regardless of availability."""

    @abstractmethod
    async def increment_slot_orders(self, slot_id: str) -> None:
        """Add one order to a slot's counter."""

    @abstractmethod
    async def decrement_slot_orders(self, slot_id: str) -> None:
        """Remove one order from a slot's counter, never going below zero."""

    # Orders

    @abstractmethod
    async def create_order(self, order: Order) -> Order:
        """Insert an order and assign its order number."""

    @abstractmethod
    async def create_order_items(self, items: list[OrderItem]) -> None:
        """Insert the items of an order."""

    @abstractmethod
    async def delete_order_items(self, order_id: str) -> None:
        """Delete all items of an order."""

    @abstractmethod
    async def delete_order(self, order_id: str) -> None:
        """Delete an order (compensation for failed checkout only)."""

    @abstractmethod
    async def get_order(self, order_id: str) -> Order | None:
        """Get an order by id."""

    @abstractmethod
    async def get_order_by_payment_intent(self, payment_intent_id: str) -> Order | None:
        """Get an order by its payment intent id."""

    @abstractmethod
    async def get_order_by_number(self, order_number: str) -> Order | None:
        """Get an order by its human-readable number."""

    @abstractmethod
    async def update_order(self, order_id: str, **changes: Any) -> Order | None:
        """Apply field changes to an order.

        Returns:
            The updated order, or None if it does not exist.
        """

    @abstractmethod
    async def get_order_items(self, order_id: str) -> list[OrderItem]:
        """List the items of an order."""

    @abstractmethod
    async def add_status_history(self, entry: StatusHistoryEntry) -> None:
        """Append a status history row."""

    @abstractmethod
    async def list_status_history(self, order_id: str) -> list[StatusHistoryEntry]:
        """List status history rows for an order, oldest first."""

    # Discounts

    @abstractmethod
    async def find_discount_code(self, code: str) -> DiscountCode | None:
        """Find a discount code, case-insensitively."""

    @abstractmethod
    async def increment_discount_usage(self, discount_code_id: str) -> None:
        """Add one use to a discount code's counter."""

    # Inventory

    @abstractmethod
    async def deduct_inventory_for_order(self, order_id: str) -> bool:
        """Take an order's quantities out of tracked inventory.

        Returns:
            True if stock was deducted, False if already deducted.
        """

    @abstractmethod
    async def restore_inventory_for_order(self, order_id: str) -> bool:
        """Put back stock taken by ``deduct_inventory_for_order``.

        Returns:
            True if stock was restored, False if nothing was deducted.
        """

    # Customers and settings

    @abstractmethod
    async def get_customer_profile(self, user_id: str) -> CustomerProfile | None:
        """Get a registered customer's contact details."""

    @abstractmethod
    async def get_business_settings(self, keys: list[str]) -> dict[str, Any]:
        """Get business settings values for the given keys."""

    # Loyalty

    @abstractmethod
    async def get_loyalty_account(self, user_id: str) -> LoyaltyAccount | None:
        """Get a customer's loyalty balance, if they have one."""

    @abstractmethod
    async def redeem_loyalty_points(
        self, user_id: str, points: int, reward: DiscountCode
    ) -> LoyaltyAccount | None:
        """Spend points and issue the reward discount code in one step.

        The balance, the reward code and a negative ledger entry are
        written together or not at all.

        Returns:
            The updated account, or None if the balance is short.
        """

    @abstractmethod
    async def list_loyalty_transactions(self, user_id: str) -> list[LoyaltyTransaction]:
        """List a customer's loyalty ledger, oldest first."""

    @abstractmethod
    async def ping(self) -> bool:
        """Check the store is reachable."""


# ============================================================================
# In-Memory Store
# ============================================================================


class InMemoryBakeryStore(BakeryStore):
    """In-memory store.

    Holds copies of everything written to it. Seeding helpers
    (``add_variant`` etc.) populate catalog and scheduling data.
    """

    def __init__(self, order_number_prefix: str | None = None) -> None:
        self.order_number_prefix = order_number_prefix or settings.order_number_prefix
        self._orders: dict[str, Order] = {}
        self._items: dict[str, list[OrderItem]] = {}
        self._history: dict[str, list[StatusHistoryEntry]] = {}
        self._variants: dict[str, ProductVariant] = {}
        self._slots: dict[str, TimeSlot] = {}
        self._zones: dict[str, DeliveryZone] = {}
        self._discounts: dict[str, DiscountCode] = {}
        self._profiles: dict[str, CustomerProfile] = {}
        self._settings: dict[str, Any] = {}
        self._loyalty: dict[str, LoyaltyAccount] = {}
        self._loyalty_ledger: list[LoyaltyTransaction] = []
        self._sequence = 0

    # Seeding

    def add_variant(self, variant: ProductVariant) -> None:
        self._variants[variant.id] = copy.deepcopy(variant)

    def add_time_slot(self, slot: TimeSlot) -> None:
        self._slots[slot.id] = copy.deepcopy(slot)

    def add_delivery_zone(self, zone: DeliveryZone) -> None:
        self._zones[zone.id] = copy.deepcopy(zone)

    def add_discount_code(self, discount: DiscountCode) -> None:
        self._discounts[discount.id] = copy.deepcopy(discount)

    def add_customer_profile(self, profile: CustomerProfile) -> None:
        self._profiles[profile.id] = copy.deepcopy(profile)

    def set_business_setting(self, key: str, value: Any) -> None:
        self._settings[key] = copy.deepcopy(value)

    def add_loyalty_account(self, account: LoyaltyAccount) -> None:
        self._loyalty[account.user_id] = copy.deepcopy(account)

    def get_variant(self, variant_id: str) -> ProductVariant | None:
        variant = self._variants.get(variant_id)
        return copy.deepcopy(variant) if variant else None

    def get_discount_code(self, discount_code_id: str) -> DiscountCode | None:
        discount = self._discounts.get(discount_code_id)
        return copy.deepcopy(discount) if discount else None

    # Catalog and scheduling

    async def get_variants(self, variant_ids: list[str]) -> dict[str, ProductVariant]:
        return {
            vid: copy.deepcopy(self._variants[vid])
            for vid in variant_ids
            if vid in self._variants
        }

    async def find_delivery_zone(self, zip_code: str) -> DeliveryZone | None:
        for zone in self._zones.values():
            if zone.covers(zip_code):
                return copy.deepcopy(zone)
        return None

    async def find_time_slot(self, slot_date: date, window_start: str) -> TimeSlot | None:
        for slot in self._slots.values():
            if slot.date == slot_date and slot.window_start == window_start and slot.is_available:
                return copy.deepcopy(slot)
        return None

    async def get_time_slot(self, slot_id: str) -> TimeSlot | None:
        slot = self._slots.get(slot_id)
        return copy.deepcopy(slot) if slot else None

    async def increment_slot_orders(self, slot_id: str) -> None:
        slot = self._slots.get(slot_id)
        if slot:
            slot.current_orders += 1

    async def decrement_slot_orders(self, slot_id: str) -> None:
        slot = self._slots.get(slot_id)
        if slot:
            slot.current_orders = max(slot.current_orders - 1, 0)

    # Orders

    async def create_order(self, order: Order) -> Order:
        self._sequence += 1
        stored = copy.deepcopy(order)
        stored.order_number = format_order_number(
            self.order_number_prefix, stored.created_at.year, self._sequence
        )
        self._orders[stored.id] = stored
        self._items.setdefault(stored.id, [])
        self._history.setdefault(stored.id, [])
        return copy.deepcopy(stored)

    async def create_order_items(self, items: list[OrderItem]) -> None:
        for item in items:
            self._items.setdefault(item.order_id, []).append(copy.deepcopy(item))

    async def delete_order_items(self, order_id: str) -> None:
        self._items.pop(order_id, None)

    async def delete_order(self, order_id: str) -> None:
        self._orders.pop(order_id, None)
        self._items.pop(order_id, None)
        self._history.pop(order_id, None)

    async def get_order(self, order_id: str) -> Order | None:
        order = self._orders.get(order_id)
        return copy.deepcopy(order) if order else None

    async def get_order_by_payment_intent(self, payment_intent_id: str) -> Order | None:
        for order in self._orders.values():
            if order.stripe_payment_intent_id == payment_intent_id:
                return copy.deepcopy(order)
        return None

    async def get_order_by_number(self, order_number: str) -> Order | None:
        for order in self._orders.values():
            if order.order_number == order_number:
                return copy.deepcopy(order)
        return None

    async def update_order(self, order_id: str, **changes: Any) -> Order | None:
        order = self._orders.get(order_id)
        if order is None:
            return None
        for name, value in changes.items():
            if not hasattr(order, name):
                raise AttributeError(f"Order has no field '{name}'")
            setattr(order, name, value)
        order.updated_at = datetime.now(timezone.utc)
        return copy.deepcopy(order)

    async def get_order_items(self, order_id: str) -> list[OrderItem]:
        return copy.deepcopy(self._items.get(order_id, []))

    async def add_status_history(self, entry: StatusHistoryEntry) -> None:
        self._history.setdefault(entry.order_id, []).append(copy.deepcopy(entry))

    async def list_status_history(self, order_id: str) -> list[StatusHistoryEntry]:
        return copy.deepcopy(self._history.get(order_id, []))

    # Discounts

    async def find_discount_code(self, code: str) -> DiscountCode | None:
        wanted = code.strip().lower()
        for discount in self._discounts.values():
            if discount.code.lower() == wanted:
                return copy.deepcopy(discount)
        return None

    async def increment_discount_usage(self, discount_code_id: str) -> None:
        discount = self._discounts.get(discount_code_id)
        if discount:
            discount.current_uses += 1

    # Inventory

    async def deduct_inventory_for_order(self, order_id: str) -> bool:
        order = self._orders.get(order_id)
        if order is None or order.inventory_deducted:
            return False
        self._adjust_inventory(order_id, sign=-1)
        order.inventory_deducted = True
        return True

    async def restore_inventory_for_order(self, order_id: str) -> bool:
        order = self._orders.get(order_id)
        if order is None or not order.inventory_deducted:
            return False
        self._adjust_inventory(order_id, sign=1)
        order.inventory_deducted = False
        return True

    def _adjust_inventory(self, order_id: str, sign: int) -> None:
        for item in self._items.get(order_id, []):
            variant = self._variants.get(item.product_variant_id)
            if variant and variant.track_inventory and variant.inventory_count is not None:
                variant.inventory_count = max(variant.inventory_count + sign * item.quantity, 0)

    # Customers and settings

    async def get_customer_profile(self, user_id: str) -> CustomerProfile | None:
        profile = self._profiles.get(user_id)
        return copy.deepcopy(profile) if profile else None

    async def get_business_settings(self, keys: list[str]) -> dict[str, Any]:
        return {k: copy.deepcopy(self._settings[k]) for k in keys if k in self._settings}

    # Loyalty

    async def get_loyalty_account(self, user_id: str) -> LoyaltyAccount | None:
        account = self._loyalty.get(user_id)
        return copy.deepcopy(account) if account else None

    async def redeem_loyalty_points(
        self, user_id: str, points: int, reward: DiscountCode
    ) -> LoyaltyAccount | None:
        account = self._loyalty.get(user_id)
        if account is None or account.points < points:
            return None
        account.points -= points
        account.updated_at = datetime.now(timezone.utc)
        self._discounts[reward.id] = copy.deepcopy(reward)
        self._loyalty_ledger.append(
            LoyaltyTransaction(
                user_id=user_id,
                points=-points,
                description=f"Redeemed for discount code {reward.code}",
            )
        )
        return copy.deepcopy(account)

    async def list_loyalty_transactions(self, user_id: str) -> list[LoyaltyTransaction]:
        return [copy.deepcopy(t) for t in self._loyalty_ledger if t.user_id == user_id]

    async def ping(self) -> bool:
        return True


# ============================================================================
# SQLAlchemy Store
# ============================================================================


class SqlAlchemyBakeryStore(BakeryStore):
    """PostgreSQL-backed store using async SQLAlchemy sessions.

    Each method runs in its own session and commits on success.
    """

    def __init__(self, order_number_prefix: str | None = None) -> None:
        self.order_number_prefix = order_number_prefix or settings.order_number_prefix

    # Catalog and scheduling

    async def get_variants(self, variant_ids: list[str]) -> dict[str, ProductVariant]:
        if not variant_ids:
            return {}
        async with session_scope() as session:
            result = await session.scalars(
                select(ProductVariantModel).where(ProductVariantModel.id.in_(variant_ids))
            )
            return {row.id: row.to_entity() for row in result}

    async def find_delivery_zone(self, zip_code: str) -> DeliveryZone | None:
        async with session_scope() as session:
            row = await session.scalar(
                select(DeliveryZoneModel)
                .where(DeliveryZoneModel.zip_codes.contains([zip_code.strip()]))
                .where(DeliveryZoneModel.is_active.is_(True))
                .limit(1)
            )
            return row.to_entity() if row else None

    async def find_time_slot(self, slot_date: date, window_start: str) -> TimeSlot | None:
        async with session_scope() as session:
            row = await session.scalar(
                select(TimeSlotModel)
                .where(TimeSlotModel.date == slot_date)
                .where(TimeSlotModel.window_start == window_start)
                .where(TimeSlotModel.is_available.is_(True))
            )
            return row.to_entity() if row else None

    async def get_time_slot(self, slot_id: str) -> TimeSlot | None:
        async with session_scope() as session:
            row = await session.get(TimeSlotModel, slot_id)
            return row.to_entity() if row else None

    async def increment_slot_orders(self, slot_id: str) -> None:
        async with session_scope() as session:
            await session.execute(
                update(TimeSlotModel)
                .where(TimeSlotModel.id == slot_id)
                .values(current_orders=TimeSlotModel.current_orders + 1)
            )

    async def decrement_slot_orders(self, slot_id: str) -> None:
        async with session_scope() as session:
            await session.execute(
                update(TimeSlotModel)
                .where(TimeSlotModel.id == slot_id)
                .values(current_orders=func.greatest(TimeSlotModel.current_orders - 1, 0))
            )

    # Orders

    async def create_order(self, order: Order) -> Order:
        async with session_scope() as session:
            sequence = await session.scalar(select(order_number_seq.next_value()))
            row = OrderModel.from_entity(order)
            row.order_number = format_order_number(
                self.order_number_prefix, order.created_at.year, sequence
            )
            session.add(row)
            await session.flush()
            return row.to_entity()

    async def create_order_items(self, items: list[OrderItem]) -> None:
        async with session_scope() as session:
            session.add_all([OrderItemModel.from_entity(item) for item in items])

    async def delete_order_items(self, order_id: str) -> None:
        async with session_scope() as session:
            await session.execute(delete(OrderItemModel).where(OrderItemModel.order_id == order_id))

    async def delete_order(self, order_id: str) -> None:
        async with session_scope() as session:
            await session.execute(delete(OrderModel).where(OrderModel.id == order_id))

    async def get_order(self, order_id: str) -> Order | None:
        async with session_scope() as session:
            row = await session.get(OrderModel, order_id)
            return row.to_entity() if row else None

    async def get_order_by_payment_intent(self, payment_intent_id: str) -> Order | None:
        async with session_scope() as session:
            row = await session.scalar(
                select(OrderModel)
                .where(OrderModel.stripe_payment_intent_id == payment_intent_id)
                .limit(1)
            )
            return row.to_entity() if row else None

    async def get_order_by_number(self, order_number: str) -> Order | None:
        async with session_scope() as session:
            row = await session.scalar(
                select(OrderModel).where(OrderModel.order_number == order_number)
            )
            return row.to_entity() if row else None

    async def update_order(self, order_id: str, **changes: Any) -> Order | None:
        async with session_scope() as session:
            row = await session.get(OrderModel, order_id)
            if row is None:
                return None
            for name, value in changes.items():
                if not hasattr(row, name):
                    raise AttributeError(f"Order has no field '{name}'")
                setattr(row, name, _column_value(value))
            await session.flush()
            return row.to_entity()

    async def get_order_items(self, order_id: str) -> list[OrderItem]:
        async with session_scope() as session:
            result = await session.scalars(
                select(OrderItemModel)
                .where(OrderItemModel.order_id == order_id)
                .order_by(OrderItemModel.created_at)
            )
            return [row.to_entity() for row in result]

    async def add_status_history(self, entry: StatusHistoryEntry) -> None:
        async with session_scope() as session:
            session.add(
                OrderStatusHistoryModel(
                    id=entry.id,
                    order_id=entry.order_id,
                    status=entry.status.value,
                    notes=entry.notes,
                    changed_by=entry.changed_by,
                    created_at=entry.created_at,
                )
            )

    async def list_status_history(self, order_id: str) -> list[StatusHistoryEntry]:
        async with session_scope() as session:
            result = await session.scalars(
                select(OrderStatusHistoryModel)
                .where(OrderStatusHistoryModel.order_id == order_id)
                .order_by(OrderStatusHistoryModel.created_at)
            )
            return [row.to_entity() for row in result]

    # Discounts

    async def find_discount_code(self, code: str) -> DiscountCode | None:
        async with session_scope() as session:
            row = await session.scalar(
                select(DiscountCodeModel).where(
                    func.lower(DiscountCodeModel.code) == code.strip().lower()
                )
            )
            return row.to_entity() if row else None

    async def increment_discount_usage(self, discount_code_id: str) -> None:
        async with session_scope() as session:
            await session.execute(
                update(DiscountCodeModel)
                .where(DiscountCodeModel.id == discount_code_id)
                .values(current_uses=DiscountCodeModel.current_uses + 1)
            )

    # Inventory

    async def deduct_inventory_for_order(self, order_id: str) -> bool:
        return await self._adjust_inventory(order_id, deduct=True)

    async def restore_inventory_for_order(self, order_id: str) -> bool:
        return await self._adjust_inventory(order_id, deduct=False)

    async def _adjust_inventory(self, order_id: str, deduct: bool) -> bool:
        async with session_scope() as session:
            # Lock the order row so concurrent calls cannot both adjust stock
            order = await session.scalar(
                select(OrderModel).where(OrderModel.id == order_id).with_for_update()
            )
            if order is None or bool(order.inventory_deducted) == deduct:
                return False

            items = await session.scalars(
                select(OrderItemModel).where(OrderItemModel.order_id == order_id)
            )
            for item in items:
                delta = -item.quantity if deduct else item.quantity
                await session.execute(
                    update(ProductVariantModel)
                    .where(ProductVariantModel.id == item.product_variant_id)
                    .where(ProductVariantModel.track_inventory.is_(True))
                    .where(ProductVariantModel.inventory_count.is_not(None))
                    .values(
                        inventory_count=func.greatest(
                            ProductVariantModel.inventory_count + delta, 0
                        )
                    )
                )
            order.inventory_deducted = deduct
            return True

    # Customers and settings

    async def get_customer_profile(self, user_id: str) -> CustomerProfile | None:
        async with session_scope() as session:
            row = await session.get(CustomerProfileModel, user_id)
            if row is None:
                return None
            return CustomerProfile(id=row.id, email=row.email, full_name=row.full_name)

    async def get_business_settings(self, keys: list[str]) -> dict[str, Any]:
        async with session_scope() as session:
            result = await session.scalars(
                select(BusinessSettingModel).where(BusinessSettingModel.key.in_(keys))
            )
            return {row.key: row.value for row in result}

    # Loyalty

    async def get_loyalty_account(self, user_id: str) -> LoyaltyAccount | None:
        async with session_scope() as session:
            row = await session.scalar(
                select(LoyaltyPointsModel).where(LoyaltyPointsModel.user_id == user_id)
            )
            return row.to_entity() if row else None

    async def redeem_loyalty_points(
        self, user_id: str, points: int, reward: DiscountCode
    ) -> LoyaltyAccount | None:
        async with session_scope() as session:
            row = await session.scalar(
                update(LoyaltyPointsModel)
                .where(LoyaltyPointsModel.user_id == user_id)
                .where(LoyaltyPointsModel.points >= points)
                .values(
                    points=LoyaltyPointsModel.points - points,
                    updated_at=datetime.now(timezone.utc),
                )
                .returning(LoyaltyPointsModel)
            )
            if row is None:
                return None
            session.add(
                DiscountCodeModel(
                    id=reward.id,
                    code=reward.code,
                    discount_type=reward.discount_type.value,
                    value=reward.value,
                    min_order_amount=reward.min_order_amount,
                    max_uses=reward.max_uses,
                    current_uses=reward.current_uses,
                    valid_from=reward.valid_from,
                    valid_until=reward.valid_until,
                    is_active=reward.is_active,
                )
            )
            session.add(
                LoyaltyTransactionModel(
                    user_id=user_id,
                    points=-points,
                    description=f"Redeemed for discount code {reward.code}",
                )
            )
            return row.to_entity()

    async def list_loyalty_transactions(self, user_id: str) -> list[LoyaltyTransaction]:
        async with session_scope() as session:
            result = await session.scalars(
                select(LoyaltyTransactionModel)
                .where(LoyaltyTransactionModel.user_id == user_id)
                .order_by(LoyaltyTransactionModel.created_at)
            )
            return [row.to_entity() for row in result]

    async def ping(self) -> bool:
        async with session_scope() as session:
            await session.execute(text("SELECT 1"))
        return True


# ============================================================================
# Webhook Event Log (database)
# ============================================================================


class SqlAlchemyEventLog:
    """Webhook event log persisted in the ``webhook_events`` table.

    Same interface as the in-memory event log used by the webhook service.
    """

    async def get(self, event_id: str) -> dict[str, Any] | None:
        async with session_scope() as session:
            row = await session.get(WebhookEventModel, event_id)
            return row.to_dict() if row else None

    async def store(
        self,
        event_id: str,
        event_type: str,
        payload_hash: str,
        payload: dict[str, Any],
        status: str,
        correlation_id: str | None = None,
    ) -> None:
        async with session_scope() as session:
            row = await session.get(WebhookEventModel, event_id)
            if row is None:
                row = WebhookEventModel(event_id=event_id)
                session.add(row)
            row.event_type = event_type
            row.payload_hash = payload_hash
            row.payload = payload
            row.status = status
            row.error_message = None
            row.correlation_id = correlation_id
            row.received_at = datetime.now(timezone.utc)

    async def update_status(
        self,
        event_id: str,
        status: str,
        error_message: str | None = None,
    ) -> None:
        async with session_scope() as session:
            row = await session.get(WebhookEventModel, event_id)
            if row is None:
                return
            row.status = status
            if status == "processed":
                row.processed_at = datetime.now(timezone.utc)
            if error_message:
                row.error_message = error_message


# ============================================================================
# Store Selection
# ============================================================================


_store: BakeryStore | None = None


def create_store(backend: str | None = None) -> BakeryStore:
    """Create a store for the configured backend.

    Args:
        backend: ``memory`` or ``database``; defaults to settings.

    Returns:
        BakeryStore instance.
    """
    backend = backend or settings.store_backend
    if backend == "database":
        return SqlAlchemyBakeryStore()
    if backend != "memory":
        logger.warning("Unknown store backend, using memory", backend=backend)
    return InMemoryBakeryStore()


def get_store() -> BakeryStore:
    """Get the store singleton."""
    global _store
    if _store is None:
        _store = create_store()
    return _store


def reset_store() -> InMemoryBakeryStore:
    """Replace the store with a fresh in-memory store (for testing)."""
    global _store
    store = InMemoryBakeryStore()
    _store = store
    return store
