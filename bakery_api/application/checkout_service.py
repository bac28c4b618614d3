"""Checkout application service.

Turns a customer's cart into a pending order and a hosted payment session:

1. Validate the request and re-validate every cart line against the
   current catalog (availability, stock, lead time, quantity limits, price)
2. Compute totals server-side
3. Resolve the delivery zone and time slot
4. Write the order, its items and the slot reservation, compensating
   earlier writes when a later one fails
5. Create the payment session and return its redirect URL
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

import structlog

from bakery_api.application.business_settings import (
    BusinessSettingsService,
    get_business_settings_service,
)
from bakery_api.domain.entities import Address, Order, OrderItem, ProductVariant
from bakery_api.domain.exceptions import PaymentProviderError
from bakery_api.domain.state_machines import FulfillmentType, OrderStatus, PaymentStatus
from bakery_api.domain.value_objects import ZERO, DeliveryWindow, to_cents, to_money
from bakery_api.infrastructure.config import settings
from bakery_api.infrastructure.payment_client import (
    PaymentClient,
    PaymentLineItem,
    get_payment_client,
)
from bakery_api.infrastructure.repositories import BakeryStore, get_store

logger = structlog.get_logger()

PRICE_TOLERANCE = Decimal("0.01")


# ============================================================================
# Checkout Data Transfer Objects
# ============================================================================


@dataclass
class CartItemInput:
    """A cart line as submitted by the client.

    ``unit_price`` is the price the client displayed; it is only compared
    against the catalog, never charged.
    """

    variant_id: str
    product_id: str
    product_name: str
    variant_name: str
    quantity: int
    unit_price: Decimal
    image_url: str | None = None


@dataclass
class CheckoutRequest:
    """Checkout form submission."""

    items: list[CartItemInput]
    email: str | None
    full_name: str | None
    phone: str | None
    fulfillment_type: FulfillmentType
    delivery_date: date | None
    delivery_window: str | None
    delivery_address: Address | None = None
    delivery_instructions: str | None = None
    delivery_fee: Decimal = ZERO
    discount_code_id: str | None = None
    discount_amount: Decimal = ZERO
    user_id: str | None = None


@dataclass
class CheckoutTotals:
    """Server-computed order amounts."""

    subtotal: Decimal
    delivery_fee: Decimal
    tax_amount: Decimal
    discount_amount: Decimal

    @property
    def total(self) -> Decimal:
        return to_money(self.subtotal + self.delivery_fee + self.tax_amount - self.discount_amount)


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class CheckoutResult:
    """Result of a checkout attempt."""

    session_url: str | None = None
    order_id: str | None = None
    order_number: str | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


def _failure(error_code: str, error: str, **details: Any) -> CheckoutResult:
    return CheckoutResult(success=False, error=error, error_code=error_code, details=details)


# ============================================================================
# Checkout Service
# ============================================================================


class CheckoutService:
    """Application service for checkout."""

    def __init__(
        self,
        store: BakeryStore | None = None,
        payment_client: PaymentClient | None = None,
        business_settings: BusinessSettingsService | None = None,
        now: Callable[[], datetime] = datetime.now,
        app_url: str | None = None,
    ) -> None:
        """Initialize checkout service.

        Args:
            store: Data store; defaults to the global store.
            payment_client: Payment provider client.
            business_settings: Source of the tax rate.
            now: Clock for lead-time checks, in the bakery's local time.
            app_url: Storefront base URL for payment redirects.
        """
        self._store = store
        self._payment_client = payment_client
        self._business_settings = business_settings
        self._now = now
        self.app_url = (app_url or settings.app_url).rstrip("/")

    @property
    def store(self) -> BakeryStore:
        return self._store or get_store()

    @property
    def payment_client(self) -> PaymentClient:
        return self._payment_client or get_payment_client()

    @property
    def business_settings(self) -> BusinessSettingsService:
        return self._business_settings or get_business_settings_service()

    async def checkout(self, request: CheckoutRequest) -> CheckoutResult:
        """Create an order and a payment session from a cart.

        Args:
            request: Checkout form submission.

        Returns:
            CheckoutResult with the payment redirect URL, or the error.
        """
        failure = self.validate_request(request)
        if failure:
            return failure

        variants = await self.store.get_variants([item.variant_id for item in request.items])
        failure = self.validate_cart(request, variants)
        if failure:
            return failure

        delivery_zone_id = None
        if request.fulfillment_type == FulfillmentType.DELIVERY and request.delivery_address:
            zone = await self.store.find_delivery_zone(request.delivery_address.zip)
            if zone:
                delivery_zone_id = zone.id
            else:
                logger.info("No delivery zone for ZIP", zip_code=request.delivery_address.zip)

        totals = await self.compute_totals(request, variants, delivery_zone_id)

        window = DeliveryWindow.parse(request.delivery_window)
        slot = await self.store.find_time_slot(request.delivery_date, window.start)
        time_slot_id = None
        if slot is None:
            logger.warning(
                "Time slot not found",
                delivery_date=request.delivery_date.isoformat(),
                window_start=window.start,
            )
        elif slot.is_full:
            return _failure(
                "SLOT_FULL", "Selected time slot is full. Please choose another time."
            )
        else:
            time_slot_id = slot.id

        order = self._build_order(request, totals, delivery_zone_id, time_slot_id)

        try:
            order = await self.store.create_order(order)
        except Exception as e:
            logger.error("Failed to create order", step="create_order", error=str(e))
            return _failure("ORDER_CREATE_FAILED", "Failed to create order")

        items = [
            OrderItem(
                order_id=order.id,
                product_id=item.product_id,
                product_variant_id=item.variant_id,
                product_name=item.product_name,
                variant_name=item.variant_name,
                quantity=item.quantity,
                unit_price=to_money(variants[item.variant_id].unit_price),
            )
            for item in request.items
        ]

        try:
            await self.store.create_order_items(items)
        except Exception as e:
            logger.error(
                "Failed to create order items",
                step="create_order_items",
                order_id=order.id,
                item_count=len(items),
                error=str(e),
            )
            await self._rollback(order.id, release_slot_id=None)
            return _failure("ORDER_ITEMS_FAILED", "Failed to create order items")

        if time_slot_id:
            try:
                await self.store.increment_slot_orders(time_slot_id)
            except Exception as e:
                logger.error(
                    "Failed to reserve time slot",
                    step="reserve_slot",
                    order_id=order.id,
                    time_slot_id=time_slot_id,
                    error=str(e),
                )
                await self._rollback(order.id, release_slot_id=None)
                return _failure(
                    "SLOT_RESERVE_FAILED", "Failed to reserve time slot. Please try again."
                )

        try:
            session = await self.payment_client.create_checkout_session(
                order_id=order.id,
                line_items=self.build_line_items(request, variants, totals),
                customer_email=request.email,
                success_url=(
                    f"{self.app_url}/checkout/success"
                    f"?session_id={{CHECKOUT_SESSION_ID}}&order_id={order.id}"
                ),
                cancel_url=f"{self.app_url}/checkout?cancelled=true",
            )
        except PaymentProviderError as e:
            logger.error(
                "Failed to create payment session",
                step="payment_session",
                order_id=order.id,
                error=e.message,
            )
            await self._rollback(order.id, release_slot_id=time_slot_id)
            return _failure(
                "PAYMENT_SESSION_FAILED", "Failed to create payment session. Please try again."
            )

        try:
            await self.store.update_order(order.id, stripe_checkout_session_id=session.id)
        except Exception as e:
            logger.warning(
                "Failed to store checkout session id",
                step="save_session_id",
                order_id=order.id,
                session_id=session.id,
                error=str(e),
            )

        logger.info(
            "Checkout created",
            order_id=order.id,
            order_number=order.order_number,
            total=str(totals.total),
            guest=order.is_guest_order,
        )

        return CheckoutResult(
            session_url=session.url,
            order_id=order.id,
            order_number=order.order_number,
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_request(self, request: CheckoutRequest) -> CheckoutResult | None:
        """Check the cart and form fields are present.

        Returns:
            A failed CheckoutResult, or None when the request is complete.
        """
        if not request.items:
            return _failure("EMPTY_CART", "Cart is empty")

        if not (
            request.email
            and request.full_name
            and request.phone
            and request.delivery_date
            and request.delivery_window
        ):
            return _failure("MISSING_FIELDS", "Missing required fields")

        if request.fulfillment_type == FulfillmentType.DELIVERY:
            address = request.delivery_address
            if not (address and address.street and address.city and address.state and address.zip):
                return _failure("ADDRESS_REQUIRED", "Delivery address is required")

        return None

    def validate_cart(
        self,
        request: CheckoutRequest,
        variants: dict[str, ProductVariant],
    ) -> CheckoutResult | None:
        """Re-validate cart lines against the catalog.

        Problems are collected for every line, then reported by category
        in a fixed order: unavailable, stock, lead time, quantity limit,
        price. Any problem rejects the whole cart.

        Args:
            request: Checkout submission.
            variants: Current catalog records keyed by variant id.

        Returns:
            A failed CheckoutResult, or None when every line is valid.
        """
        unavailable: list[str] = []
        insufficient_stock: list[str] = []
        lead_time: list[str] = []
        quantity_limit: list[str] = []
        price_mismatch: list[str] = []

        hours_until_delivery = self._hours_until(request.delivery_date, request.delivery_window)

        for item in request.items:
            variant = variants.get(item.variant_id)
            if variant is None or not variant.purchasable:
                unavailable.append(item.product_name)
                continue

            if (
                variant.track_inventory
                and variant.inventory_count is not None
                and variant.inventory_count < item.quantity
            ):
                insufficient_stock.append(
                    f"{item.product_name} (only {variant.inventory_count} available)"
                )

            if hours_until_delivery < variant.lead_time_hours:
                lead_time.append(f"{item.product_name} requires {variant.lead_time_hours}h notice")

            if variant.max_per_order is not None and item.quantity > variant.max_per_order:
                quantity_limit.append(f"{item.product_name} (max {variant.max_per_order} per order)")

            if abs(variant.unit_price - to_money(item.unit_price)) > PRICE_TOLERANCE:
                logger.warning(
                    "Price mismatch",
                    product_name=item.product_name,
                    client_price=str(item.unit_price),
                    server_price=str(variant.unit_price),
                )
                price_mismatch.append(item.product_name)

        if unavailable:
            return _failure(
                "ITEMS_UNAVAILABLE",
                f"The following items are no longer available: {', '.join(unavailable)}",
                items=unavailable,
            )
        if insufficient_stock:
            return _failure(
                "INSUFFICIENT_STOCK",
                f"Insufficient stock: {', '.join(insufficient_stock)}",
            )
        if lead_time:
            return _failure(
                "LEAD_TIME_VIOLATION",
                f"Not enough preparation time: {', '.join(lead_time)}. "
                "Please select a later delivery time.",
            )
        if quantity_limit:
            return _failure(
                "QUANTITY_LIMIT_EXCEEDED",
                f"Quantity limit exceeded: {', '.join(quantity_limit)}",
            )
        if price_mismatch:
            return _failure(
                "PRICE_MISMATCH",
                "Price verification failed. Please refresh your cart and try again.",
                items=price_mismatch,
            )
        return None

    def _hours_until(self, delivery_date: date, delivery_window: str) -> float:
        window = DeliveryWindow.parse(delivery_window)
        try:
            start = time.fromisoformat(window.start)
        except ValueError:
            start = time(0, 0)
        delivery_at = datetime.combine(delivery_date, start)
        return (delivery_at - self._now()).total_seconds() / 3600

    # ------------------------------------------------------------------
    # Totals and payment lines
    # ------------------------------------------------------------------

    async def compute_totals(
        self,
        request: CheckoutRequest,
        variants: dict[str, ProductVariant],
        delivery_zone_id: str | None,
    ) -> CheckoutTotals:
        """Compute order amounts from catalog prices.

        The client's subtotal is ignored; the delivery fee and discount
        amount come from the request.
        """
        subtotal = to_money(
            sum(
                (variants[item.variant_id].unit_price * item.quantity for item in request.items),
                ZERO,
            )
        )
        tax_amount = await self.business_settings.calculate_tax(subtotal, delivery_zone_id)
        return CheckoutTotals(
            subtotal=subtotal,
            delivery_fee=to_money(request.delivery_fee),
            tax_amount=tax_amount,
            discount_amount=to_money(request.discount_amount),
        )

    def build_line_items(
        self,
        request: CheckoutRequest,
        variants: dict[str, ProductVariant],
        totals: CheckoutTotals,
    ) -> list[PaymentLineItem]:
        """Payment page lines: one per cart item, then delivery fee and tax."""
        line_items = [
            PaymentLineItem(
                name=f"{item.product_name} - {item.variant_name}",
                description=item.product_name,
                unit_amount_cents=to_cents(variants[item.variant_id].unit_price),
                quantity=item.quantity,
                images=[url] if (url := self._absolute_url(item.image_url)) else [],
            )
            for item in request.items
        ]

        if totals.delivery_fee > 0:
            address = request.delivery_address
            description = f"Delivery to {address.city}, {address.state}" if address else None
            line_items.append(
                PaymentLineItem(
                    name="Delivery Fee",
                    description=description,
                    unit_amount_cents=to_cents(totals.delivery_fee),
                )
            )

        if totals.tax_amount > 0:
            line_items.append(
                PaymentLineItem(
                    name="Sales Tax",
                    description="Sales tax",
                    unit_amount_cents=to_cents(totals.tax_amount),
                )
            )

        return line_items

    def _absolute_url(self, url: str | None) -> str | None:
        if not url:
            return None
        if url.startswith(("http://", "https://")):
            return url
        return f"{self.app_url}{'' if url.startswith('/') else '/'}{url}"

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def _build_order(
        self,
        request: CheckoutRequest,
        totals: CheckoutTotals,
        delivery_zone_id: str | None,
        time_slot_id: str | None,
    ) -> Order:
        is_guest = request.user_id is None
        is_pickup = request.fulfillment_type == FulfillmentType.PICKUP
        return Order(
            user_id=request.user_id,
            guest_email=request.email if is_guest else None,
            guest_phone=request.phone if is_guest else None,
            customer_name=request.full_name,
            status=OrderStatus.RECEIVED,
            payment_status=PaymentStatus.PENDING,
            fulfillment_type=request.fulfillment_type,
            delivery_date=request.delivery_date,
            delivery_window=request.delivery_window,
            time_slot_id=time_slot_id,
            delivery_zone_id=delivery_zone_id,
            delivery_address=request.delivery_address if not is_pickup else None,
            pickup_location=settings.pickup_location if is_pickup else None,
            subtotal=totals.subtotal,
            delivery_fee=totals.delivery_fee,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            discount_code_id=request.discount_code_id or None,
            total=totals.total,
            notes=request.delivery_instructions or None,
        )

    async def _rollback(self, order_id: str, release_slot_id: str | None) -> None:
        """Undo checkout writes; each step is attempted independently."""
        if release_slot_id:
            try:
                await self.store.decrement_slot_orders(release_slot_id)
            except Exception as e:
                logger.warning(
                    "Rollback step failed", step="release_slot", order_id=order_id, error=str(e)
                )
        try:
            await self.store.delete_order_items(order_id)
        except Exception as e:
            logger.warning(
                "Rollback step failed", step="delete_order_items", order_id=order_id, error=str(e)
            )
        try:
            await self.store.delete_order(order_id)
        except Exception as e:
            logger.warning(
                "Rollback step failed", step="delete_order", order_id=order_id, error=str(e)
            )


# Global service instance
_checkout_service: CheckoutService | None = None


def get_checkout_service() -> CheckoutService:
    """Get or create the checkout service instance.

    Returns:
        CheckoutService instance.
    """
    global _checkout_service
    if _checkout_service is None:
        _checkout_service = CheckoutService()
    return _checkout_service
