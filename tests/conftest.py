"""Shared fixtures for all tests."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from bakery_api.application.business_settings import reset_business_settings_service
from bakery_api.application.webhook_service import reset_webhook_service
from bakery_api.domain import (
    DeliveryZone,
    DiscountCode,
    DiscountType,
    FulfillmentType,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    ProductVariant,
    TimeSlot,
)
from bakery_api.infrastructure.rate_limiter import reset_rate_limiter
from bakery_api.infrastructure.repositories import InMemoryBakeryStore, reset_store

DELIVERY_DATE = date(2030, 6, 15)
DELIVERY_WINDOW = "09:00 - 11:00"
# Two days before the delivery window opens
NOW = datetime(2030, 6, 13, 9, 0)


@pytest.fixture(autouse=True)
def store() -> InMemoryBakeryStore:
    """Fresh in-memory store, installed as the global store."""
    reset_webhook_service()
    reset_rate_limiter()
    reset_business_settings_service()
    return reset_store()


@pytest.fixture
def loaf() -> ProductVariant:
    """A sourdough loaf variant priced at 8.50."""
    return ProductVariant(
        id="variant-loaf",
        product_id="product-loaf",
        product_name="Classic Sourdough",
        variant_name="Large",
        base_price=Decimal("8.00"),
        price_adjustment=Decimal("0.50"),
    )


@pytest.fixture
def slot() -> TimeSlot:
    """Morning slot with room for two orders."""
    return TimeSlot(
        id="slot-morning",
        date=DELIVERY_DATE,
        window_start="09:00",
        window_end="11:00",
        max_orders=2,
    )


@pytest.fixture
def zone() -> DeliveryZone:
    """Downtown delivery zone."""
    return DeliveryZone(
        id="zone-downtown",
        name="Downtown",
        zip_codes=["94102", "94103"],
        delivery_fee=Decimal("5.00"),
    )


@pytest.fixture
def seeded_store(
    store: InMemoryBakeryStore,
    loaf: ProductVariant,
    slot: TimeSlot,
    zone: DeliveryZone,
) -> InMemoryBakeryStore:
    """Store with the loaf, the morning slot and the downtown zone."""
    store.add_variant(loaf)
    store.add_time_slot(slot)
    store.add_delivery_zone(zone)
    store.add_discount_code(
        DiscountCode(
            id="discount-welcome",
            code="WELCOME10",
            discount_type=DiscountType.PERCENTAGE,
            value=Decimal("10"),
        )
    )
    return store


@pytest.fixture
def make_order(store: InMemoryBakeryStore):
    """Factory that stores an order with one loaf line and returns it."""

    async def _make_order(
        status: OrderStatus = OrderStatus.RECEIVED,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        fulfillment_type: FulfillmentType = FulfillmentType.PICKUP,
        guest_email: str | None = "guest@example.com",
        user_id: str | None = None,
        time_slot_id: str | None = None,
        **fields,
    ) -> Order:
        order = await store.create_order(
            Order(
                fulfillment_type=fulfillment_type,
                subtotal=Decimal("17.00"),
                tax_amount=Decimal("1.36"),
                total=Decimal("18.36"),
                status=status,
                payment_status=payment_status,
                guest_email=None if user_id else guest_email,
                user_id=user_id,
                customer_name="Ada Baker",
                delivery_date=DELIVERY_DATE,
                delivery_window=DELIVERY_WINDOW,
                time_slot_id=time_slot_id,
                pickup_location="Main Bakery" if fulfillment_type == FulfillmentType.PICKUP else None,
                **fields,
            )
        )
        await store.create_order_items(
            [
                OrderItem(
                    order_id=order.id,
                    product_id="product-loaf",
                    product_variant_id="variant-loaf",
                    product_name="Classic Sourdough",
                    variant_name="Large",
                    quantity=2,
                    unit_price=Decimal("8.50"),
                )
            ]
        )
        return order

    return _make_order


@pytest.fixture
def clock():
    """Clock pinned two days before the delivery window opens."""
    return lambda: NOW


@pytest.fixture
def hours_before_window():
    """Build a clock the given number of hours before the window opens."""

    def _clock(hours: float):
        moment = datetime.combine(DELIVERY_DATE, datetime.min.time()) + timedelta(hours=9 - hours)
        return lambda: moment

    return _clock
