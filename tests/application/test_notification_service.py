"""Tests for customer notification emails."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from bakery_api.application.notification_service import (
    NotificationService,
    render_confirmation_email,
    render_ready_email,
    render_status_update_email,
)
from bakery_api.domain import (
    Address,
    CustomerProfile,
    FulfillmentType,
    OrderStatus,
)
from bakery_api.infrastructure.templates import env


@pytest.fixture
def email_client() -> AsyncMock:
    client = AsyncMock()
    client.send.return_value = True
    return client


@pytest.fixture
def service(store, email_client) -> NotificationService:
    return NotificationService(store=store, email_client=email_client)


# ============================================================================
# Template Tests
# ============================================================================


class TestTemplates:
    """Tests for the email renderers."""

    @pytest.mark.asyncio
    async def test_confirmation(self, store, make_order):
        order = await make_order()
        items = await store.get_order_items(order.id)

        subject, html = render_confirmation_email(order, items, "Ada")

        assert subject == f"Order Confirmation - Order #{order.order_number}"
        assert "Thank you, Ada!" in html
        assert "Classic Sourdough - Large" in html
        assert "$17.00" in html
        assert "Total: $18.36" in html
        assert "Pickup at Main Bakery on 2030-06-15 (09:00 - 11:00)" in html
        assert "Discount" not in html

    @pytest.mark.asyncio
    async def test_confirmation_shows_discount(self, store, make_order):
        order = await make_order(discount_amount=Decimal("2.00"))
        items = await store.get_order_items(order.id)

        _, html = render_confirmation_email(order, items, "Ada")

        assert "Discount: -$2.00" in html

    @pytest.mark.asyncio
    async def test_status_update(self, make_order):
        order = await make_order(status=OrderStatus.BAKING)

        subject, html = render_status_update_email(order, "Ada")

        assert subject == f"Order Update - Order #{order.order_number}"
        assert "<strong>Baking</strong>" in html
        assert "Estimated time: 2-4 hours" in html

    @pytest.mark.asyncio
    async def test_ready_for_delivery(self, store, make_order):
        order = await make_order(
            status=OrderStatus.READY,
            fulfillment_type=FulfillmentType.DELIVERY,
            delivery_address=Address(
                street="1 Market St", city="San Francisco", state="CA", zip="94103"
            ),
        )
        items = await store.get_order_items(order.id)

        subject, html = render_ready_email(order, items, "Ada")

        assert subject == f"Your Order is Ready! - Order #{order.order_number}"
        assert "out for delivery shortly" in html
        assert "Delivery to 1 Market St, San Francisco, CA 94103" in html
        assert "$" not in html

    @pytest.mark.asyncio
    async def test_names_are_escaped(self, store, make_order):
        order = await make_order()

        _, html = render_status_update_email(order, "<script>")

        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    @pytest.mark.asyncio
    async def test_order_fields_are_escaped(self, store, make_order):
        order = await make_order()
        order.pickup_location = "<b>Back door</b>"
        items = await store.get_order_items(order.id)
        items[0].product_name = "Rye & <i>Caraway</i>"

        _, html = render_confirmation_email(order, items, "Ada")

        assert "<i>" not in html
        assert "Rye &amp; &lt;i&gt;Caraway&lt;/i&gt;" in html
        assert "Pickup at &lt;b&gt;Back door&lt;/b&gt;" in html

    def test_html_templates_autoescape(self):
        assert env.autoescape("emails/order_confirmation.html") is True
        assert "emails/order_ready.html" in env.list_templates()


# ============================================================================
# Service Tests
# ============================================================================


class TestNotificationService:
    """Tests for recipient resolution and routing."""

    @pytest.mark.asyncio
    async def test_guest_confirmation(self, service, make_order, email_client):
        order = await make_order()

        sent = await service.send_order_confirmation(order)

        assert sent is True
        to, subject, _ = email_client.send.await_args.args
        assert to == "guest@example.com"
        assert subject.startswith("Order Confirmation")

    @pytest.mark.asyncio
    async def test_registered_customer_uses_profile_email(
        self, service, store, make_order, email_client
    ):
        store.add_customer_profile(
            CustomerProfile(id="user-1", email="ada@example.com", full_name="Ada Lovelace")
        )
        order = await make_order(user_id="user-1")

        await service.send_status_update(order)

        assert email_client.send.await_args.args[0] == "ada@example.com"

    @pytest.mark.asyncio
    async def test_no_recipient(self, service, make_order, email_client):
        order = await make_order(user_id="user-unknown")

        sent = await service.send_order_confirmation(order)

        assert sent is False
        email_client.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_failure_is_swallowed(self, service, make_order, email_client):
        email_client.send.side_effect = RuntimeError("smtp down")
        order = await make_order()

        assert await service.send_order_ready(order) is False

    @pytest.mark.asyncio
    async def test_ready_status_sends_ready_email(self, service, make_order, email_client):
        order = await make_order(status=OrderStatus.READY)

        await service.notify_status_change(order)

        assert email_client.send.await_args.args[1].startswith("Your Order is Ready!")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [OrderStatus.RECEIVED, OrderStatus.CONFIRMED])
    async def test_early_statuses_send_nothing(self, service, make_order, email_client, status):
        order = await make_order(status=status)

        assert await service.notify_status_change(order) is False
        email_client.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_other_statuses_send_update(self, service, make_order, email_client):
        order = await make_order(status=OrderStatus.CANCELLED)

        await service.notify_status_change(order)

        assert email_client.send.await_args.args[1].startswith("Order Update")
