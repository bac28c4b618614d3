"""Customer notification service.

Builds and sends order emails: confirmation after payment, status updates
from the back-office, and the "order ready" message. Notifications never
fail the operation that triggered them; every error is logged and the
send reports False.
"""

import structlog

from bakery_api.domain.entities import Order, OrderItem
from bakery_api.domain.state_machines import FulfillmentType, OrderStatus
from bakery_api.infrastructure.email_client import EmailClient, get_email_client
from bakery_api.infrastructure.repositories import BakeryStore, get_store
from bakery_api.infrastructure.templates import render_template

logger = structlog.get_logger()


# ============================================================================
# Templates
# ============================================================================


def _fulfillment_place(order: Order) -> str:
    if order.fulfillment_type == FulfillmentType.PICKUP:
        return f"Pickup at {order.pickup_location or 'the bakery'}"
    if order.delivery_address:
        address = order.delivery_address
        return f"Delivery to {address.street}, {address.city}, {address.state} {address.zip}"
    return "Delivery"


def render_confirmation_email(order: Order, items: list[OrderItem], name: str) -> tuple[str, str]:
    """Subject and HTML for the order confirmation email."""
    subject = f"Order Confirmation - Order #{order.order_number}"
    html = render_template(
        "emails/order_confirmation.html",
        order=order,
        items=items,
        name=name,
        with_prices=True,
        where=_fulfillment_place(order),
    )
    return subject, html


def render_status_update_email(order: Order, name: str) -> tuple[str, str]:
    """Subject and HTML for a status change email."""
    subject = f"Order Update - Order #{order.order_number}"
    html = render_template(
        "emails/status_update.html",
        order=order,
        name=name,
        display=order.status.display,
    )
    return subject, html


def render_ready_email(order: Order, items: list[OrderItem], name: str) -> tuple[str, str]:
    """Subject and HTML for the order ready email.

    Lists items without prices.
    """
    subject = f"Your Order is Ready! - Order #{order.order_number}"
    html = render_template(
        "emails/order_ready.html",
        order=order,
        items=items,
        name=name,
        with_prices=False,
        where=_fulfillment_place(order),
    )
    return subject, html


# ============================================================================
# Service
# ============================================================================


class NotificationService:
    """Sends order emails to the order's customer."""

    def __init__(
        self,
        store: BakeryStore | None = None,
        email_client: EmailClient | None = None,
    ) -> None:
        self._store = store
        self._email_client = email_client

    @property
    def store(self) -> BakeryStore:
        return self._store or get_store()

    @property
    def email_client(self) -> EmailClient:
        return self._email_client or get_email_client()

    async def _recipient(self, order: Order) -> tuple[str | None, str]:
        """Resolve the email address and display name for an order.

        Guest orders use the guest email; registered orders use the
        owner's profile email.
        """
        if order.guest_email:
            return order.guest_email, order.customer_name or "Customer"
        profile = await self.store.get_customer_profile(order.user_id)
        if profile is None:
            return None, order.customer_name or "Customer"
        return profile.email, order.customer_name or profile.full_name or "Customer"

    async def _send(self, order: Order, kind: str, build) -> bool:
        try:
            to, name = await self._recipient(order)
            if not to:
                logger.warning("No email recipient for order", order_id=order.id, email=kind)
                return False
            subject, html = await build(name)
            return await self.email_client.send(to, subject, html)
        except Exception as e:
            logger.warning(
                "Failed to send order email",
                order_id=order.id,
                email=kind,
                error=str(e),
            )
            return False

    async def send_order_confirmation(self, order: Order) -> bool:
        """Send the confirmation email with items and totals."""

        async def build(name: str) -> tuple[str, str]:
            items = await self.store.get_order_items(order.id)
            return render_confirmation_email(order, items, name)

        return await self._send(order, "confirmation", build)

    async def send_status_update(self, order: Order) -> bool:
        """Send the status change email for the order's current status."""

        async def build(name: str) -> tuple[str, str]:
            return render_status_update_email(order, name)

        return await self._send(order, "status_update", build)

    async def send_order_ready(self, order: Order) -> bool:
        """Send the order ready email."""

        async def build(name: str) -> tuple[str, str]:
            items = await self.store.get_order_items(order.id)
            return render_ready_email(order, items, name)

        return await self._send(order, "ready", build)

    async def notify_status_change(self, order: Order) -> bool:
        """Send the email that matches the order's new status.

        ``ready`` sends the ready email; ``received`` and ``confirmed``
        send nothing; every other status sends a status update.
        """
        if order.status == OrderStatus.READY:
            return await self.send_order_ready(order)
        if order.status in (OrderStatus.RECEIVED, OrderStatus.CONFIRMED):
            return False
        return await self.send_status_update(order)


# Global service instance
_notification_service: NotificationService | None = None


def get_notification_service() -> NotificationService:
    """Get or create the notification service instance."""
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService()
    return _notification_service
