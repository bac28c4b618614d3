"""Payment provider HTTP client.

Creates hosted checkout sessions through the Stripe REST API. The API takes
form-encoded bodies with bracketed keys for nested fields
(``line_items[0][price_data][currency]=usd``).
"""

from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from bakery_api.domain.exceptions import PaymentProviderError
from bakery_api.infrastructure.config import settings

logger = structlog.get_logger()


@dataclass
class PaymentLineItem:
    """A line on the hosted checkout page.

    Attributes:
        name: Display name.
        unit_amount_cents: Unit price in cents.
        quantity: Number of units.
        description: Optional secondary text.
        images: Absolute image URLs.
    """

    name: str
    unit_amount_cents: int
    quantity: int = 1
    description: str | None = None
    images: list[str] = field(default_factory=list)


@dataclass
class CheckoutSession:
    """A hosted checkout session created by the provider."""

    id: str
    url: str


def encode_form(data: dict[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    """Flatten nested dicts/lists into bracketed form fields.

    Args:
        data: Nested payload.
        prefix: Key prefix for recursion.

    Returns:
        List of (key, value) pairs ready for form encoding.
    """
    pairs: list[tuple[str, str]] = []
    for key, value in data.items():
        full_key = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(encode_form(value, full_key))
        elif isinstance(value, list):
            for index, entry in enumerate(value):
                entry_key = f"{full_key}[{index}]"
                if isinstance(entry, dict):
                    pairs.extend(encode_form(entry, entry_key))
                else:
                    pairs.append((entry_key, str(entry)))
        elif isinstance(value, bool):
            pairs.append((full_key, "true" if value else "false"))
        else:
            pairs.append((full_key, str(value)))
    return pairs


class PaymentClient:
    """HTTP client for the payment provider.

    Provides checkout session creation with error handling and
    response normalization.
    """

    def __init__(
        self,
        secret_key: str | None = None,
        base_url: str | None = None,
        currency: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize payment client.

        Args:
            secret_key: Provider secret API key.
            base_url: Provider API base URL.
            currency: Lower-case ISO currency code.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (tests).
        """
        self.secret_key = secret_key or settings.stripe_secret_key
        self.base_url = base_url or settings.stripe_api_base
        self.currency = (currency or settings.currency).lower()
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {self.secret_key}"},
            transport=self._transport,
        )

    async def create_checkout_session(
        self,
        order_id: str,
        line_items: list[PaymentLineItem],
        customer_email: str,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        """Create a hosted checkout session for an order.

        Args:
            order_id: Order id, stored in session metadata.
            line_items: Items to charge.
            customer_email: Prefilled customer email.
            success_url: Redirect after payment.
            cancel_url: Redirect when the customer backs out.

        Returns:
            The created CheckoutSession.

        Raises:
            PaymentProviderError: On transport failure or non-2xx response.
        """
        payload: dict[str, Any] = {
            "mode": "payment",
            "customer_email": customer_email,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": {"order_id": order_id},
            "payment_intent_data": {"metadata": {"order_id": order_id}},
            "line_items": [
                {
                    "quantity": item.quantity,
                    "price_data": {
                        "currency": self.currency,
                        "unit_amount": item.unit_amount_cents,
                        "product_data": {
                            "name": item.name,
                            "description": item.description,
                            "images": item.images or None,
                        },
                    },
                }
                for item in line_items
            ],
        }

        try:
            async with self._client() as client:
                response = await client.post(
                    "/v1/checkout/sessions",
                    data=dict(encode_form(payload)),
                )
        except httpx.HTTPError as e:
            logger.error(
                "Payment provider request failed",
                order_id=order_id,
                error=str(e),
            )
            raise PaymentProviderError(f"Payment provider unreachable: {e}") from e

        if response.status_code >= 400:
            try:
                error = response.json().get("error", {})
            except ValueError:
                error = {}
            logger.error(
                "Payment provider rejected checkout session",
                order_id=order_id,
                status_code=response.status_code,
                provider_error=error.get("message"),
            )
            raise PaymentProviderError(
                error.get("message", "Checkout session creation failed"),
                status_code=response.status_code,
            )

        data = response.json()
        logger.info(
            "Checkout session created",
            order_id=order_id,
            session_id=data["id"],
        )
        return CheckoutSession(id=data["id"], url=data["url"])


# Global client instance
_payment_client: PaymentClient | None = None


def get_payment_client() -> PaymentClient:
    """Get the payment client singleton."""
    global _payment_client
    if _payment_client is None:
        _payment_client = PaymentClient()
    return _payment_client
