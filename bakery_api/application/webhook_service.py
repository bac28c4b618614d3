"""Payment webhook processing service.

Handles incoming payment provider webhooks with:
- HMAC signature verification with a freshness window
- Event deduplication by event id
- Order reconciliation per event type
"""

import hashlib
import hmac
import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog

from bakery_api.application.notification_service import NotificationService
from bakery_api.application.side_effects import best_effort
from bakery_api.domain.entities import StatusHistoryEntry
from bakery_api.domain.state_machines import OrderStatus, PaymentStatus
from bakery_api.infrastructure.config import settings
from bakery_api.infrastructure.repositories import (
    BakeryStore,
    SqlAlchemyEventLog,
    get_store,
)

logger = structlog.get_logger()


class StripeEventType(str, Enum):
    """Payment provider event types the service reacts to."""

    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    CHECKOUT_SESSION_EXPIRED = "checkout.session.expired"
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
    CHARGE_REFUNDED = "charge.refunded"


class EventStatus(str, Enum):
    """Status of a webhook event in the event log."""

    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"
    DUPLICATE = "duplicate"


@dataclass
class WebhookEvent:
    """A verified webhook event.

    Attributes:
        event_id: Provider event identifier.
        event_type: Provider event type string.
        data: The event's ``data.object`` (session, payment intent, charge).
        payload: The full decoded event.
    """

    event_id: str
    event_type: str
    data: dict[str, Any]
    payload: dict[str, Any]

    @classmethod
    def from_payload(cls, body: bytes | str) -> "WebhookEvent":
        """Decode a raw webhook body.

        Raises:
            ValueError: If the body is not a JSON event object.
        """
        payload = json.loads(body)
        if not isinstance(payload, dict) or "id" not in payload or "type" not in payload:
            raise ValueError("Webhook body is not an event object")
        envelope = payload.get("data") or {}
        if not isinstance(envelope, dict):
            raise ValueError("Webhook event data is not an object")
        data = envelope.get("object") or {}
        if not isinstance(data, dict):
            raise ValueError("Webhook event data.object is not an object")
        return cls(
            event_id=str(payload["id"]),
            event_type=str(payload["type"]),
            data=data,
            payload=payload,
        )

    def compute_payload_hash(self) -> str:
        """Compute SHA-256 hash of the payload.

        Returns:
            Hex digest of the payload hash.
        """
        encoded = json.dumps(self.payload, sort_keys=True, default=str)
        return hashlib.sha256(encoded.encode()).hexdigest()


@dataclass
class WebhookResult:
    """Result of webhook processing.

    Attributes:
        success: Whether processing succeeded.
        event_id: The event ID.
        status: Final event status.
        message: Status message.
        duplicate: Whether this was a duplicate event.
    """

    success: bool
    event_id: str
    status: EventStatus
    message: str
    duplicate: bool = False


class WebhookSignatureVerifier:
    """Verifies ``Stripe-Signature`` headers.

    The header carries a timestamp and one or more signatures:
    ``t=1700000000,v1=<hex>,v1=<hex>``. A signature is the HMAC-SHA256 of
    ``"{t}.{raw body}"`` keyed by the endpoint secret.
    """

    def __init__(
        self,
        secret: str | None = None,
        tolerance_seconds: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize verifier.

        Args:
            secret: Webhook endpoint secret.
            tolerance_seconds: Maximum age of the signed timestamp.
            clock: Unix time source (tests).
        """
        self.secret = secret or settings.stripe_webhook_secret
        self.tolerance_seconds = (
            tolerance_seconds
            if tolerance_seconds is not None
            else settings.stripe_webhook_tolerance_seconds
        )
        self._clock = clock

    def compute_signature(self, payload: bytes, timestamp: int) -> str:
        signed = f"{timestamp}.".encode() + payload
        return hmac.new(self.secret.encode(), signed, hashlib.sha256).hexdigest()

    def verify(self, payload: bytes | str, header: str | None) -> bool:
        """Verify the signature header of a webhook payload.

        Args:
            payload: Raw request body.
            header: ``Stripe-Signature`` header value.

        Returns:
            True if the timestamp is fresh and a ``v1`` signature matches.
        """
        if not header:
            logger.warning("Missing webhook signature")
            return False

        if isinstance(payload, str):
            payload = payload.encode()

        timestamp: int | None = None
        signatures: list[str] = []
        for part in header.split(","):
            key, _, value = part.strip().partition("=")
            if key == "t":
                try:
                    timestamp = int(value)
                except ValueError:
                    timestamp = None
            elif key == "v1" and value:
                signatures.append(value)

        if timestamp is None or not signatures:
            logger.warning("Invalid signature format")
            return False

        if abs(self._clock() - timestamp) > self.tolerance_seconds:
            logger.warning(
                "Webhook timestamp outside tolerance",
                timestamp=timestamp,
                tolerance_seconds=self.tolerance_seconds,
            )
            return False

        expected = self.compute_signature(payload, timestamp)
        if not any(hmac.compare_digest(expected, sig) for sig in signatures):
            logger.warning("Webhook signature mismatch")
            return False

        logger.debug("Webhook signature verified")
        return True


class InMemoryEventLog:
    """In-memory event log for deduplication.

    Same interface as ``SqlAlchemyEventLog``, which backs it in
    database deployments.
    """

    def __init__(self) -> None:
        """Initialize event log."""
        self._events: dict[str, dict[str, Any]] = {}

    async def get(self, event_id: str) -> dict[str, Any] | None:
        """Get an event from the log.

        Args:
            event_id: Event identifier.

        Returns:
            Event data if found.
        """
        return self._events.get(event_id)

    async def store(
        self,
        event_id: str,
        event_type: str,
        payload_hash: str,
        payload: dict[str, Any],
        status: str,
        correlation_id: str | None = None,
    ) -> None:
        """Store an event in the log, replacing a previous attempt."""
        now = datetime.now(timezone.utc)
        self._events[event_id] = {
            "event_id": event_id,
            "event_type": event_type,
            "payload_hash": payload_hash,
            "payload": payload,
            "received_at": now,
            "processed_at": now if status == EventStatus.PROCESSED.value else None,
            "status": status,
            "error_message": None,
            "correlation_id": correlation_id,
        }

    async def update_status(
        self,
        event_id: str,
        status: str,
        error_message: str | None = None,
    ) -> None:
        """Update event status.

        Args:
            event_id: Event identifier.
            status: New status.
            error_message: Error message if failed.
        """
        if event_id in self._events:
            self._events[event_id]["status"] = status
            if status == EventStatus.PROCESSED.value:
                self._events[event_id]["processed_at"] = datetime.now(timezone.utc)
            if error_message:
                self._events[event_id]["error_message"] = error_message


class WebhookService:
    """Service for processing payment webhooks.

    Handles:
    - Signature verification
    - Event deduplication
    - Order reconciliation

    Primary order updates propagate errors, which marks the event failed so
    the provider retries it. Secondary writes are best-effort.
    """

    def __init__(
        self,
        store: BakeryStore | None = None,
        event_log: InMemoryEventLog | SqlAlchemyEventLog | None = None,
        signature_verifier: WebhookSignatureVerifier | None = None,
        notifications: NotificationService | None = None,
        processing_lease_seconds: int | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        """Initialize webhook service.

        Args:
            store: Data store; defaults to the global store.
            event_log: Event log for deduplication.
            signature_verifier: Signature verifier.
            notifications: Email notifications.
            processing_lease_seconds: Age after which a ``processing`` event
                counts as abandoned and is handled again.
            clock: UTC time source (tests).
        """
        self.processing_lease_seconds = (
            processing_lease_seconds
            if processing_lease_seconds is not None
            else settings.webhook_processing_lease_seconds
        )
        self._clock = clock
        self._store = store
        self.event_log = event_log or InMemoryEventLog()
        self.signature_verifier = signature_verifier or WebhookSignatureVerifier()
        self._notifications = notifications

    @property
    def store(self) -> BakeryStore:
        return self._store or get_store()

    @property
    def notifications(self) -> NotificationService:
        return self._notifications or NotificationService(store=self.store)

    def verify_signature(self, payload: bytes | str, signature: str | None) -> bool:
        """Verify webhook signature.

        Args:
            payload: Raw request body.
            signature: Signature header.

        Returns:
            True if valid.
        """
        return self.signature_verifier.verify(payload, signature)

    async def process_event(
        self,
        event: WebhookEvent,
        correlation_id: str | None = None,
    ) -> WebhookResult:
        """Process a webhook event.

        Processed events, and events another attempt is still working on,
        are acknowledged without running handlers again. Failed events and
        ``processing`` events older than the lease are handled again.

        Args:
            event: The webhook event to process.
            correlation_id: Request correlation ID.

        Returns:
            Processing result.
        """
        logger.info(
            "Processing webhook event",
            event_id=event.event_id,
            event_type=event.event_type,
            correlation_id=correlation_id,
        )

        existing = await self.event_log.get(event.event_id)
        if existing and self._is_duplicate(existing):
            logger.info(
                "Duplicate webhook event ignored",
                event_id=event.event_id,
                previous_status=existing["status"],
            )
            return WebhookResult(
                success=True,
                event_id=event.event_id,
                status=EventStatus.DUPLICATE,
                message="Event already processed",
                duplicate=True,
            )

        await self.event_log.store(
            event_id=event.event_id,
            event_type=event.event_type,
            payload_hash=event.compute_payload_hash(),
            payload=event.payload,
            status=EventStatus.PROCESSING.value,
            correlation_id=correlation_id,
        )

        try:
            await self._handle_event(event)
        except Exception as e:
            error_message = str(e)
            logger.error(
                "Failed to process webhook event",
                event_id=event.event_id,
                event_type=event.event_type,
                error=error_message,
            )
            await self.event_log.update_status(
                event.event_id,
                EventStatus.FAILED.value,
                error_message=error_message,
            )
            return WebhookResult(
                success=False,
                event_id=event.event_id,
                status=EventStatus.FAILED,
                message=error_message,
            )
        except BaseException:
            # Cancelled mid-handler; leave the event retryable
            logger.warning(
                "Webhook event processing interrupted",
                event_id=event.event_id,
                event_type=event.event_type,
            )
            await self.event_log.update_status(
                event.event_id,
                EventStatus.FAILED.value,
                error_message="Processing interrupted",
            )
            raise

        await self.event_log.update_status(event.event_id, EventStatus.PROCESSED.value)
        logger.info(
            "Webhook event processed successfully",
            event_id=event.event_id,
            event_type=event.event_type,
        )
        return WebhookResult(
            success=True,
            event_id=event.event_id,
            status=EventStatus.PROCESSED,
            message="Event processed successfully",
        )

    def _is_duplicate(self, existing: dict[str, Any]) -> bool:
        """Whether a logged event should be acknowledged without handling."""
        status = existing["status"]
        if status == EventStatus.PROCESSED.value:
            return True
        if status != EventStatus.PROCESSING.value:
            return False
        received_at = existing.get("received_at")
        if isinstance(received_at, str):
            received_at = datetime.fromisoformat(received_at)
        if received_at is None:
            return False
        age = (self._clock() - received_at).total_seconds()
        return age < self.processing_lease_seconds

    async def _handle_event(self, event: WebhookEvent) -> None:
        """Handle event based on type.

        Args:
            event: The event to handle.
        """
        handlers = {
            StripeEventType.CHECKOUT_SESSION_COMPLETED.value: self._handle_checkout_completed,
            StripeEventType.CHECKOUT_SESSION_EXPIRED.value: self._handle_checkout_expired,
            StripeEventType.PAYMENT_INTENT_SUCCEEDED.value: self._handle_payment_succeeded,
            StripeEventType.PAYMENT_INTENT_FAILED.value: self._handle_payment_failed,
            StripeEventType.CHARGE_REFUNDED.value: self._handle_charge_refunded,
        }

        handler = handlers.get(event.event_type)
        if handler:
            await handler(event.data)
        else:
            logger.info("Unhandled webhook event type", event_type=event.event_type)

    async def _add_history(self, order_id: str, status: OrderStatus, notes: str) -> None:
        await best_effort(
            "status_history",
            order_id,
            self.store.add_status_history(
                StatusHistoryEntry(order_id=order_id, status=status, notes=notes)
            ),
        )

    async def _handle_checkout_completed(self, session: dict[str, Any]) -> None:
        """Payment succeeded: confirm the order."""
        order_id = (session.get("metadata") or {}).get("order_id")
        if not order_id:
            logger.error("No order_id in checkout session metadata", session_id=session.get("id"))
            return

        order = await self.store.get_order(order_id)
        if order is None:
            logger.warning("Order not found for completed checkout", order_id=order_id)
            return

        order = await self.store.update_order(
            order_id,
            stripe_payment_intent_id=session.get("payment_intent"),
            payment_status=PaymentStatus.PAID,
            status=OrderStatus.CONFIRMED,
            confirmed_at=datetime.now(timezone.utc),
        )
        logger.info(
            "Order payment confirmed",
            order_id=order_id,
            order_number=order.order_number,
        )

        if order.discount_code_id:
            await best_effort(
                "increment_discount",
                order_id,
                self.store.increment_discount_usage(order.discount_code_id),
            )

        await self._add_history(order_id, OrderStatus.CONFIRMED, "Payment confirmed via Stripe")
        await best_effort(
            "deduct_inventory", order_id, self.store.deduct_inventory_for_order(order_id)
        )
        await self.notifications.send_order_confirmation(order)

    async def _handle_checkout_expired(self, session: dict[str, Any]) -> None:
        """Customer abandoned the payment page: release the slot."""
        order_id = (session.get("metadata") or {}).get("order_id")
        if not order_id:
            logger.warning("No order_id in expired session metadata", session_id=session.get("id"))
            return

        order = await self.store.get_order(order_id)
        if order is None:
            logger.warning("Order not found for expired checkout", order_id=order_id)
            return

        # Only a still-pending order is released; a later success or
        # failure event has already settled it.
        if order.payment_status != PaymentStatus.PENDING:
            logger.info(
                "Expired checkout ignored, payment already settled",
                order_id=order_id,
                payment_status=order.payment_status.value,
            )
            return

        if order.time_slot_id:
            await best_effort(
                "release_slot", order_id, self.store.decrement_slot_orders(order.time_slot_id)
            )

        await self.store.update_order(
            order_id,
            status=OrderStatus.CANCELLED,
            payment_status=PaymentStatus.FAILED,
        )
        await self._add_history(
            order_id, OrderStatus.CANCELLED, "Checkout session expired - time slot released"
        )
        logger.info("Expired checkout released", order_id=order_id)

    async def _handle_payment_succeeded(self, payment_intent: dict[str, Any]) -> None:
        logger.info("Payment intent succeeded", payment_intent_id=payment_intent.get("id"))

    async def _handle_payment_failed(self, payment_intent: dict[str, Any]) -> None:
        """Payment failed: release the slot and mark the payment failed."""
        payment_intent_id = payment_intent.get("id")
        order = (
            await self.store.get_order_by_payment_intent(payment_intent_id)
            if payment_intent_id
            else None
        )
        if order is None:
            logger.warning(
                "Could not find order for failed payment intent",
                payment_intent_id=payment_intent_id,
            )
            return

        logger.warning("Payment failed", order_id=order.id, order_number=order.order_number)

        if order.time_slot_id:
            await best_effort(
                "release_slot", order.id, self.store.decrement_slot_orders(order.time_slot_id)
            )

        await self.store.update_order(order.id, payment_status=PaymentStatus.FAILED)
        await self._add_history(
            order.id, OrderStatus.CANCELLED, "Payment failed - time slot released"
        )

    async def _handle_charge_refunded(self, charge: dict[str, Any]) -> None:
        """Charge refunded: mark the order refunded."""
        payment_intent_id = charge.get("payment_intent")
        if not payment_intent_id:
            logger.warning("No payment_intent in charge", charge_id=charge.get("id"))
            return

        order = await self.store.get_order_by_payment_intent(payment_intent_id)
        if order is None:
            logger.warning(
                "Could not find order for refunded charge",
                payment_intent_id=payment_intent_id,
            )
            return

        await self.store.update_order(
            order.id,
            status=OrderStatus.REFUNDED,
            payment_status=PaymentStatus.REFUNDED,
        )

        amount = Decimal(int(charge.get("amount_refunded") or 0)) / 100
        currency = str(charge.get("currency") or settings.currency).upper()
        await self._add_history(
            order.id, OrderStatus.REFUNDED, f"Refund processed: {amount:.2f} {currency}"
        )
        logger.info("Order refunded", order_id=order.id, amount=str(amount), currency=currency)


# Global service instance
_webhook_service: WebhookService | None = None


def get_webhook_service() -> WebhookService:
    """Get or create the webhook service instance.

    Uses the database event log when the store is database-backed.

    Returns:
        WebhookService instance.
    """
    global _webhook_service
    if _webhook_service is None:
        event_log = SqlAlchemyEventLog() if settings.store_backend == "database" else None
        _webhook_service = WebhookService(event_log=event_log)
    return _webhook_service


def reset_webhook_service() -> None:
    """Reset the webhook service and its event log (for testing)."""
    global _webhook_service
    _webhook_service = None
