"""Tests for the payment webhook service.

Tests:
- Signature verification with a freshness window
- Event deduplication
- Order reconciliation per event type
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from bakery_api.application.webhook_service import (
    EventStatus,
    InMemoryEventLog,
    StripeEventType,
    WebhookEvent,
    WebhookService,
    WebhookSignatureVerifier,
)
from bakery_api.domain import OrderStatus, PaymentStatus

SECRET = "whsec_test"
NOW = 1_900_000_000


def make_event(
    event_type: str,
    data: dict,
    event_id: str = "evt_001",
) -> WebhookEvent:
    payload = {"id": event_id, "type": event_type, "data": {"object": data}}
    return WebhookEvent.from_payload(json.dumps(payload))


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def verifier() -> WebhookSignatureVerifier:
    return WebhookSignatureVerifier(secret=SECRET, tolerance_seconds=300, clock=lambda: NOW)


@pytest.fixture
def notifications() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def service(seeded_store, verifier, notifications) -> WebhookService:
    return WebhookService(
        store=seeded_store,
        event_log=InMemoryEventLog(),
        signature_verifier=verifier,
        notifications=notifications,
    )


# ============================================================================
# Signature Verification Tests
# ============================================================================


class TestWebhookSignatureVerifier:
    """Tests for WebhookSignatureVerifier."""

    def test_valid_signature(self, verifier):
        payload = b'{"id": "evt_001"}'
        signature = verifier.compute_signature(payload, NOW)

        assert verifier.verify(payload, f"t={NOW},v1={signature}") is True

    def test_any_matching_v1_signature_accepted(self, verifier):
        payload = b'{"id": "evt_001"}'
        signature = verifier.compute_signature(payload, NOW)

        assert verifier.verify(payload, f"t={NOW},v1=deadbeef,v1={signature}") is True

    def test_tampered_payload_rejected(self, verifier):
        signature = verifier.compute_signature(b'{"id": "evt_001"}', NOW)

        assert verifier.verify(b'{"id": "evt_002"}', f"t={NOW},v1={signature}") is False

    def test_wrong_secret_rejected(self, verifier):
        other = WebhookSignatureVerifier(secret="other", clock=lambda: NOW)
        payload = b"{}"
        signature = other.compute_signature(payload, NOW)

        assert verifier.verify(payload, f"t={NOW},v1={signature}") is False

    def test_stale_timestamp_rejected(self, verifier):
        payload = b"{}"
        old = NOW - 301
        signature = verifier.compute_signature(payload, old)

        assert verifier.verify(payload, f"t={old},v1={signature}") is False

    @pytest.mark.parametrize("header", [None, "", "garbage", "t=abc,v1=00", f"t={NOW}"])
    def test_malformed_header_rejected(self, verifier, header):
        assert verifier.verify(b"{}", header) is False


# ============================================================================
# Event Parsing Tests
# ============================================================================


class TestWebhookEvent:
    """Tests for decoding webhook bodies."""

    def test_from_payload(self):
        event = make_event("checkout.session.completed", {"id": "cs_1"})

        assert event.event_id == "evt_001"
        assert event.event_type == "checkout.session.completed"
        assert event.data == {"id": "cs_1"}

    def test_not_an_event(self):
        with pytest.raises(ValueError):
            WebhookEvent.from_payload(b'["not", "an", "event"]')

    def test_invalid_json(self):
        with pytest.raises(ValueError):
            WebhookEvent.from_payload(b"not json")

    @pytest.mark.parametrize("data", ["x", ["object"], 7])
    def test_data_must_be_an_object(self, data):
        body = json.dumps({"id": "evt_1", "type": "charge.refunded", "data": data})

        with pytest.raises(ValueError):
            WebhookEvent.from_payload(body)

    def test_data_object_must_be_an_object(self):
        body = json.dumps({"id": "evt_1", "type": "charge.refunded", "data": {"object": "ch_1"}})

        with pytest.raises(ValueError):
            WebhookEvent.from_payload(body)

    def test_payload_hash_is_stable(self):
        first = make_event("charge.refunded", {"id": "ch_1"})
        second = make_event("charge.refunded", {"id": "ch_1"})

        assert first.compute_payload_hash() == second.compute_payload_hash()


# ============================================================================
# Deduplication Tests
# ============================================================================


class TestDeduplication:
    """Tests for event deduplication."""

    @pytest.mark.asyncio
    async def test_processed_event_is_duplicate(self, service, make_order, notifications):
        order = await make_order()
        event = make_event(
            StripeEventType.CHECKOUT_SESSION_COMPLETED.value,
            {"id": "cs_1", "payment_intent": "pi_1", "metadata": {"order_id": order.id}},
        )

        first = await service.process_event(event)
        second = await service.process_event(event)

        assert first.status == EventStatus.PROCESSED
        assert second.duplicate is True
        assert second.status == EventStatus.DUPLICATE
        notifications.send_order_confirmation.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_event_is_retried(self, service, seeded_store, make_order):
        order = await make_order()
        event = make_event(
            StripeEventType.CHECKOUT_SESSION_COMPLETED.value,
            {"id": "cs_1", "payment_intent": "pi_1", "metadata": {"order_id": order.id}},
        )
        original_update = seeded_store.update_order
        seeded_store.update_order = AsyncMock(side_effect=RuntimeError("db down"))

        failed = await service.process_event(event)
        assert failed.success is False
        assert failed.status == EventStatus.FAILED
        logged = await service.event_log.get(event.event_id)
        assert logged["status"] == "failed"
        assert logged["error_message"] == "db down"

        seeded_store.update_order = original_update
        retried = await service.process_event(event)
        assert retried.status == EventStatus.PROCESSED

    @pytest.mark.asyncio
    async def test_cancelled_event_is_processed_on_redelivery(
        self, service, seeded_store, make_order
    ):
        order = await make_order()
        event = make_event(
            StripeEventType.CHECKOUT_SESSION_COMPLETED.value,
            {"id": "cs_1", "payment_intent": "pi_1", "metadata": {"order_id": order.id}},
        )
        original_update = seeded_store.update_order
        seeded_store.update_order = AsyncMock(side_effect=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await service.process_event(event)

        logged = await service.event_log.get(event.event_id)
        assert logged["status"] == "failed"
        assert logged["error_message"] == "Processing interrupted"

        seeded_store.update_order = original_update
        retried = await service.process_event(event)

        assert retried.status == EventStatus.PROCESSED
        updated = await seeded_store.get_order(order.id)
        assert updated.status == OrderStatus.CONFIRMED
        assert updated.payment_status == PaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_in_flight_event_is_duplicate(self, service, make_order):
        order = await make_order()
        event = make_event(
            StripeEventType.CHECKOUT_SESSION_COMPLETED.value,
            {"id": "cs_1", "metadata": {"order_id": order.id}},
        )
        await service.event_log.store(
            event_id=event.event_id,
            event_type=event.event_type,
            payload_hash=event.compute_payload_hash(),
            payload=event.payload,
            status=EventStatus.PROCESSING.value,
        )

        result = await service.process_event(event)

        assert result.duplicate is True

    @pytest.mark.asyncio
    async def test_abandoned_processing_event_is_retried(
        self, seeded_store, verifier, notifications, make_order
    ):
        later = datetime.now(timezone.utc) + timedelta(seconds=600)
        service = WebhookService(
            store=seeded_store,
            event_log=InMemoryEventLog(),
            signature_verifier=verifier,
            notifications=notifications,
            processing_lease_seconds=120,
            clock=lambda: later,
        )
        order = await make_order()
        event = make_event(
            StripeEventType.CHECKOUT_SESSION_COMPLETED.value,
            {"id": "cs_1", "payment_intent": "pi_1", "metadata": {"order_id": order.id}},
        )
        await service.event_log.store(
            event_id=event.event_id,
            event_type=event.event_type,
            payload_hash=event.compute_payload_hash(),
            payload=event.payload,
            status=EventStatus.PROCESSING.value,
        )

        result = await service.process_event(event)

        assert result.status == EventStatus.PROCESSED
        updated = await seeded_store.get_order(order.id)
        assert updated.payment_status == PaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_unknown_event_type_acknowledged(self, service):
        result = await service.process_event(make_event("customer.created", {"id": "cus_1"}))

        assert result.success
        assert result.status == EventStatus.PROCESSED


# ============================================================================
# Event Handler Tests
# ============================================================================


class TestCheckoutCompleted:
    """checkout.session.completed confirms the order."""

    @pytest.mark.asyncio
    async def test_confirms_order(self, service, seeded_store, make_order, notifications):
        order = await make_order(discount_code_id="discount-welcome")
        event = make_event(
            StripeEventType.CHECKOUT_SESSION_COMPLETED.value,
            {"id": "cs_1", "payment_intent": "pi_1", "metadata": {"order_id": order.id}},
        )

        await service.process_event(event)

        updated = await seeded_store.get_order(order.id)
        assert updated.status == OrderStatus.CONFIRMED
        assert updated.payment_status == PaymentStatus.PAID
        assert updated.stripe_payment_intent_id == "pi_1"
        assert updated.confirmed_at is not None
        assert updated.inventory_deducted is True

        history = await seeded_store.list_status_history(order.id)
        assert [(h.status, h.notes) for h in history] == [
            (OrderStatus.CONFIRMED, "Payment confirmed via Stripe")
        ]
        assert seeded_store.get_discount_code("discount-welcome").current_uses == 1
        notifications.send_order_confirmation.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_order_is_noop(self, service):
        event = make_event(
            StripeEventType.CHECKOUT_SESSION_COMPLETED.value,
            {"id": "cs_1", "metadata": {"order_id": "missing"}},
        )

        result = await service.process_event(event)

        assert result.success

    @pytest.mark.asyncio
    async def test_history_failure_does_not_fail_event(self, service, seeded_store, make_order):
        order = await make_order()
        seeded_store.add_status_history = AsyncMock(side_effect=RuntimeError("db down"))
        event = make_event(
            StripeEventType.CHECKOUT_SESSION_COMPLETED.value,
            {"id": "cs_1", "payment_intent": "pi_1", "metadata": {"order_id": order.id}},
        )

        result = await service.process_event(event)

        assert result.success
        updated = await seeded_store.get_order(order.id)
        assert updated.payment_status == PaymentStatus.PAID


class TestCheckoutExpired:
    """checkout.session.expired releases the slot of a pending order."""

    @pytest.mark.asyncio
    async def test_releases_slot_and_cancels(self, service, seeded_store, make_order):
        await seeded_store.increment_slot_orders("slot-morning")
        order = await make_order(time_slot_id="slot-morning")
        event = make_event(
            StripeEventType.CHECKOUT_SESSION_EXPIRED.value,
            {"id": "cs_1", "metadata": {"order_id": order.id}},
        )

        await service.process_event(event)

        updated = await seeded_store.get_order(order.id)
        assert updated.status == OrderStatus.CANCELLED
        assert updated.payment_status == PaymentStatus.FAILED
        slot = await seeded_store.get_time_slot("slot-morning")
        assert slot.current_orders == 0
        history = await seeded_store.list_status_history(order.id)
        assert history[-1].notes == "Checkout session expired - time slot released"

    @pytest.mark.asyncio
    async def test_paid_order_is_left_alone(self, service, seeded_store, make_order):
        await seeded_store.increment_slot_orders("slot-morning")
        order = await make_order(
            status=OrderStatus.CONFIRMED,
            payment_status=PaymentStatus.PAID,
            time_slot_id="slot-morning",
        )
        event = make_event(
            StripeEventType.CHECKOUT_SESSION_EXPIRED.value,
            {"id": "cs_1", "metadata": {"order_id": order.id}},
        )

        await service.process_event(event)

        updated = await seeded_store.get_order(order.id)
        assert updated.status == OrderStatus.CONFIRMED
        slot = await seeded_store.get_time_slot("slot-morning")
        assert slot.current_orders == 1


class TestPaymentFailed:
    """payment_intent.payment_failed marks the payment failed."""

    @pytest.mark.asyncio
    async def test_marks_payment_failed(self, service, seeded_store, make_order):
        await seeded_store.increment_slot_orders("slot-morning")
        order = await make_order(time_slot_id="slot-morning", stripe_payment_intent_id="pi_1")
        event = make_event(StripeEventType.PAYMENT_INTENT_FAILED.value, {"id": "pi_1"})

        await service.process_event(event)

        updated = await seeded_store.get_order(order.id)
        assert updated.payment_status == PaymentStatus.FAILED
        assert updated.status == OrderStatus.RECEIVED
        slot = await seeded_store.get_time_slot("slot-morning")
        assert slot.current_orders == 0
        history = await seeded_store.list_status_history(order.id)
        assert history[-1].status == OrderStatus.CANCELLED
        assert history[-1].notes == "Payment failed - time slot released"

    @pytest.mark.asyncio
    async def test_unknown_payment_intent_is_noop(self, service):
        result = await service.process_event(
            make_event(StripeEventType.PAYMENT_INTENT_FAILED.value, {"id": "pi_unknown"})
        )

        assert result.success


class TestChargeRefunded:
    """charge.refunded marks the order refunded."""

    @pytest.mark.asyncio
    async def test_marks_refunded(self, service, seeded_store, make_order):
        order = await make_order(
            status=OrderStatus.CONFIRMED,
            payment_status=PaymentStatus.PAID,
            stripe_payment_intent_id="pi_1",
        )
        event = make_event(
            StripeEventType.CHARGE_REFUNDED.value,
            {"id": "ch_1", "payment_intent": "pi_1", "amount_refunded": 2550, "currency": "usd"},
        )

        await service.process_event(event)

        updated = await seeded_store.get_order(order.id)
        assert updated.status == OrderStatus.REFUNDED
        assert updated.payment_status == PaymentStatus.REFUNDED
        history = await seeded_store.list_status_history(order.id)
        assert history[-1].notes == "Refund processed: 25.50 USD"

    @pytest.mark.asyncio
    async def test_charge_without_payment_intent(self, service):
        result = await service.process_event(
            make_event(StripeEventType.CHARGE_REFUNDED.value, {"id": "ch_1"})
        )

        assert result.success


class TestPaymentSucceeded:
    """payment_intent.succeeded is acknowledged without changes."""

    @pytest.mark.asyncio
    async def test_logged_only(self, service, make_order, seeded_store):
        order = await make_order(stripe_payment_intent_id="pi_1")

        result = await service.process_event(
            make_event(StripeEventType.PAYMENT_INTENT_SUCCEEDED.value, {"id": "pi_1"})
        )

        assert result.success
        unchanged = await seeded_store.get_order(order.id)
        assert unchanged.payment_status == PaymentStatus.PENDING
