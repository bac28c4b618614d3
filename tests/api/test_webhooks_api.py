"""Tests for the payment webhook endpoint."""

import json
import time
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from bakery_api.api import webhooks
from bakery_api.application.webhook_service import (
    InMemoryEventLog,
    WebhookService,
    WebhookSignatureVerifier,
)
from bakery_api.domain import OrderStatus, PaymentStatus
from bakery_api.main import app

SECRET = "whsec_api_test"


@pytest.fixture
def verifier() -> WebhookSignatureVerifier:
    return WebhookSignatureVerifier(secret=SECRET)


@pytest.fixture(autouse=True)
def service(seeded_store, verifier, notifications) -> WebhookService:
    service = WebhookService(
        store=seeded_store,
        event_log=InMemoryEventLog(),
        signature_verifier=verifier,
        notifications=notifications,
    )
    app.dependency_overrides[webhooks.get_service] = lambda: service
    return service


@pytest.fixture
def send(client: TestClient, verifier):
    """Post a signed event to the webhook endpoint."""

    def _send(payload: dict, signature: str | None = None):
        body = json.dumps(payload).encode()
        if signature is None:
            timestamp = int(time.time())
            signature = f"t={timestamp},v1={verifier.compute_signature(body, timestamp)}"
        return client.post(
            "/api/webhooks/stripe",
            content=body,
            headers={"Stripe-Signature": signature, "Content-Type": "application/json"},
        )

    return _send


def completed_event(order_id: str) -> dict:
    return {
        "id": "evt_100",
        "type": "checkout.session.completed",
        "data": {"object": {"id": "cs_1", "payment_intent": "pi_1", "metadata": {"order_id": order_id}}},
    }


class TestStripeWebhook:
    """Tests for POST /api/webhooks/stripe."""

    @pytest.mark.asyncio
    async def test_confirms_order(self, send, make_order, seeded_store) -> None:
        order = await make_order()

        response = send(completed_event(order.id))

        assert response.status_code == 200
        assert response.json() == {"received": True}
        updated = await seeded_store.get_order(order.id)
        assert updated.status == OrderStatus.CONFIRMED
        assert updated.payment_status == PaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_redelivery_flagged_duplicate(self, send, make_order) -> None:
        order = await make_order()

        send(completed_event(order.id))
        response = send(completed_event(order.id))

        assert response.status_code == 200
        assert response.json() == {"received": True, "duplicate": True}

    def test_missing_signature(self, client: TestClient) -> None:
        response = client.post("/api/webhooks/stripe", content=b"{}")

        assert response.status_code == 400
        assert response.json()["error_code"] == "MISSING_SIGNATURE"
        assert response.json()["message"] == "Missing stripe-signature header"

    @pytest.mark.asyncio
    async def test_invalid_signature(self, send, service, make_order, seeded_store) -> None:
        order = await make_order()

        response = send(completed_event(order.id), signature=f"t={int(time.time())},v1=bad")

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_SIGNATURE"
        unchanged = await seeded_store.get_order(order.id)
        assert unchanged.status == OrderStatus.RECEIVED
        assert unchanged.payment_status == PaymentStatus.PENDING
        assert await service.event_log.get("evt_100") is None

    @pytest.mark.asyncio
    async def test_stale_signature(
        self, send, service, verifier, make_order, seeded_store
    ) -> None:
        order = await make_order()
        payload = completed_event(order.id)
        stale = int(time.time()) - 1000
        body = json.dumps(payload).encode()

        response = send(payload, signature=f"t={stale},v1={verifier.compute_signature(body, stale)}")

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_SIGNATURE"
        unchanged = await seeded_store.get_order(order.id)
        assert unchanged.payment_status == PaymentStatus.PENDING
        assert await service.event_log.get("evt_100") is None

    def test_invalid_payload(self, client: TestClient, verifier) -> None:
        body = b"[1, 2, 3]"
        timestamp = int(time.time())
        signature = f"t={timestamp},v1={verifier.compute_signature(body, timestamp)}"

        response = client.post(
            "/api/webhooks/stripe",
            content=body,
            headers={"Stripe-Signature": signature},
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_PAYLOAD"

    def test_non_object_data(self, send) -> None:
        response = send({"id": "evt_1", "type": "charge.refunded", "data": "x"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_PAYLOAD"

    @pytest.mark.asyncio
    async def test_handler_failure_returns_500(self, send, make_order, seeded_store) -> None:
        order = await make_order()
        seeded_store.update_order = AsyncMock(side_effect=RuntimeError("db down"))

        response = send(completed_event(order.id))

        assert response.status_code == 500
        assert response.json()["error_code"] == "WEBHOOK_PROCESSING_FAILED"
        assert response.json()["details"] == {"event_id": "evt_100"}
