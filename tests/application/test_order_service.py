"""Tests for the order service.

Tests:
- Customer cancellation ownership checks and side effects
- Admin status updates along the status policy
- Order tracking lookups
"""

from dataclasses import replace
from unittest.mock import AsyncMock

import pytest

from bakery_api.application.order_service import OrderService
from bakery_api.domain import (
    CustomerProfile,
    FulfillmentType,
    OrderStatus,
)


@pytest.fixture
def notifications() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def service(seeded_store, notifications) -> OrderService:
    return OrderService(store=seeded_store, notifications=notifications)


# ============================================================================
# Cancellation Tests
# ============================================================================


class TestCancelOrder:
    """Tests for customer cancellation."""

    @pytest.mark.asyncio
    async def test_guest_cancels_with_matching_email(self, service, seeded_store, make_order):
        await seeded_store.increment_slot_orders("slot-morning")
        order = await make_order(time_slot_id="slot-morning")

        result = await service.cancel_order(order.id, email=" GUEST@example.com ")

        assert result.success
        assert result.order_number == order.order_number
        updated = await seeded_store.get_order(order.id)
        assert updated.status == OrderStatus.CANCELLED
        slot = await seeded_store.get_time_slot("slot-morning")
        assert slot.current_orders == 0
        history = await seeded_store.list_status_history(order.id)
        assert history[-1].status == OrderStatus.CANCELLED
        assert history[-1].notes == "Cancelled by customer"

    @pytest.mark.asyncio
    async def test_owner_cancels_with_reason(self, service, seeded_store, make_order):
        order = await make_order(user_id="user-1")

        result = await service.cancel_order(order.id, user_id="user-1", reason="Changed plans")

        assert result.success
        history = await seeded_store.list_status_history(order.id)
        assert history[-1].notes == "Changed plans"
        assert history[-1].changed_by == "user-1"

    @pytest.mark.asyncio
    async def test_restores_deducted_inventory(self, service, seeded_store, make_order, loaf):
        seeded_store.add_variant(
            replace(loaf, track_inventory=True, inventory_count=10)
        )
        order = await make_order()
        await seeded_store.deduct_inventory_for_order(order.id)
        assert seeded_store.get_variant("variant-loaf").inventory_count == 8

        await service.cancel_order(order.id, email="guest@example.com")

        assert seeded_store.get_variant("variant-loaf").inventory_count == 10

    @pytest.mark.asyncio
    async def test_inventory_untouched_when_never_deducted(
        self, service, seeded_store, make_order, loaf
    ):
        seeded_store.add_variant(
            replace(loaf, track_inventory=True, inventory_count=10)
        )
        order = await make_order()

        await service.cancel_order(order.id, email="guest@example.com")

        assert seeded_store.get_variant("variant-loaf").inventory_count == 10

    @pytest.mark.asyncio
    async def test_order_not_found(self, service):
        result = await service.cancel_order("missing", email="guest@example.com")

        assert result.error_code == "ORDER_NOT_FOUND"
        assert result.error == "Order not found"

    @pytest.mark.asyncio
    async def test_guest_without_email(self, service, make_order):
        order = await make_order()

        result = await service.cancel_order(order.id)

        assert result.error_code == "EMAIL_REQUIRED"
        assert result.error == "Email is required to cancel guest orders"

    @pytest.mark.asyncio
    async def test_guest_email_mismatch(self, service, seeded_store, make_order):
        order = await make_order()

        result = await service.cancel_order(order.id, email="someone@else.com", client_ip="1.2.3.4")

        assert result.error_code == "EMAIL_MISMATCH"
        assert result.error == "Unauthorized: Email does not match order"
        unchanged = await seeded_store.get_order(order.id)
        assert unchanged.status == OrderStatus.RECEIVED

    @pytest.mark.asyncio
    async def test_other_user_forbidden(self, service, make_order):
        order = await make_order(user_id="user-1")

        result = await service.cancel_order(order.id, user_id="user-2", email="guest@example.com")

        assert result.error_code == "FORBIDDEN"
        assert result.error == "Unauthorized: You do not have permission to cancel this order"

    @pytest.mark.asyncio
    async def test_baking_order_not_cancellable(self, service, make_order):
        order = await make_order(status=OrderStatus.BAKING)

        result = await service.cancel_order(order.id, email="guest@example.com")

        assert result.error_code == "ORDER_NOT_CANCELLABLE"
        assert result.error == "Cannot cancel order after baking has started"
        assert result.details == {"current_status": "baking"}

    @pytest.mark.asyncio
    async def test_update_failure(self, service, seeded_store, make_order):
        order = await make_order()
        seeded_store.update_order = AsyncMock(side_effect=RuntimeError("db down"))

        result = await service.cancel_order(order.id, email="guest@example.com")

        assert result.error_code == "CANCEL_FAILED"
        assert result.error == "Failed to cancel order. Please try again."

    @pytest.mark.asyncio
    async def test_side_effect_failures_do_not_fail_cancel(self, service, seeded_store, make_order):
        order = await make_order(time_slot_id="slot-morning")
        seeded_store.decrement_slot_orders = AsyncMock(side_effect=RuntimeError("db down"))
        seeded_store.add_status_history = AsyncMock(side_effect=RuntimeError("db down"))

        result = await service.cancel_order(order.id, email="guest@example.com")

        assert result.success
        updated = await seeded_store.get_order(order.id)
        assert updated.status == OrderStatus.CANCELLED


# ============================================================================
# Admin Status Update Tests
# ============================================================================


class TestUpdateOrderStatus:
    """Tests for admin status changes."""

    @pytest.mark.asyncio
    async def test_step_forward(self, service, seeded_store, make_order, notifications):
        order = await make_order(status=OrderStatus.CONFIRMED)

        result = await service.update_order_status(order.id, "baking", notes="Oven 2", actor="admin")

        assert result.success
        assert result.order.status == OrderStatus.BAKING
        history = await seeded_store.list_status_history(order.id)
        assert (history[-1].status, history[-1].notes, history[-1].changed_by) == (
            OrderStatus.BAKING,
            "Oven 2",
            "admin",
        )
        notifications.notify_status_change.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_same_status_records_history(self, service, seeded_store, make_order):
        order = await make_order(status=OrderStatus.BAKING)

        result = await service.update_order_status(order.id, "baking", actor="admin")

        assert result.success
        assert len(await seeded_store.list_status_history(order.id)) == 1

    @pytest.mark.asyncio
    async def test_pickup_completion_sets_completed_at(self, service, make_order):
        order = await make_order(status=OrderStatus.READY, fulfillment_type=FulfillmentType.PICKUP)

        result = await service.update_order_status(order.id, "picked_up")

        assert result.order.status == OrderStatus.PICKED_UP
        assert result.order.completed_at is not None

    @pytest.mark.asyncio
    async def test_confirm_sets_confirmed_at(self, service, make_order):
        order = await make_order()

        result = await service.update_order_status(order.id, "confirmed")

        assert result.order.confirmed_at is not None

    @pytest.mark.asyncio
    async def test_invalid_status(self, service, make_order):
        order = await make_order()

        result = await service.update_order_status(order.id, "burnt")

        assert result.error_code == "INVALID_STATUS"
        assert result.error == "Invalid status"

    @pytest.mark.asyncio
    async def test_illegal_transition(self, service, make_order, notifications):
        order = await make_order(status=OrderStatus.DELIVERED, fulfillment_type=FulfillmentType.DELIVERY)

        result = await service.update_order_status(order.id, "baking")

        assert result.error_code == "INVALID_TRANSITION"
        assert result.details["allowed_transitions"] == ["delivered"]
        notifications.notify_status_change.assert_not_called()

    @pytest.mark.asyncio
    async def test_order_not_found(self, service):
        result = await service.update_order_status("missing", "baking")

        assert result.error_code == "ORDER_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_update_internal_notes(self, service, make_order):
        order = await make_order()

        result = await service.update_internal_notes(order.id, "Extra crusty")

        assert result.order.internal_notes == "Extra crusty"

    @pytest.mark.asyncio
    async def test_update_notes_missing_order(self, service):
        result = await service.update_internal_notes("missing", "x")

        assert result.error_code == "ORDER_NOT_FOUND"


# ============================================================================
# Tracking Tests
# ============================================================================


class TestTrackOrder:
    """Tests for order tracking lookups."""

    @pytest.mark.asyncio
    async def test_guest_match(self, service, make_order):
        order = await make_order()

        result = await service.track_order(order.order_number, "Guest@Example.com")

        assert result.success
        assert result.order.id == order.id
        assert len(result.items) == 1

    @pytest.mark.asyncio
    async def test_guest_mismatch_looks_like_not_found(self, service, make_order):
        order = await make_order()

        result = await service.track_order(order.order_number, "other@example.com")

        assert result.error_code == "ORDER_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_registered_owner_match(self, service, seeded_store, make_order):
        seeded_store.add_customer_profile(CustomerProfile(id="user-1", email="ada@example.com"))
        order = await make_order(user_id="user-1")

        result = await service.track_order(order.order_number, "ada@example.com", user_id="user-1")

        assert result.success

    @pytest.mark.asyncio
    async def test_registered_order_requires_owner(self, service, seeded_store, make_order):
        seeded_store.add_customer_profile(CustomerProfile(id="user-1", email="ada@example.com"))
        order = await make_order(user_id="user-1")

        anonymous = await service.track_order(order.order_number, "ada@example.com")
        other_user = await service.track_order(
            order.order_number, "ada@example.com", user_id="user-2"
        )

        assert anonymous.error_code == "ORDER_NOT_FOUND"
        assert other_user.error_code == "ORDER_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_unknown_number(self, service):
        result = await service.track_order("HS-2030-999", "guest@example.com")

        assert result.error_code == "ORDER_NOT_FOUND"
