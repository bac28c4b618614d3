"""Order application service.

Orchestrates order lifecycle operations after checkout:
- Customer cancellation with ownership checks
- Admin status updates along the order status policy
- Internal notes
- Order tracking and detail lookups
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from bakery_api.application.notification_service import NotificationService
from bakery_api.application.side_effects import best_effort
from bakery_api.domain.entities import Order, OrderItem, StatusHistoryEntry
from bakery_api.domain.exceptions import InvalidStateTransitionError
from bakery_api.domain.state_machines import OrderStatus, validate_order_transition
from bakery_api.infrastructure.repositories import BakeryStore, get_store

logger = structlog.get_logger()

DEFAULT_CANCELLATION_REASON = "Cancelled by customer"


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class CancelOrderResult:
    """Result of a customer cancellation."""

    order_number: str | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class UpdateOrderResult:
    """Result of an admin order update."""

    order: Order | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class OrderDetailsResult:
    """An order with its items and status history."""

    order: Order | None = None
    items: list[OrderItem] = field(default_factory=list)
    status_history: list[StatusHistoryEntry] = field(default_factory=list)
    success: bool = True
    error: str | None = None
    error_code: str | None = None


# ============================================================================
# Order Service
# ============================================================================


class OrderService:
    """Application service for order lifecycle operations."""

    def __init__(
        self,
        store: BakeryStore | None = None,
        notifications: NotificationService | None = None,
    ) -> None:
        """Initialize order service.

        Args:
            store: Data store; defaults to the global store.
            notifications: Email notifications.
        """
        self._store = store
        self._notifications = notifications

    @property
    def store(self) -> BakeryStore:
        return self._store or get_store()

    @property
    def notifications(self) -> NotificationService:
        return self._notifications or NotificationService(store=self.store)

    # ------------------------------------------------------------------
    # Customer cancellation
    # ------------------------------------------------------------------

    async def cancel_order(
        self,
        order_id: str,
        user_id: str | None = None,
        email: str | None = None,
        reason: str | None = None,
        client_ip: str | None = None,
    ) -> CancelOrderResult:
        """Cancel an order on behalf of its customer.

        The requester must be the authenticated owner, or supply the guest
        email of a guest order. Only ``received`` and ``confirmed`` orders
        can be cancelled. After the status change, inventory is restored,
        the time slot is released and a history row is written; each of
        those is best-effort.

        Args:
            order_id: Order to cancel.
            user_id: Authenticated user id, if any.
            email: Email supplied for guest orders.
            reason: Cancellation reason for the history row.
            client_ip: Requester IP for security logging.

        Returns:
            CancelOrderResult with the order number, or the error.
        """
        order = await self.store.get_order(order_id)
        if order is None:
            return CancelOrderResult(
                success=False, error="Order not found", error_code="ORDER_NOT_FOUND"
            )

        authorized = False
        if user_id and order.user_id == user_id:
            authorized = True
        elif order.is_guest_order:
            if not (email and email.strip()):
                return CancelOrderResult(
                    success=False,
                    error="Email is required to cancel guest orders",
                    error_code="EMAIL_REQUIRED",
                )
            if not order.guest_email_matches(email):
                logger.warning(
                    "Unauthorized order cancellation attempt",
                    order_id=order_id,
                    client_ip=client_ip,
                )
                return CancelOrderResult(
                    success=False,
                    error="Unauthorized: Email does not match order",
                    error_code="EMAIL_MISMATCH",
                )
            authorized = True

        if not authorized:
            logger.warning(
                "Order cancellation denied",
                order_id=order_id,
                user_id=user_id,
                client_ip=client_ip,
            )
            return CancelOrderResult(
                success=False,
                error="Unauthorized: You do not have permission to cancel this order",
                error_code="FORBIDDEN",
            )

        block_reason = order.status.cancellation_block_reason()
        if block_reason:
            return CancelOrderResult(
                success=False,
                error=block_reason,
                error_code="ORDER_NOT_CANCELLABLE",
                details={"current_status": order.status.value},
            )

        try:
            await self.store.update_order(order_id, status=OrderStatus.CANCELLED)
        except Exception as e:
            logger.error("Failed to cancel order", order_id=order_id, error=str(e))
            return CancelOrderResult(
                success=False,
                error="Failed to cancel order. Please try again.",
                error_code="CANCEL_FAILED",
            )

        await best_effort(
            "restore_inventory", order_id, self.store.restore_inventory_for_order(order_id)
        )
        if order.time_slot_id:
            await best_effort(
                "release_slot", order_id, self.store.decrement_slot_orders(order.time_slot_id)
            )
        await best_effort(
            "status_history",
            order_id,
            self.store.add_status_history(
                StatusHistoryEntry(
                    order_id=order_id,
                    status=OrderStatus.CANCELLED,
                    notes=reason or DEFAULT_CANCELLATION_REASON,
                    changed_by=user_id,
                )
            ),
        )

        logger.info(
            "Order cancelled",
            order_id=order_id,
            order_number=order.order_number,
            previous_status=order.status.value,
            cancelled_by=user_id or "guest",
        )
        return CancelOrderResult(order_number=order.order_number)

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    async def update_order_status(
        self,
        order_id: str,
        status: str,
        notes: str | None = None,
        actor: str | None = None,
    ) -> UpdateOrderResult:
        """Move an order to a new status from the back-office.

        The target must be allowed by the order status policy for the
        order's fulfillment type. Re-applying the current status is allowed
        and still records history.

        Args:
            order_id: Order to update.
            status: Target status value.
            notes: Notes for the history row.
            actor: Who made the change.

        Returns:
            UpdateOrderResult with the updated order, or the error.
        """
        try:
            target = OrderStatus(status)
        except ValueError:
            return UpdateOrderResult(
                success=False, error="Invalid status", error_code="INVALID_STATUS"
            )

        order = await self.store.get_order(order_id)
        if order is None:
            return UpdateOrderResult(
                success=False, error="Order not found", error_code="ORDER_NOT_FOUND"
            )

        try:
            validate_order_transition(order.id, order.status, target, order.fulfillment_type)
        except InvalidStateTransitionError as e:
            return UpdateOrderResult(
                success=False,
                error=e.message,
                error_code="INVALID_TRANSITION",
                details=e.details,
            )

        changes: dict[str, Any] = {"status": target}
        now = datetime.now(timezone.utc)
        if target in (OrderStatus.DELIVERED, OrderStatus.PICKED_UP):
            changes["completed_at"] = now
        if target == OrderStatus.CONFIRMED and order.confirmed_at is None:
            changes["confirmed_at"] = now

        try:
            updated = await self.store.update_order(order_id, **changes)
        except Exception as e:
            logger.error("Failed to update order status", order_id=order_id, error=str(e))
            return UpdateOrderResult(
                success=False,
                error="Failed to update order status",
                error_code="UPDATE_FAILED",
            )

        await best_effort(
            "status_history",
            order_id,
            self.store.add_status_history(
                StatusHistoryEntry(
                    order_id=order_id,
                    status=target,
                    notes=notes,
                    changed_by=actor,
                )
            ),
        )

        logger.info(
            "Order status updated",
            order_id=order_id,
            from_status=order.status.value,
            to_status=target.value,
            actor=actor,
        )

        if updated is not None:
            await self.notifications.notify_status_change(updated)
        return UpdateOrderResult(order=updated)

    async def update_internal_notes(self, order_id: str, notes: str) -> UpdateOrderResult:
        """Replace an order's staff-only notes."""
        try:
            updated = await self.store.update_order(order_id, internal_notes=notes)
        except Exception as e:
            logger.error("Failed to update order notes", order_id=order_id, error=str(e))
            return UpdateOrderResult(
                success=False,
                error="Failed to update order notes",
                error_code="UPDATE_FAILED",
            )
        if updated is None:
            return UpdateOrderResult(
                success=False, error="Order not found", error_code="ORDER_NOT_FOUND"
            )
        return UpdateOrderResult(order=updated)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_order_details(self, order_id: str) -> OrderDetailsResult:
        """Get an order with its items and status history."""
        order = await self.store.get_order(order_id)
        if order is None:
            return OrderDetailsResult(
                success=False, error="Order not found", error_code="ORDER_NOT_FOUND"
            )
        return await self._with_details(order)

    async def track_order(
        self,
        order_number: str,
        email: str,
        user_id: str | None = None,
    ) -> OrderDetailsResult:
        """Look up an order for the public tracking page.

        Guest orders match on the guest email. Registered orders match
        only for their authenticated owner with the owner's email. Every
        mismatch looks the same as an unknown order number.

        Args:
            order_number: Human-readable order number.
            email: Email entered by the customer.
            user_id: Authenticated user id, if any.

        Returns:
            OrderDetailsResult for the order, or ORDER_NOT_FOUND.
        """
        not_found = OrderDetailsResult(
            success=False, error="Order not found", error_code="ORDER_NOT_FOUND"
        )

        order = await self.store.get_order_by_number(order_number.strip())
        if order is None:
            return not_found

        if order.is_guest_order:
            if not order.guest_email_matches(email):
                return not_found
        else:
            if not user_id or user_id != order.user_id:
                return not_found
            profile = await self.store.get_customer_profile(order.user_id)
            if profile is None or profile.email.strip().lower() != (email or "").strip().lower():
                return not_found

        return await self._with_details(order)

    async def _with_details(self, order: Order) -> OrderDetailsResult:
        items = await self.store.get_order_items(order.id)
        history = await self.store.list_status_history(order.id)
        return OrderDetailsResult(order=order, items=items, status_history=history)


# Global service instance
_order_service: OrderService | None = None


def get_order_service() -> OrderService:
    """Get or create the order service instance.

    Returns:
        OrderService instance.
    """
    global _order_service
    if _order_service is None:
        _order_service = OrderService()
    return _order_service
