"""Discount code validation service."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

import structlog

from bakery_api.domain.entities import DiscountCode
from bakery_api.domain.state_machines import DiscountType
from bakery_api.domain.value_objects import ZERO, format_usd, to_money
from bakery_api.infrastructure.repositories import BakeryStore, get_store

logger = structlog.get_logger()


@dataclass
class DiscountValidationResult:
    """Result of validating a discount code."""

    discount: DiscountCode | None = None
    discount_amount: Decimal = ZERO
    success: bool = True
    error: str | None = None
    error_code: str | None = None

    @property
    def free_delivery(self) -> bool:
        return (
            self.discount is not None
            and self.discount.discount_type == DiscountType.FREE_DELIVERY
        )


def calculate_discount_amount(discount: DiscountCode, subtotal: Decimal) -> Decimal:
    """Compute the amount a code takes off a subtotal.

    Percentage codes take ``value`` percent, fixed codes take ``value``
    dollars, free-delivery codes take nothing off the subtotal. The
    result never exceeds the subtotal.

    Args:
        discount: The discount code.
        subtotal: Order subtotal.

    Returns:
        Discount amount rounded to cents.
    """
    if discount.discount_type == DiscountType.PERCENTAGE:
        amount = subtotal * discount.value / Decimal(100)
    elif discount.discount_type == DiscountType.FIXED:
        amount = discount.value
    else:
        amount = ZERO
    return to_money(min(amount, subtotal))


class DiscountService:
    """Validates discount codes against an order subtotal."""

    def __init__(
        self,
        store: BakeryStore | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._now = now or (lambda: datetime.now(timezone.utc))

    @property
    def store(self) -> BakeryStore:
        return self._store or get_store()

    async def validate_discount(self, code: str, subtotal: Decimal) -> DiscountValidationResult:
        """Validate a discount code.

        Checks run in order: exists, active, usage limit, start date,
        end date, minimum order amount. The first failure is returned.

        Args:
            code: Code as entered by the customer (any case).
            subtotal: Current cart subtotal.

        Returns:
            DiscountValidationResult with the discount and amount on success.
        """
        discount = await self.store.find_discount_code(code)
        if discount is None:
            return DiscountValidationResult(
                success=False,
                error="Invalid discount code",
                error_code="DISCOUNT_NOT_FOUND",
            )

        error = self._rejection_reason(discount, subtotal)
        if error:
            logger.info("Discount code rejected", code=discount.code, reason=error)
            return DiscountValidationResult(
                discount=discount,
                success=False,
                error=error,
                error_code="DISCOUNT_INVALID",
            )

        return DiscountValidationResult(
            discount=discount,
            discount_amount=calculate_discount_amount(discount, subtotal),
        )

    def _rejection_reason(self, discount: DiscountCode, subtotal: Decimal) -> str | None:
        now = self._now()
        if not discount.is_active:
            return "This discount code is no longer active"
        if discount.max_uses is not None and discount.current_uses >= discount.max_uses:
            return "This discount code has reached its usage limit"
        if discount.valid_from and discount.valid_from > now:
            return "This discount code is not yet valid"
        if discount.valid_until and discount.valid_until < now:
            return "This discount code has expired"
        if discount.min_order_amount is not None and subtotal < discount.min_order_amount:
            return (
                f"Minimum order amount of {format_usd(discount.min_order_amount)} "
                "required for this code"
            )
        return None


# Global service instance
_discount_service: DiscountService | None = None


def get_discount_service() -> DiscountService:
    """Get or create the discount service instance."""
    global _discount_service
    if _discount_service is None:
        _discount_service = DiscountService()
    return _discount_service
