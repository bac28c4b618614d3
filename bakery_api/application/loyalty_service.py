"""Loyalty points service.

Registered customers see their balance and tier, and spend points on
single-use fixed-amount discount codes usable at checkout.
"""

import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import structlog

from bakery_api.domain.entities import DiscountCode, LoyaltyAccount
from bakery_api.domain.state_machines import DiscountType, LoyaltyTier
from bakery_api.domain.value_objects import ZERO, to_money
from bakery_api.infrastructure.config import settings
from bakery_api.infrastructure.repositories import BakeryStore, get_store

logger = structlog.get_logger()


# ============================================================================
# Result Types
# ============================================================================


@dataclass
class LoyaltyStatusResult:
    """A customer's loyalty standing."""

    points_balance: int
    lifetime_points: int
    tier: LoyaltyTier
    points_to_next_tier: int | None
    next_tier: LoyaltyTier | None
    success: bool = True


@dataclass
class RedeemPointsResult:
    """Result of spending loyalty points."""

    code: str | None = None
    discount_value: Decimal = ZERO
    points_redeemed: int = 0
    points_balance: int | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None


# ============================================================================
# Service
# ============================================================================


class LoyaltyService:
    """Reads loyalty balances and redeems points for discount codes."""

    def __init__(
        self,
        store: BakeryStore | None = None,
        points_per_reward: int | None = None,
        reward_value: Decimal | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize loyalty service.

        Args:
            store: Data store; defaults to the global store.
            points_per_reward: Points one reward costs.
            reward_value: Dollar value of one reward.
            now: UTC time source (tests).
        """
        self._store = store
        self.points_per_reward = points_per_reward or settings.loyalty_points_per_reward
        self.reward_value = reward_value or settings.loyalty_reward_value
        self._now = now or (lambda: datetime.now(timezone.utc))

    @property
    def store(self) -> BakeryStore:
        return self._store or get_store()

    async def get_status(self, user_id: str) -> LoyaltyStatusResult:
        """Get a customer's balance, lifetime points and tier.

        Customers who have never earned points are reported as bronze
        with a zero balance.
        """
        account = await self.store.get_loyalty_account(user_id) or LoyaltyAccount(user_id=user_id)
        return LoyaltyStatusResult(
            points_balance=account.points,
            lifetime_points=account.lifetime_points,
            tier=account.tier,
            points_to_next_tier=account.points_to_next_tier,
            next_tier=account.tier.next_tier,
        )

    async def redeem_points(self, user_id: str, points: int) -> RedeemPointsResult:
        """Spend points on a discount code.

        Points must be a positive multiple of ``points_per_reward``; each
        block is worth ``reward_value`` off an order. The code is single
        use and valid from now on.

        Args:
            user_id: Redeeming customer.
            points: Points to spend.

        Returns:
            RedeemPointsResult with the new code and remaining balance.
        """
        if points <= 0 or points % self.points_per_reward:
            return RedeemPointsResult(
                success=False,
                error=f"Points must be redeemed in multiples of {self.points_per_reward}",
                error_code="INVALID_POINTS",
            )

        value = to_money(self.reward_value * (points // self.points_per_reward))
        reward = DiscountCode(
            id=str(uuid4()),
            code=f"{settings.loyalty_code_prefix}-{secrets.token_hex(4).upper()}",
            discount_type=DiscountType.FIXED,
            value=value,
            max_uses=1,
            valid_from=self._now(),
        )

        account = await self.store.redeem_loyalty_points(user_id, points, reward)
        if account is None:
            logger.info("Loyalty redemption rejected", user_id=user_id, points=points)
            return RedeemPointsResult(
                success=False,
                error="Not enough points",
                error_code="INSUFFICIENT_POINTS",
            )

        logger.info(
            "Loyalty points redeemed",
            user_id=user_id,
            points=points,
            code=reward.code,
            balance=account.points,
        )
        return RedeemPointsResult(
            code=reward.code,
            discount_value=value,
            points_redeemed=points,
            points_balance=account.points,
        )


# Global service instance
_loyalty_service: LoyaltyService | None = None


def get_loyalty_service() -> LoyaltyService:
    """Get or create the loyalty service instance."""
    global _loyalty_service
    if _loyalty_service is None:
        _loyalty_service = LoyaltyService()
    return _loyalty_service
