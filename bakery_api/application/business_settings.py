"""Business settings service.

Reads the ``business_settings`` rows (business info, operating hours, tax
configuration) through the store and keeps them in a per-process cache for
``business_settings_ttl_seconds``. Missing rows fall back to defaults.
"""

import time
from collections.abc import Callable
from decimal import Decimal
from typing import Any

import structlog

from bakery_api.domain.value_objects import to_money
from bakery_api.infrastructure.config import settings
from bakery_api.infrastructure.repositories import BakeryStore, get_store

logger = structlog.get_logger()


DEFAULT_BUSINESS_INFO: dict[str, str] = {
    "business_name": "Happy Sourdough",
    "business_phone": "+1 (555) 123-4567",
    "business_email": "hello@happysourdough.com",
    "business_address": "123 Bakery Lane, San Francisco, CA 94102",
}

DEFAULT_OPERATING_HOURS: dict[str, dict[str, Any]] = {
    "monday": {"open": "07:00", "close": "19:00", "closed": False},
    "tuesday": {"open": "07:00", "close": "19:00", "closed": False},
    "wednesday": {"open": "07:00", "close": "19:00", "closed": False},
    "thursday": {"open": "07:00", "close": "19:00", "closed": False},
    "friday": {"open": "07:00", "close": "19:00", "closed": False},
    "saturday": {"open": "08:00", "close": "17:00", "closed": False},
    "sunday": {"open": "08:00", "close": "14:00", "closed": False},
}

SETTING_KEYS = [*DEFAULT_BUSINESS_INFO, "operating_hours", "tax_settings"]


class BusinessSettingsService:
    """Cached access to business settings.

    The cache holds every settings row read in one batch and expires as a
    whole after the TTL.
    """

    def __init__(
        self,
        store: BakeryStore | None = None,
        ttl_seconds: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize business settings service.

        Args:
            store: Store to read settings from; defaults to the global store.
            ttl_seconds: Cache lifetime.
            clock: Monotonic clock (tests).
        """
        self._store = store
        self.ttl_seconds = (
            ttl_seconds if ttl_seconds is not None else settings.business_settings_ttl_seconds
        )
        self._clock = clock
        self._cache: dict[str, Any] | None = None
        self._cached_at = 0.0

    @property
    def store(self) -> BakeryStore:
        return self._store or get_store()

    async def _load(self) -> dict[str, Any]:
        if self._cache is not None and self._clock() - self._cached_at < self.ttl_seconds:
            return self._cache

        try:
            values = await self.store.get_business_settings(SETTING_KEYS)
        except Exception as e:
            logger.warning("Failed to load business settings, using defaults", error=str(e))
            return {}

        if not values:
            logger.warning("Business settings not found, using defaults")

        self._cache = values
        self._cached_at = self._clock()
        return values

    def clear_cache(self) -> None:
        """Drop cached settings so the next read hits the store."""
        self._cache = None
        self._cached_at = 0.0

    async def get_business_info(self) -> dict[str, str]:
        """Business name and contact details."""
        values = await self._load()
        info = dict(DEFAULT_BUSINESS_INFO)
        for key in DEFAULT_BUSINESS_INFO:
            if values.get(key):
                info[key] = str(values[key])
        return info

    async def get_operating_hours(self) -> dict[str, dict[str, Any]]:
        """Opening hours keyed by lower-case weekday."""
        values = await self._load()
        return values.get("operating_hours") or DEFAULT_OPERATING_HOURS

    async def get_tax_rate(self, delivery_zone_id: str | None = None) -> Decimal:
        """Get the sales tax rate.

        ``tax_settings`` has a ``type`` of ``flat`` or ``by_zone``. Zone
        rates apply only when the order has a matching delivery zone;
        anything else uses the flat ``rate``.

        Args:
            delivery_zone_id: Resolved delivery zone, if any.

        Returns:
            Rate as a fraction (0.08 for 8%).
        """
        default_rate = Decimal(str(settings.default_tax_rate))
        values = await self._load()
        tax_settings = values.get("tax_settings")
        if not isinstance(tax_settings, dict):
            return default_rate

        if tax_settings.get("type") == "by_zone" and delivery_zone_id:
            for zone in tax_settings.get("zones") or []:
                if zone.get("zone_id") == delivery_zone_id and zone.get("rate") is not None:
                    return Decimal(str(zone["rate"]))

        rate = tax_settings.get("rate")
        return Decimal(str(rate)) if rate else default_rate

    async def calculate_tax(
        self, subtotal: Decimal, delivery_zone_id: str | None = None
    ) -> Decimal:
        """Tax on a subtotal, rounded to cents."""
        rate = await self.get_tax_rate(delivery_zone_id)
        return to_money(subtotal * rate)


def format_operating_hours(hours: dict[str, dict[str, Any]]) -> str:
    """Render opening hours with consecutive identical days grouped.

    Example: ``"Monday - Friday: 7:00 AM - 7:00 PM"``.
    """

    def format_time(value: str) -> str:
        hour_text, minutes = value.split(":")
        hour = int(hour_text)
        suffix = "PM" if hour >= 12 else "AM"
        hour12 = 12 if hour == 0 else hour - 12 if hour > 12 else hour
        return f"{hour12}:{minutes} {suffix}"

    groups: list[tuple[list[str], str]] = []
    for day, day_hours in hours.items():
        if day_hours.get("closed"):
            text = "Closed"
        else:
            text = f"{format_time(day_hours['open'])} - {format_time(day_hours['close'])}"
        if groups and groups[-1][1] == text:
            groups[-1][0].append(day.capitalize())
        else:
            groups.append(([day.capitalize()], text))

    lines = []
    for days, text in groups:
        label = f"{days[0]} - {days[-1]}" if len(days) > 1 else days[0]
        lines.append(f"{label}: {text}")
    return "\n".join(lines)


# Global service instance
_business_settings_service: BusinessSettingsService | None = None


def get_business_settings_service() -> BusinessSettingsService:
    """Get or create the business settings service instance."""
    global _business_settings_service
    if _business_settings_service is None:
        _business_settings_service = BusinessSettingsService()
    return _business_settings_service


def reset_business_settings_service() -> None:
    """Reset the business settings service (for testing)."""
    global _business_settings_service
    _business_settings_service = None
