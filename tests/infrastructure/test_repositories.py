"""Tests for the in-memory store."""

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from bakery_api.infrastructure.repositories import (
    InMemoryBakeryStore,
    create_store,
    format_order_number,
)


class TestOrderNumbers:
    """Tests for order number generation."""

    def test_format(self):
        assert format_order_number("HS", 2030, 7) == "HS-2030-007"
        assert format_order_number("HS", 2030, 1234) == "HS-2030-1234"

    @pytest.mark.asyncio
    async def test_sequential_numbers_use_creation_year(self, make_order):
        created = datetime(2030, 3, 1, tzinfo=timezone.utc)

        first = await make_order(created_at=created)
        second = await make_order(created_at=created)

        assert first.order_number == "HS-2030-001"
        assert second.order_number == "HS-2030-002"

    @pytest.mark.asyncio
    async def test_lookup_by_number_and_payment_intent(self, store, make_order):
        order = await make_order(stripe_payment_intent_id="pi_1")

        assert (await store.get_order_by_number(order.order_number)).id == order.id
        assert (await store.get_order_by_payment_intent("pi_1")).id == order.id
        assert await store.get_order_by_payment_intent("pi_2") is None


class TestOrders:
    """Tests for order reads and writes."""

    @pytest.mark.asyncio
    async def test_reads_are_copies(self, store, make_order):
        order = await make_order()

        fetched = await store.get_order(order.id)
        fetched.internal_notes = "changed locally"

        assert (await store.get_order(order.id)).internal_notes is None

    @pytest.mark.asyncio
    async def test_update_unknown_field_raises(self, store, make_order):
        order = await make_order()

        with pytest.raises(AttributeError):
            await store.update_order(order.id, not_a_field=1)

    @pytest.mark.asyncio
    async def test_update_missing_order(self, store):
        assert await store.update_order("missing", internal_notes="x") is None

    @pytest.mark.asyncio
    async def test_delete_order_drops_items(self, store, make_order):
        order = await make_order()

        await store.delete_order(order.id)

        assert await store.get_order(order.id) is None
        assert await store.get_order_items(order.id) == []


class TestSlotsAndInventory:
    """Tests for slot counters and inventory adjustments."""

    @pytest.mark.asyncio
    async def test_slot_decrement_floors_at_zero(self, seeded_store):
        await seeded_store.decrement_slot_orders("slot-morning")

        slot = await seeded_store.get_time_slot("slot-morning")
        assert slot.current_orders == 0

    @pytest.mark.asyncio
    async def test_unavailable_slot_not_found(self, seeded_store, slot):
        seeded_store.add_time_slot(replace(slot, is_available=False))

        assert await seeded_store.find_time_slot(slot.date, "09:00") is None

    @pytest.mark.asyncio
    async def test_deduct_and_restore_once(self, seeded_store, make_order, loaf):
        seeded_store.add_variant(replace(loaf, track_inventory=True, inventory_count=1))
        order = await make_order()

        assert await seeded_store.deduct_inventory_for_order(order.id) is True
        assert await seeded_store.deduct_inventory_for_order(order.id) is False
        assert seeded_store.get_variant("variant-loaf").inventory_count == 0

        assert await seeded_store.restore_inventory_for_order(order.id) is True
        assert await seeded_store.restore_inventory_for_order(order.id) is False
        assert seeded_store.get_variant("variant-loaf").inventory_count == 2

    @pytest.mark.asyncio
    async def test_untracked_variant_untouched(self, seeded_store, make_order):
        order = await make_order()

        await seeded_store.deduct_inventory_for_order(order.id)

        assert seeded_store.get_variant("variant-loaf").inventory_count is None


class TestLookups:
    """Tests for zone, discount and settings lookups."""

    @pytest.mark.asyncio
    async def test_zone_by_zip(self, seeded_store):
        assert (await seeded_store.find_delivery_zone("94103")).id == "zone-downtown"
        assert await seeded_store.find_delivery_zone("10001") is None

    @pytest.mark.asyncio
    async def test_discount_code_case_insensitive(self, seeded_store):
        found = await seeded_store.find_discount_code(" welcome10 ")

        assert found.id == "discount-welcome"

    @pytest.mark.asyncio
    async def test_business_settings_only_known_keys(self, store):
        store.set_business_setting("business_name", "Happy Sourdough")

        settings = await store.get_business_settings(["business_name", "tax_settings"])

        assert settings == {"business_name": "Happy Sourdough"}

    def test_create_store_falls_back_to_memory(self):
        assert isinstance(create_store("unknown"), InMemoryBakeryStore)
