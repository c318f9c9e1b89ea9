"""Tests for the catalog cache."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from iap_entitlements.errors import GatewayUnavailable
from iap_entitlements.models import Product, ProductCategory
from iap_entitlements.models.events import StateTopic
from iap_entitlements.repositories.catalog_cache import CatalogCache, sort_by_price
from iap_entitlements.services.event_dispatcher import StateEventDispatcher
from iap_entitlements.services.local_gateway import LocalStoreGateway
from iap_entitlements.services.store_gateway import StoreGateway


def product(product_id, category, price):
    return Product(id=product_id, category=category, price=Decimal(price))


@pytest.fixture
def products():
    return [
        product("credits.bundle", "consumable", "4.99"),
        product("credits.pack", "consumable", "1.99"),
        product("nonconsumable.lifetime", "one_time", "9.99"),
        product("nonrenewable.year", "fixed_term", "14.99"),
        product("subscription.yearly", "auto_renewing", "19.99"),
        product("subscription.monthly", "auto_renewing", "2.99"),
        product("legacy.thing", "mystery_type", "0.99"),
    ]


@pytest.fixture
def gateway(products):
    return LocalStoreGateway(products)


@pytest.fixture
def all_ids(products):
    return {p.id for p in products}


class TestSortByPrice:
    """Test price ordering."""

    def test_ties_keep_order(self):
        a = product("a", "consumable", "1.00")
        b = product("b", "consumable", "1.00")
        c = product("c", "consumable", "0.50")
        assert [p.id for p in sort_by_price([a, b, c])] == ["c", "a", "b"]


class TestLoad:
    """Test catalog loading and classification."""

    @pytest.mark.asyncio
    async def test_classifies_and_sorts(self, gateway, all_ids):
        catalog = CatalogCache(gateway)
        await catalog.load(all_ids)

        assert [p.price for p in catalog.consumables] == [Decimal("1.99"), Decimal("4.99")]
        assert [p.id for p in catalog.auto_renewing] == [
            "subscription.monthly",
            "subscription.yearly",
        ]
        assert [p.id for p in catalog.one_time] == ["nonconsumable.lifetime"]
        assert [p.id for p in catalog.fixed_term] == ["nonrenewable.year"]

    @pytest.mark.asyncio
    async def test_unrecognized_category_dropped(self, gateway, all_ids):
        catalog = CatalogCache(gateway)
        await catalog.load(all_ids)
        assert catalog.find("legacy.thing") is None
        assert len(catalog) == 6

    @pytest.mark.asyncio
    async def test_only_requested_ids(self, gateway):
        catalog = CatalogCache(gateway)
        await catalog.load({"credits.pack"})
        assert catalog.all_product_ids() == ["credits.pack"]

    @pytest.mark.asyncio
    async def test_load_replaces_contents(self, gateway, all_ids):
        catalog = CatalogCache(gateway)
        await catalog.load(all_ids)
        await catalog.load({"nonconsumable.lifetime"})
        assert catalog.all_product_ids() == ["nonconsumable.lifetime"]
        assert catalog.consumables == []

    @pytest.mark.asyncio
    async def test_fetch_failure_keeps_previous_contents(self, gateway, all_ids):
        catalog = CatalogCache(gateway)
        await catalog.load(all_ids)

        gateway.fetch_error = ConnectionError("store offline")
        with pytest.raises(GatewayUnavailable) as exc_info:
            await catalog.load({"credits.pack"})

        assert isinstance(exc_info.value.cause, ConnectionError)
        assert len(catalog) == 6

    @pytest.mark.asyncio
    async def test_first_load_failure_leaves_empty(self):
        gateway = MagicMock(spec=StoreGateway)
        gateway.fetch_products = AsyncMock(side_effect=GatewayUnavailable("fetch_products"))
        catalog = CatalogCache(gateway)

        with pytest.raises(GatewayUnavailable):
            await catalog.load({"a"})
        assert len(catalog) == 0

    @pytest.mark.asyncio
    async def test_load_publishes_catalog_event(self, gateway, all_ids):
        dispatcher = StateEventDispatcher()
        received = []
        dispatcher.subscribe(received.append, StateTopic.CATALOG)

        await CatalogCache(gateway, dispatcher).load(all_ids)

        assert len(received) == 1
        assert received[0].payload["products"]["consumable"] == ["credits.pack", "credits.bundle"]


class TestLookup:
    """Test lookups."""

    @pytest.mark.asyncio
    async def test_find_and_contains(self, gateway, all_ids):
        catalog = CatalogCache(gateway)
        await catalog.load(all_ids)

        assert catalog.find("credits.pack").price == Decimal("1.99")
        assert catalog.find("credits.pack", ProductCategory.ONE_TIME) is None
        assert catalog.contains("subscription.yearly", ProductCategory.AUTO_RENEWING)
        assert not catalog.contains("subscription.yearly", ProductCategory.FIXED_TERM)

    def test_empty_catalog(self, gateway):
        catalog = CatalogCache(gateway)
        assert catalog.all_products() == []
        assert catalog.products(ProductCategory.CONSUMABLE) == []
