"""
Unit tests for DropshippingService

Exercises dispatch, fan-out search with partial failures, order creation rules
and health reporting against scripted FakeProvider adapters.
"""

import pytest

from DropshipHub.exceptions import (
    OrderCreationError,
    ProviderAuthenticationError,
    ProviderConnectionError,
    ProviderDisabledError,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderNotFoundError,
    ProviderNotRegisteredError,
    ProviderRateLimitError,
    ValidationError,
)
from DropshipHub.schemas.dropship_schemas import (
    HealthStatus,
    ImportResult,
    InventoryUpdate,
    OrderResult,
    OrderState,
    OrderStatus,
    Product,
    ProductSearchQuery,
)
from DropshipHub.tests.fakes import FakeProvider


def product(product_id: str, title: str = "Item") -> Product:
    return Product(id=product_id, title=title, price=9.99)


class TestProviderManagement:
    def test_enabled_providers(self, service):
        service.register_provider("printful", FakeProvider("printful"))
        service.register_provider("spocket", FakeProvider("spocket", enabled=False))
        assert service.get_enabled_providers() == ["printful"]

    def test_provider_status(self, service):
        service.register_provider("printful", FakeProvider("printful"))
        service.register_provider("spocket", FakeProvider("spocket", enabled=False))
        status = service.get_provider_status()
        assert [entry["name"] for entry in status] == ["printful", "spocket"]
        assert status[0]["default"] is True
        assert status[1]["enabled"] is False
        assert "create_order" in status[0]["capabilities"]


class TestOrders:
    """create_order / get_order_status / cancel_order"""

    @pytest.mark.asyncio
    async def test_create_order_uses_default_provider(self, service, order_request):
        printful = FakeProvider("printful")
        spocket = FakeProvider("spocket")
        service.register_provider("printful", printful)
        service.register_provider("spocket", spocket)

        result = await service.create_order(order_request)

        assert result.success is True
        assert result.order_id == "order-1"
        assert printful.calls["submit_order"] == 1
        assert spocket.calls["submit_order"] == 0

    @pytest.mark.asyncio
    async def test_invalid_request_makes_no_provider_call(self, service, order_request):
        adapter = FakeProvider("printful")
        service.register_provider("printful", adapter)
        order_request.items[0].quantity = 0

        with pytest.raises(ValidationError):
            await service.create_order(order_request, "printful")

        assert adapter.calls["submit_order"] == 0
        assert sum(adapter.calls.values()) == 0

    @pytest.mark.asyncio
    async def test_no_fallback_on_failure(self, service, order_request):
        printful = FakeProvider("printful").script(
            "submit_order", ProviderError("Invalid variant", provider_name="printful", remote_status=400,
                                          details={"response": {"error": {"message": "Invalid variant"}}})
        )
        spocket = FakeProvider("spocket")
        service.register_provider("printful", printful)
        service.register_provider("spocket", spocket)

        with pytest.raises(OrderCreationError) as exc_info:
            await service.create_order(order_request)

        assert exc_info.value.raw_error == {"error": {"message": "Invalid variant"}}
        assert exc_info.value.provider_name == "printful"
        assert printful.calls["submit_order"] == 2
        assert spocket.calls["submit_order"] == 0

    @pytest.mark.asyncio
    async def test_order_creation_retried_once_then_succeeds(self, service, order_request):
        adapter = FakeProvider("spocket").script(
            "submit_order",
            ProviderError("temporarily rejected", remote_status=422),
            OrderResult(success=True, cost=12.0, message="created", order_id="sp-77"),
        )
        service.register_provider("spocket", adapter)

        result = await service.create_order(order_request, "spocket")

        assert result.order_id == "sp-77"
        assert adapter.calls["submit_order"] == 2

    @pytest.mark.asyncio
    async def test_empty_order_id_is_an_error(self, service, order_request):
        adapter = FakeProvider("printful").script(
            "submit_order", OrderResult(success=True, cost=1.0, message="accepted")
        )
        service.register_provider("printful", adapter)

        with pytest.raises(OrderCreationError):
            await service.create_order(order_request)

    @pytest.mark.asyncio
    async def test_no_providers_is_configuration_error(self, service, order_request):
        with pytest.raises(ProviderNotConfiguredError):
            await service.create_order(order_request)

    @pytest.mark.asyncio
    async def test_disabled_default_rejected(self, service, order_request):
        service.register_provider("printful", FakeProvider("printful"))
        service.register_provider("printful", FakeProvider("printful", enabled=False))
        with pytest.raises(ProviderDisabledError):
            await service.create_order(order_request)

    @pytest.mark.asyncio
    async def test_order_status_waits_out_rate_limit(self, service, clock):
        """A 2s Retry-After delays the retried call by at least 2s"""
        expected = OrderStatus(order_id="order-1", status=OrderState.SHIPPED, tracking_number="TRK1")
        adapter = FakeProvider("printful").script(
            "get_order_status",
            ProviderRateLimitError("Rate limit exceeded", provider_name="printful", retry_after=2),
            expected,
        )
        service.register_provider("printful", adapter)

        status = await service.get_order_status("order-1", "printful")

        assert status is expected
        assert adapter.calls["get_order_status"] == 2
        assert clock.sleeps and clock.sleeps[0] >= 2

    @pytest.mark.asyncio
    async def test_order_status_requires_provider_name(self, service):
        service.register_provider("printful", FakeProvider("printful"))
        with pytest.raises(ValidationError):
            await service.get_order_status("order-1", None)

    @pytest.mark.asyncio
    async def test_unknown_provider(self, service):
        service.register_provider("printful", FakeProvider("printful"))
        with pytest.raises(ProviderNotRegisteredError):
            await service.get_order_status("order-1", "aliexpress")

    @pytest.mark.asyncio
    async def test_cancel_false_propagates(self, service):
        adapter = FakeProvider("printful").script("cancel_order", False)
        service.register_provider("printful", adapter)

        assert await service.cancel_order("order-1", "printful") is False
        assert adapter.calls["cancel_order"] == 1

    @pytest.mark.asyncio
    async def test_cancel_not_found_raises(self, service):
        adapter = FakeProvider("printful").script("cancel_order", ProviderNotFoundError("Order not found"))
        service.register_provider("printful", adapter)
        with pytest.raises(ProviderNotFoundError):
            await service.cancel_order("missing", "printful")
        assert adapter.calls["cancel_order"] == 1


class TestProductSearch:
    """Fan-out search across enabled providers"""

    @pytest.mark.asyncio
    async def test_partial_failure_returns_remaining_results(self, service):
        printful = FakeProvider("printful", products=[product("p1"), product("p2")])
        broken = FakeProvider("broken").script("search_products", ProviderAuthenticationError("bad key"))
        spocket = FakeProvider("spocket", products=[product("s1")])
        for adapter in (printful, broken, spocket):
            service.register_provider(adapter.name, adapter)

        results = await service.get_available_products(ProductSearchQuery(keyword="shirt"))

        assert [(p.provider, p.id) for p in results] == [("printful", "p1"), ("printful", "p2"), ("spocket", "s1")]

    @pytest.mark.asyncio
    async def test_all_providers_failing_returns_empty(self, service):
        service.register_provider("a", FakeProvider("a").script("search_products", ProviderConnectionError("down")))
        service.register_provider("b", FakeProvider("b").script("search_products", RuntimeError("bug")))
        assert await service.get_available_products() == []

    @pytest.mark.asyncio
    async def test_disabled_providers_not_searched(self, service):
        disabled = FakeProvider("spocket", enabled=False, products=[product("s1")])
        service.register_provider("printful", FakeProvider("printful", products=[product("p1")]))
        service.register_provider("spocket", disabled)

        results = await service.get_available_products()

        assert [p.id for p in results] == ["p1"]
        assert disabled.calls["search_products"] == 0

    @pytest.mark.asyncio
    async def test_named_provider_delegates_directly(self, service):
        printful = FakeProvider("printful", products=[product("p1")])
        spocket = FakeProvider("spocket", products=[product("s1")])
        service.register_provider("printful", printful)
        service.register_provider("spocket", spocket)

        results = await service.get_available_products(provider_name="spocket")

        assert [(p.provider, p.id) for p in results] == [("spocket", "s1")]
        assert printful.calls["search_products"] == 0

    @pytest.mark.asyncio
    async def test_named_provider_failure_is_raised(self, service):
        service.register_provider("printful", FakeProvider("printful").script(
            "search_products", ProviderNotFoundError("no catalog")))
        with pytest.raises(ProviderNotFoundError):
            await service.get_available_products(provider_name="printful")

    @pytest.mark.asyncio
    async def test_callers_receive_copies(self, service):
        original = product("p1", title="Original")
        service.register_provider("printful", FakeProvider("printful", products=[original]))

        results = await service.get_available_products()
        results[0].title = "Changed"

        assert original.title == "Original"
        assert original.provider is None

    @pytest.mark.asyncio
    async def test_no_enabled_providers(self, service):
        with pytest.raises(ProviderNotConfiguredError):
            await service.get_available_products()

    @pytest.mark.asyncio
    async def test_get_product_tagged(self, service):
        service.register_provider("spocket", FakeProvider("spocket"))
        result = await service.get_product("s9", "spocket")
        assert result.id == "s9"
        assert result.provider == "spocket"

    @pytest.mark.asyncio
    async def test_get_product_requires_provider_name(self, service):
        service.register_provider("spocket", FakeProvider("spocket"))
        with pytest.raises(ValidationError):
            await service.get_product("s9", "")


class TestCatalogSync:
    @pytest.mark.asyncio
    async def test_import_products_reports_each_failure(self, service):
        adapter = FakeProvider("spocket").script(
            "import_product",
            ImportResult(success=True, message="ok", product_id="a", local_product_id="10"),
            ImportResult(success=False, message="Failed to import product from Spocket", product_id="b",
                         errors=["not importable"]),
            ImportResult(success=True, message="ok", product_id="c", local_product_id="12"),
        )
        service.register_provider("spocket", adapter)

        results = await service.import_products(["a", "b", "c"], "spocket")

        assert len(results) == 3
        assert sorted(result.success for result in results) == [False, True, True]

    @pytest.mark.asyncio
    async def test_import_exhausted_retries_becomes_result(self, service):
        adapter = FakeProvider("spocket").script("import_product", ProviderConnectionError("down"))
        service.register_provider("spocket", adapter)

        result = await service.import_product("a", "spocket")

        assert result.success is False
        assert result.errors == ["down"]

    @pytest.mark.asyncio
    async def test_import_rejected_credentials_raise(self, service):
        adapter = FakeProvider("spocket").script(
            "import_product", ProviderAuthenticationError("Invalid API key", remote_status=401)
        )
        service.register_provider("spocket", adapter)

        with pytest.raises(ProviderAuthenticationError):
            await service.import_products(["a", "b"], "spocket")

    @pytest.mark.asyncio
    async def test_sync_inventory_outage_is_raised_not_zeroed(self, service):
        adapter = FakeProvider("spocket").script("sync_inventory", ProviderConnectionError("down"))
        service.register_provider("spocket", adapter)

        with pytest.raises(ProviderConnectionError):
            await service.sync_inventory(["id1"], "spocket")
        assert adapter.calls["sync_inventory"] == 3


    @pytest.mark.asyncio
    async def test_sync_inventory_one_result_per_id_in_order(self, service):
        adapter = FakeProvider("spocket").script(
            "sync_inventory",
            [
                InventoryUpdate(product_id="id3", stock=1, available=True),
                InventoryUpdate(product_id="id1", stock=4, available=True),
            ],
        )
        service.register_provider("spocket", adapter)

        updates = await service.sync_inventory(["id1", "id2", "id3"], "spocket")

        assert [update.product_id for update in updates] == ["id1", "id2", "id3"]
        assert updates[0].stock == 4
        assert updates[1].available is False and updates[1].stock == 0
        assert updates[2].stock == 1

    @pytest.mark.asyncio
    async def test_sync_inventory_empty(self, service):
        service.register_provider("spocket", FakeProvider("spocket"))
        assert await service.sync_inventory([], "spocket") == []


class TestLifecycleAndHealth:
    @pytest.mark.asyncio
    async def test_health_check_never_raises(self, service):
        service.register_provider("ok", FakeProvider("ok"))
        service.register_provider("down", FakeProvider("down").script("check_health", ProviderConnectionError("x")))
        service.register_provider("bug", FakeProvider("bug").script("check_health", RuntimeError("boom")))
        service.register_provider("off", FakeProvider("off", enabled=False))

        report = {health.provider: health for health in await service.health_check()}

        assert report["ok"].status == HealthStatus.HEALTHY
        assert report["down"].status == HealthStatus.UNHEALTHY
        assert report["bug"].status == HealthStatus.UNHEALTHY
        assert report["off"].status == HealthStatus.DISABLED
        assert report["off"].enabled is False

    @pytest.mark.asyncio
    async def test_initialize_reports_unreachable_providers(self, service):
        service.register_provider("ok", FakeProvider("ok"))
        service.register_provider("down", FakeProvider("down").script("initialize", ProviderConnectionError("unreachable")))

        results = await service.initialize()

        assert results == {"ok": "ok", "down": "unreachable"}

    @pytest.mark.asyncio
    async def test_initialize_raises_on_bad_credentials(self, service):
        adapter = FakeProvider("printful").script("initialize", ProviderAuthenticationError("bad token"))
        service.register_provider("printful", adapter)

        with pytest.raises(ProviderAuthenticationError):
            await service.initialize()
        assert adapter.calls["initialize"] == 1

    @pytest.mark.asyncio
    async def test_context_manager_closes_adapters(self, service):
        adapter = FakeProvider("printful")
        service.register_provider("printful", adapter)
        async with service:
            pass
        assert adapter.closed is True
