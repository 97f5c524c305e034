"""
Dropshipping Service.

Single entry point the rest of the platform calls to reach any dropshipping
provider. Resolves the target provider through the registry, runs every adapter
call through the resilience layer, and aggregates multi-provider results.

The service relays only: it keeps no order or product state of its own.
"""

import asyncio
import copy
import logging
import time
from typing import Any, Dict, List, Optional

from DropshipHub.exceptions import (
    DropshipHubException,
    FailureKind,
    ProviderNotConfiguredError,
    ValidationError,
    failure_kind,
    log_exception,
)
from DropshipHub.providers.base import BaseProvider
from DropshipHub.providers.registry import ProviderRegistry
from DropshipHub.providers.resilience import ResilientCaller, RetryPolicy
from DropshipHub.schemas.dropship_schemas import (
    HealthStatus,
    ImportResult,
    InventoryUpdate,
    OrderRequest,
    OrderResult,
    OrderStatus,
    Product,
    ProductSearchQuery,
    ProviderHealth,
    ShippingInfo,
)

logger = logging.getLogger(__name__)

# failures that mean the provider itself is unusable, not that one call failed
FATAL_KINDS = (FailureKind.UNAUTHORIZED, FailureKind.CONFIGURATION)


class DropshippingService:
    """Facade over all registered dropshipping providers"""

    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        retry_policy: Optional[RetryPolicy] = None,
        max_concurrency: int = 5,
        request_timeout: Optional[float] = 30.0,
        sleep=asyncio.sleep,
        clock=time.monotonic,
    ):
        """
        Initialize DropshippingService.

        Args:
            registry: Provider registry to dispatch through; a new empty one by default
            retry_policy: Retry budget applied to every provider call
            max_concurrency: Bound on simultaneous outbound calls during fan-out
            request_timeout: Per-call timeout in seconds
        """
        self.registry = registry or ProviderRegistry()
        self.max_concurrency = max_concurrency
        self.caller = ResilientCaller(policy=retry_policy, timeout=request_timeout, sleep=sleep, clock=clock)

    # ========== Provider management ==========

    def register_provider(self, name: str, adapter: BaseProvider, enabled: Optional[bool] = None):
        return self.registry.register(name, adapter, enabled=enabled)

    def get_enabled_providers(self) -> List[str]:
        return self.registry.list_enabled()

    def get_provider_status(self) -> List[Dict[str, Any]]:
        """Every registered provider with its enabled flag and capabilities"""
        status = []
        for descriptor in self.registry.descriptors():
            info = descriptor.info
            status.append({
                "name": descriptor.name,
                "display_name": info.display_name,
                "enabled": descriptor.enabled,
                "default": descriptor.name == self.registry.default_name,
                "capabilities": [capability.value for capability in descriptor.adapter.get_capabilities()],
            })
        return status

    def _resolve(self, provider_name: Optional[str]) -> BaseProvider:
        """Named provider, or the default one; enablement is checked either way"""
        if provider_name is None:
            provider_name = self.registry.default_name
            if provider_name is None:
                raise ProviderNotConfiguredError()
        return self.registry.resolve(provider_name)

    @staticmethod
    def _require_provider_name(provider_name: Optional[str], operation: str):
        if not provider_name:
            raise ValidationError(
                f"{operation} requires an explicit provider name",
                missing_fields=["provider_name"],
            )

    async def _call(self, adapter: BaseProvider, operation: str, *args, idempotent: bool = True):
        return await self.caller.call(
            adapter.name, operation, getattr(adapter, operation), *args, idempotent=idempotent
        )

    @staticmethod
    def _tag(product: Product, provider_name: str) -> Product:
        tagged = copy.deepcopy(product)
        tagged.provider = provider_name
        return tagged

    # ========== Lifecycle ==========

    async def initialize(self) -> Dict[str, str]:
        """
        Run each enabled provider's startup check.

        Credential and configuration problems are raised immediately; providers
        that are merely unreachable are reported in the returned map
        (name -> "ok" or the failure message) and stay registered.
        """
        results = {}
        for name in self.registry.list_enabled():
            adapter = self.registry.resolve(name)
            try:
                await self._call(adapter, "initialize")
            except DropshipHubException as e:
                if failure_kind(e) in FATAL_KINDS:
                    log_exception(e, context=f"initialize {name}")
                    raise
                logger.warning(f"Dropshipping provider {name} failed to initialize: {e.message}")
                results[name] = e.message
            else:
                results[name] = "ok"
        return results

    async def close(self):
        """Release every adapter's HTTP resources"""
        for descriptor in self.registry.descriptors():
            await descriptor.adapter.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ========== Orders ==========

    async def create_order(self, request: OrderRequest, provider_name: Optional[str] = None) -> OrderResult:
        """
        Place an order with the named provider, or the default one.

        Never falls back to another provider: a failed order is surfaced, not
        re-placed elsewhere.

        Raises:
            ValidationError: invalid request; no provider was contacted
            OrderCreationError: the provider rejected the order
        """
        request.validate()
        adapter = self._resolve(provider_name)
        try:
            result = await self._call(adapter, "create_order", request, idempotent=False)
        except DropshipHubException as e:
            log_exception(e, context="create_order", extra_info={"provider": adapter.name})
            raise
        logger.info(f"Order {result.order_id} created with {adapter.name}")
        return result

    async def get_order_status(self, order_id: str, provider_name: str) -> OrderStatus:
        self._require_provider_name(provider_name, "get_order_status")
        adapter = self._resolve(provider_name)
        return await self._call(adapter, "get_order_status", order_id)

    async def cancel_order(self, order_id: str, provider_name: str) -> bool:
        """False when the provider cannot cancel the order (e.g. already shipped)"""
        self._require_provider_name(provider_name, "cancel_order")
        adapter = self._resolve(provider_name)
        cancelled = await self._call(adapter, "cancel_order", order_id)
        if not cancelled:
            logger.info(f"{adapter.name} declined to cancel order {order_id}")
        return cancelled

    async def get_shipping_info(self, order_id: str, provider_name: str) -> ShippingInfo:
        self._require_provider_name(provider_name, "get_shipping_info")
        adapter = self._resolve(provider_name)
        return await self._call(adapter, "get_shipping_info", order_id)

    # ========== Catalog ==========

    async def get_available_products(
        self, query: Optional[ProductSearchQuery] = None, provider_name: Optional[str] = None
    ) -> List[Product]:
        """
        Search one provider, or every enabled provider concurrently.

        In the fan-out case a provider that fails is logged and left out, and the
        remaining providers' products are returned in registration order, each
        tagged with its source provider.
        """
        query = query or ProductSearchQuery()

        if provider_name is not None:
            adapter = self._resolve(provider_name)
            products = await self._call(adapter, "search_products", query)
            return [self._tag(product, adapter.name) for product in products]

        names = self.registry.list_enabled()
        if not names:
            raise ProviderNotConfiguredError()

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _search(name: str) -> List[Product]:
            async with semaphore:
                try:
                    adapter = self.registry.resolve(name)
                    products = await self._call(adapter, "search_products", query)
                except Exception as e:
                    logger.warning(
                        f"Excluding {name} from product search: {e}",
                        extra={"provider_name": name, "error_kind": failure_kind(e).value},
                    )
                    return []
            return [self._tag(product, name) for product in products]

        results = await asyncio.gather(*(_search(name) for name in names))
        return [product for provider_products in results for product in provider_products]

    async def get_product(self, product_id: str, provider_name: str) -> Product:
        self._require_provider_name(provider_name, "get_product")
        adapter = self._resolve(provider_name)
        product = await self._call(adapter, "get_product", product_id)
        return self._tag(product, adapter.name)

    async def import_product(self, product_id: str, provider_name: str) -> ImportResult:
        results = await self.import_products([product_id], provider_name)
        return results[0]

    async def import_products(self, product_ids: List[str], provider_name: str) -> List[ImportResult]:
        """
        Import several items; each failure is reported in its own result.

        Credential and configuration failures are raised instead.
        """
        self._require_provider_name(provider_name, "import_products")
        adapter = self._resolve(provider_name)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _import(product_id: str) -> ImportResult:
            async with semaphore:
                try:
                    return await self._call(adapter, "import_product", product_id)
                except DropshipHubException as e:
                    if failure_kind(e) in FATAL_KINDS:
                        raise
                    logger.warning(f"Import of {product_id} from {adapter.name} failed: {e.message}")
                    return ImportResult(
                        success=False,
                        product_id=product_id,
                        message=f"Failed to import product from {adapter.name}",
                        errors=[e.message],
                    )

        return list(await asyncio.gather(*(_import(product_id) for product_id in product_ids)))

    async def sync_inventory(self, product_ids: List[str], provider_name: str) -> List[InventoryUpdate]:
        """
        One update per requested id, in request order.

        Provider failures that outlast the retry budget are raised; an id is only
        reported unavailable when the provider says so or leaves it out.
        """
        self._require_provider_name(provider_name, "sync_inventory")
        if not product_ids:
            return []
        adapter = self._resolve(provider_name)
        updates = await self._call(adapter, "sync_inventory", list(product_ids))
        return BaseProvider.align_inventory(list(product_ids), updates)

    # ========== Operations ==========

    async def health_check(self) -> List[ProviderHealth]:
        """Liveness of every registered provider; never raises"""
        descriptors = self.registry.descriptors()

        async def _probe(descriptor) -> ProviderHealth:
            if not descriptor.enabled:
                return ProviderHealth(provider=descriptor.name, enabled=False, status=HealthStatus.DISABLED)
            try:
                if self.caller.timeout is None:
                    await descriptor.adapter.check_health()
                else:
                    await asyncio.wait_for(descriptor.adapter.check_health(), timeout=self.caller.timeout)
            except Exception as e:
                logger.warning(f"Health check failed for {descriptor.name}: {e}")
                details = e.message if isinstance(e, DropshipHubException) else type(e).__name__
                return ProviderHealth(
                    provider=descriptor.name, enabled=True, status=HealthStatus.UNHEALTHY, details=details
                )
            return ProviderHealth(provider=descriptor.name, enabled=True, status=HealthStatus.HEALTHY)

        return list(await asyncio.gather(*(_probe(descriptor) for descriptor in descriptors)))
