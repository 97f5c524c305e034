"""
In-memory provider adapter and clock used by the unit tests.
"""

from collections import defaultdict
from typing import Dict, List

from DropshipHub.models.provider_config_models import ProviderConfig
from DropshipHub.providers.http_client import HTTPResponse
from DropshipHub.providers.base import BaseProvider, FieldDefinition, FieldType, ProviderInfo
from DropshipHub.schemas.dropship_schemas import (
    ImportResult,
    InventoryUpdate,
    OrderResult,
    OrderState,
    OrderStatus,
    Product,
    ShippingInfo,
)


def make_response(data, status: int = 200, headers=None) -> HTTPResponse:
    return HTTPResponse(status=status, data=data, headers=headers or {}, url="https://test.invalid", duration_ms=1)


class FakeClock:
    """Monotonic clock that only moves when sleep() is awaited"""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeProvider(BaseProvider):
    """
    Scriptable adapter. Each ``responses[operation]`` entry is consumed in order;
    an exception instance is raised, anything else is returned. Once the script
    is exhausted the last entry is repeated.
    """

    status_map = {
        "new": OrderState.PENDING,
        "working": OrderState.PROCESSING,
        "sent": OrderState.SHIPPED,
        "arrived": OrderState.DELIVERED,
        "void": OrderState.CANCELLED,
    }

    def __init__(self, name: str = "fake", enabled: bool = True, products: List[Product] = None, **kwargs):
        self._name = name
        super().__init__(config=ProviderConfig(name=name, api_key="test-key", enabled=enabled), **kwargs)
        self.calls: Dict[str, int] = defaultdict(int)
        self.responses: Dict[str, list] = {}
        self.products = products or []
        self.closed = False

    def script(self, operation: str, *responses):
        self.responses[operation] = list(responses)
        return self

    def _next(self, operation: str, default=None):
        self.calls[operation] += 1
        script = self.responses.get(operation)
        if not script:
            return default
        response = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(response, BaseException):
            raise response
        return response

    def get_provider_info(self) -> ProviderInfo:
        return ProviderInfo(name=self._name, display_name=self._name.title(), description="Test provider")

    def get_credential_schema(self) -> List[FieldDefinition]:
        return [FieldDefinition(name="api_key", label="API Key", field_type=FieldType.PASSWORD)]

    def _get_base_url(self) -> str:
        return "https://fake.invalid"

    def _get_headers(self) -> Dict[str, str]:
        return {}

    async def initialize(self) -> None:
        self._next("initialize")

    async def check_health(self) -> None:
        self._next("check_health")

    async def close(self):
        self.closed = True

    async def search_products(self, query):
        return self._next("search_products", self.products)

    async def get_product(self, product_id: str) -> Product:
        return self._next("get_product", Product(id=product_id, title=f"Product {product_id}", price=10.0))

    async def import_product(self, product_id: str) -> ImportResult:
        return self._next(
            "import_product",
            ImportResult(success=True, message="imported", product_id=product_id, local_product_id=f"local_{product_id}"),
        )

    async def sync_inventory(self, product_ids: List[str]) -> List[InventoryUpdate]:
        return self._next(
            "sync_inventory",
            [InventoryUpdate(product_id=product_id, stock=5, available=True) for product_id in product_ids],
        )

    async def _submit_order(self, request) -> OrderResult:
        return self._next("submit_order", OrderResult(success=True, cost=25.0, message="created", order_id="order-1"))

    async def get_order_status(self, order_id: str) -> OrderStatus:
        return self._next("get_order_status", OrderStatus(order_id=order_id, status=OrderState.PENDING))

    async def cancel_order(self, order_id: str) -> bool:
        return self._next("cancel_order", True)

    async def get_shipping_info(self, order_id: str) -> ShippingInfo:
        return self._next("get_shipping_info", ShippingInfo())
